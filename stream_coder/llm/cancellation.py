"""
Cooperative cancellation for streaming turns.

A ``CancelToken`` is observed at every transport read boundary, and its
release callbacks close the transport so a blocked read returns.  A
wall-clock timeout is just a second cancellation source: composing a
user token with a deadline yields a token that trips on whichever fires
first.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from ..errors import StreamCancelled, StreamTimedOut

logger = logging.getLogger(__name__)


class CancelToken:
    """Thread-safe cancellation signal with an optional deadline.

    A token built with a *timeout* arms a daemon timer that trips it with
    reason ``"timeout"`` and runs the same release callbacks as
    :meth:`cancel`.  Call :meth:`release` once the turn is over.
    """

    def __init__(self, timeout: float | None = None,
                 parent: "CancelToken | None" = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._reason = ""
        self._parent = parent
        self._timeout = timeout
        self._deadline = (time.monotonic() + timeout) if timeout else None
        self._timer: threading.Timer | None = None
        if timeout:
            self._timer = threading.Timer(timeout, self._trip, args=("timeout",))
            self._timer.daemon = True
            self._timer.start()
        if parent is not None:
            parent.add_callback(self._follow_parent)

    @classmethod
    def with_timeout(cls, timeout: float | None,
                     parent: "CancelToken | None" = None) -> "CancelToken":
        """Compose *parent* (usually the user's token) with a deadline."""
        return cls(timeout=timeout, parent=parent)

    def cancel(self) -> None:
        """Request cancellation and run registered release callbacks."""
        self._trip("user")

    def release(self) -> None:
        """Disarm the deadline timer and detach from the parent token."""
        if self._timer is not None:
            self._timer.cancel()
        if self._parent is not None:
            self._parent.remove_callback(self._follow_parent)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run *callback* once when this token trips."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def timed_out(self) -> bool:
        if self._event.is_set():
            return self._reason == "timeout"
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return True
        return self._parent.timed_out if self._parent is not None else False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.timed_out

    @property
    def reason(self) -> str:
        """``"user"``, ``"timeout"`` or ``""`` while still live."""
        if self._event.is_set():
            return self._reason
        if self.timed_out:
            return "timeout"
        return ""

    def remaining(self) -> float | None:
        """Seconds until the nearest deadline, or None if unbounded."""
        own = None
        if self._deadline is not None:
            own = max(0.0, self._deadline - time.monotonic())
        inherited = self._parent.remaining() if self._parent is not None else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*, waking early on cancel; returns ``cancelled``."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        reason = self.reason
        if reason == "timeout":
            raise StreamTimedOut(self._effective_timeout())
        if reason == "user":
            raise StreamCancelled()

    def _follow_parent(self) -> None:
        self._trip(self._parent.reason or "user")

    def _trip(self, reason: str) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        if self._timer is not None:
            self._timer.cancel()
        if reason == "timeout":
            logger.warning("[Stream] Timed out after %.0fs", self._effective_timeout())
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.debug("[Stream] Cancel callback failed: %s", exc)

    def _effective_timeout(self) -> float:
        if self._timeout:
            return self._timeout
        if self._parent is not None:
            return self._parent._effective_timeout()
        return 0.0
