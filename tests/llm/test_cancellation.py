"""Tests for CancelToken."""

import threading
import time

import pytest

from stream_coder.errors import StreamCancelled, StreamTimedOut
from stream_coder.llm.cancellation import CancelToken


class TestCancelToken:
    def test_live_token(self):
        token = CancelToken()

        assert not token.cancelled
        assert token.reason == ""
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_user_cancel_runs_callbacks_once(self):
        token = CancelToken()
        calls = []
        token.add_callback(lambda: calls.append(1))

        token.cancel()
        token.cancel()

        assert token.cancelled
        assert token.reason == "user"
        assert calls == [1]
        with pytest.raises(StreamCancelled):
            token.raise_if_cancelled()

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancelToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append(1))

        assert calls == [1]

    def test_failing_callback_does_not_stop_others(self):
        token = CancelToken()
        calls = []

        def boom():
            raise RuntimeError("close failed")

        token.add_callback(boom)
        token.add_callback(lambda: calls.append(1))
        token.cancel()

        assert calls == [1]

    def test_deadline(self):
        token = CancelToken(timeout=0.01)
        time.sleep(0.03)

        assert token.cancelled
        assert token.reason == "timeout"
        with pytest.raises(StreamTimedOut):
            token.raise_if_cancelled()

    def test_composed_token_follows_parent_cancel(self):
        user = CancelToken()
        turn = CancelToken.with_timeout(60, parent=user)

        user.cancel()

        assert turn.cancelled
        assert turn.reason == "user"

    def test_composed_token_inherits_parent_deadline(self):
        user = CancelToken(timeout=0.01)
        turn = CancelToken.with_timeout(None, parent=user)
        time.sleep(0.03)

        assert turn.reason == "timeout"
        assert turn.remaining() == 0.0

    def test_wait_wakes_on_cancel(self):
        token = CancelToken()
        threading.Timer(0.05, token.cancel).start()
        started = time.monotonic()

        assert token.wait(5.0) is True
        assert time.monotonic() - started < 2.0

    def test_wait_without_cancel(self):
        assert CancelToken().wait(0.01) is False

    def test_deadline_runs_release_callbacks_unprompted(self):
        token = CancelToken(timeout=0.05)
        fired = threading.Event()
        token.add_callback(fired.set)

        assert fired.wait(2.0)
        assert token.reason == "timeout"

    def test_parent_deadline_reaches_child_callbacks(self):
        user = CancelToken(timeout=0.05)
        turn = CancelToken.with_timeout(None, parent=user)
        fired = threading.Event()
        turn.add_callback(fired.set)

        assert fired.wait(2.0)
        assert turn.reason == "timeout"

    def test_release_disarms_timer_and_detaches(self):
        user = CancelToken()
        turn = CancelToken.with_timeout(0.05, parent=user)
        calls = []
        turn.add_callback(lambda: calls.append(1))

        turn.release()
        user.cancel()
        time.sleep(0.15)

        assert calls == []
        assert turn.reason == "timeout"
