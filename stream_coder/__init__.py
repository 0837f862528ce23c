"""Streaming model output to diffed, atomically-applied file edits."""

from .config import Config
from .fileblock import FileBlockStreamParser
from .log_setup import setup_logger
from .sessions import FileSessionCollector
from .turn import TurnOutcome, TurnProcessor

__version__ = "0.1.0"
