"""
Logging configuration for Polytrade
Refresh and reconciliation loops repeat the same INFO lines every few seconds;
the deduplication filter keeps those readable without hiding warnings.
"""
import logging
import sys
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from polytrade.infrastructure.config.settings import settings

QUIET_LOGGERS = ("httpx", "httpcore", "web3", "redis", "urllib3", "asyncio")


class DeduplicationFilter(logging.Filter):
    """Drops repeats of the same INFO/DEBUG message from one logger within a window"""

    def __init__(self, window_seconds: Optional[int] = None, max_count: Optional[int] = None):
        super().__init__()
        self.window_seconds = settings.logging.dedup_window_seconds if window_seconds is None else window_seconds
        self.max_count = settings.logging.dedup_max_count if max_count is None else max_count
        self._seen: Dict[str, Deque[float]] = defaultdict(deque)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True

        key = f"{record.name}:{record.levelno}:{record.getMessage()}"
        now = time.monotonic()
        stamps = self._seen[key]
        while stamps and now - stamps[0] >= self.window_seconds:
            stamps.popleft()

        if len(stamps) >= self.max_count:
            return False
        stamps.append(now)
        return True


def setup_logging(level: Optional[str] = None, enable_deduplication: bool = True) -> logging.Logger:
    """
    Configure the `polytrade` logger tree

    Args:
        level: Overrides settings.logging.level; DEBUG when settings.debug is on
            outside production
        enable_deduplication: Attach DeduplicationFilter to the console handler

    Returns:
        The package root logger
    """
    if level is None:
        level = "DEBUG" if settings.debug and not settings.is_production else settings.logging.level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger("polytrade")
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(settings.logging.format))
    if enable_deduplication:
        handler.addFilter(DeduplicationFilter())
    root.addHandler(handler)
    root.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def short_address(address: Optional[str]) -> str:
    """0x1234...abcd form for log lines"""
    if not address:
        return "n/a"
    return f"{address[:6]}...{address[-4:]}"
