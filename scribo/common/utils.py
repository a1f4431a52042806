# scribo/common/utils.py

import json
import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a logger in the ``scribo`` hierarchy.
    Handlers are installed once on the package logger by ``setup_logging``.
    """
    return logging.getLogger(name or "scribo")


def setup_logging(config: Any = None, level: Optional[int] = None) -> logging.Logger:
    """
    Configure the package logger to write to stdout in a consistent format.
    The level comes from the argument, then ``logging.level`` in the config, then INFO.
    """
    log_level = level
    if log_level is None and config is not None:
        log_level = config.get("logging.level", logging.INFO)
    if log_level is None:
        log_level = logging.INFO
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger("scribo")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
    logger.setLevel(log_level)
    return logger


def to_json(data: Any, indent: Optional[int] = None) -> str:
    """
    Safely convert Python data to a JSON string.
    """
    try:
        return json.dumps(data, indent=indent, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to serialize to JSON: {e}") from e


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def advance(previous: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """
    Return ``now`` (default: the current UTC time), nudged forward so it is
    strictly later than ``previous``.
    """
    now = now or utcnow()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


class Timer:
    """
    Context manager measuring wall time of a block.
    """
    def __init__(self):
        self.start = None
        self.duration = None

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start

    @property
    def elapsed(self) -> float:
        """
        Return the elapsed time in seconds, or the running time if the block has not exited.
        """
        if self.start is None:
            raise ValueError("Timer has not started yet.")
        if self.duration is None:
            return time.perf_counter() - self.start
        return self.duration

    def humanize(self) -> str:
        """Elapsed time formatted like ``12.345ms`` or ``1.204s``."""
        elapsed = self.elapsed
        if elapsed < 1:
            return f"{elapsed * 1000:.3f}ms"
        return f"{elapsed:.3f}s"
