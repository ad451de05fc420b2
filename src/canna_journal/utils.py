"""Utility functions and decorators for canna_journal."""

import time
import sqlite3
import logging
from functools import wraps
from typing import TypeVar, Callable

from .config import MAX_WRITE_RETRIES, WRITE_RETRY_DELAY

logger = logging.getLogger(__name__)

T = TypeVar('T')

_CONTENTION_MARKERS = ("database is locked", "database is busy")


def _is_contention(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def retry_when_locked(
    max_retries: int = MAX_WRITE_RETRIES,
    initial_delay: float = WRITE_RETRY_DELAY,
    backoff_factor: float = 2.0,
):
    """
    Decorator that retries a store write while SQLite reports lock contention.

    Only "database is locked"/"busy" errors are retried; any other
    OperationalError (bad SQL, missing table) propagates on the first attempt.

    Args:
        max_retries: Maximum number of attempts
        initial_delay: Delay in seconds before the first retry
        backoff_factor: Multiplier for delay between retries

    Example:
        @retry_when_locked()
        def add_entry(self, entry):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay

            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if not _is_contention(e) or attempt == max_retries:
                        if attempt > 1:
                            logger.error(f"{func.__name__} failed after {attempt} attempts: {e}")
                        raise
                    logger.warning(
                        f"{func.__name__} hit a locked database (attempt {attempt}/{max_retries}). "
                        f"Retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)
                    delay *= backoff_factor

        return wrapper
    return decorator
