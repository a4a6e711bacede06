"""Retry decorator for SQLite write-lock contention.

Opening a write transaction while another connection holds the database lock
fails with ``sqlite3.OperationalError: database is locked``.  That step is
retried with exponential backoff and jitter; any other error propagates
immediately.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def is_lock_contention(exc: BaseException) -> bool:
    """Return True if *exc* is SQLite reporting a busy or locked database."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    text = str(exc).lower()
    return "locked" in text or "busy" in text


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt."""
    operation = getattr(retry_state.fn, "_operation", "unknown") if retry_state.fn else "unknown"
    logger.warning(
        "database_locked_retrying",
        operation=operation,
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def _log_final_failure(retry_state: RetryCallState) -> Any:
    """Log exhaustion, then re-raise the last exception."""
    operation = getattr(retry_state.fn, "_operation", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.error(
        "database_locked_retries_exhausted",
        operation=operation,
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )
    return retry_state.outcome.result()  # type: ignore[union-attr]


def retry_on_locked(operation: str, attempts: int = 5) -> Callable[[F], F]:
    """Create a retry decorator for an SQLite operation that may hit a lock.

    Configured with:
    - *attempts* tries at most
    - Exponential backoff from 50ms capped at 1s, plus up to 50ms of jitter
    - Warning log before each retry
    - Error log and re-raise of the original exception after exhaustion

    Args:
        operation: Human-readable name of the operation (used in logs).
        attempts: Maximum number of attempts.

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._operation = operation  # type: ignore[attr-defined]

        wrapped = retry(
            retry=retry_if_exception(is_lock_contention),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=1) + wait_random(0, 0.05),
            before_sleep=_before_sleep_log,
            retry_error_callback=_log_final_failure,
        )(func)

        return wrapped  # type: ignore[return-value]

    return decorator
