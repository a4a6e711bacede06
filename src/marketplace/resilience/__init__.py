"""Resilience utilities: retry on SQLite lock contention."""

from marketplace.resilience.retry import is_lock_contention, retry_on_locked

__all__ = [
    "is_lock_contention",
    "retry_on_locked",
]
