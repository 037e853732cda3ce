"""Utilities module - lock client, retries and datetime helpers."""
from backend.utils.lock_client import LockClient, LockTimeoutError, get_lock_client
from backend.utils.datetime_helpers import ensure_utc
from backend.utils.retry import call_with_retry, with_backoff

__all__ = ["LockClient", "LockTimeoutError", "get_lock_client", "ensure_utc", "call_with_retry", "with_backoff"]
