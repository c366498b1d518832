"""
Database utilities for retry logic and PostgREST error classification
"""
import time
from typing import Any, Callable

import httpcore
import httpx
from postgrest.exceptions import APIError

from utils.logging_config import get_logger

logger = get_logger(__name__, "app")

UNIQUE_VIOLATION = "23505"

TRANSIENT_ERRORS = (
    httpx.ReadError,
    httpx.RemoteProtocolError,
    httpx.ConnectError,
    httpx.TimeoutException,
    httpcore.ReadError,
    httpcore.RemoteProtocolError,
    ConnectionError,
    BrokenPipeError,
)


def is_transient_db_error(err: BaseException) -> bool:
    """Network-level failures talking to the store; SQL and permission errors are not transient."""
    if isinstance(err, TRANSIENT_ERRORS):
        return True
    cause = err.__cause__
    if cause is not None and cause is not err and isinstance(cause, TRANSIENT_ERRORS):
        return True

    error_str = str(err).lower()
    return any([
        "resource temporarily unavailable" in error_str,
        "connection" in error_str and "timeout" in error_str,
        "connection refused" in error_str,
        "connection reset" in error_str,
        "too many connections" in error_str,
        "broken pipe" in error_str,
    ])


def is_unique_violation(err: BaseException) -> bool:
    if isinstance(err, APIError):
        return getattr(err, "code", None) == UNIQUE_VIOLATION
    return UNIQUE_VIOLATION in str(err) or "duplicate key" in str(err).lower()


def execute_with_retry(
    operation_factory: Callable[[], Any],
    retries: int = 3,
    backoff_seconds: float = 0.5,
    max_backoff_seconds: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
):
    """Execute a Supabase/PostgREST operation, retrying only on transient network errors."""
    last_error: Exception | None = None

    for attempt in range(1, retries + 1):
        try:
            return operation_factory()
        except Exception as err:
            if not is_transient_db_error(err):
                raise
            last_error = err
            # Only log first and last attempt to reduce noise
            if attempt == 1 or attempt == retries:
                logger.warning(f"Supabase connection error (attempt {attempt}/{retries}): {str(err)[:100]}")
            if attempt < retries:
                sleep(min(backoff_seconds * (2 ** (attempt - 1)), max_backoff_seconds))

    raise last_error

