"""
Bookmark Service

Add and remove are idempotent: a duplicate add is absorbed through the
(user_id, tender_ocid) unique constraint and removing a missing bookmark is
not an error. Every operation needs a signed-in user and reports its absence
as ``not_authenticated`` so the caller can prompt for sign-in.
"""
import time
from typing import Any, Callable, Dict, Optional

from models.result import ErrorCode, Result
from services.tender_store import TenderStore
from services.view_service import clean_ocid
from utils.db_utils import is_transient_db_error, is_unique_violation
from utils.logging_config import get_logger

logger = get_logger(__name__, "app")

DEFAULT_PAGE_SIZE = 24
MAX_PAGE_SIZE = 100
CHECK_MAX_ATTEMPTS = 3
CHECK_BACKOFF_SECONDS = 0.5

NOT_AUTHENTICATED_MESSAGE = "Please sign in to manage bookmarks."
INVALID_REFERENCE_MESSAGE = "A valid tender reference is required."
CONNECTION_MESSAGE = "Could not reach the bookmark service because of a connection issue. Please try again."


def _store_failure(action: str, err: Exception) -> Result:
    logger.error(f"Bookmark {action} failed: {err}")
    if is_transient_db_error(err):
        return Result.fail(CONNECTION_MESSAGE, ErrorCode.CONNECTION)
    return Result.fail(f"Could not {action} the bookmark. Please try again later.", ErrorCode.UNKNOWN)


def add_bookmark(store: TenderStore, user_id: Optional[str], ocid: Any) -> Result[Dict[str, Any]]:
    if not user_id:
        return Result.fail(NOT_AUTHENTICATED_MESSAGE, ErrorCode.NOT_AUTHENTICATED)
    tender_ocid = clean_ocid(ocid)
    if tender_ocid is None:
        return Result.fail(INVALID_REFERENCE_MESSAGE, ErrorCode.INVALID_REFERENCE)

    try:
        store.insert_bookmark(user_id, tender_ocid)
    except Exception as e:
        if is_unique_violation(e):
            logger.debug(f"Tender {tender_ocid} already bookmarked by {user_id}")
            return Result.ok({"ocid": tender_ocid, "bookmarked": True, "message": "Tender is already bookmarked"})
        return _store_failure("add", e)

    logger.info(f"User {user_id} bookmarked tender {tender_ocid}")
    return Result.ok({"ocid": tender_ocid, "bookmarked": True, "message": "Bookmark added"})


def remove_bookmark(store: TenderStore, user_id: Optional[str], ocid: Any) -> Result[Dict[str, Any]]:
    if not user_id:
        return Result.fail(NOT_AUTHENTICATED_MESSAGE, ErrorCode.NOT_AUTHENTICATED)
    tender_ocid = clean_ocid(ocid)
    if tender_ocid is None:
        return Result.fail(INVALID_REFERENCE_MESSAGE, ErrorCode.INVALID_REFERENCE)

    try:
        removed = store.delete_bookmark(user_id, tender_ocid)
    except Exception as e:
        return _store_failure("remove", e)

    message = "Bookmark removed" if removed else "Tender was not bookmarked"
    return Result.ok({"ocid": tender_ocid, "bookmarked": False, "message": message})


def is_bookmarked(
    store: TenderStore,
    user_id: Optional[str],
    ocid: Any,
    max_attempts: int = CHECK_MAX_ATTEMPTS,
    backoff_seconds: float = CHECK_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Result[Dict[str, Any]]:
    """Existence check with a bounded retry loop and linear backoff."""
    if not user_id:
        return Result.fail(NOT_AUTHENTICATED_MESSAGE, ErrorCode.NOT_AUTHENTICATED)
    tender_ocid = clean_ocid(ocid)
    if tender_ocid is None:
        return Result.fail(INVALID_REFERENCE_MESSAGE, ErrorCode.INVALID_REFERENCE)

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            exists = store.bookmark_exists(user_id, tender_ocid)
            return Result.ok({"ocid": tender_ocid, "isBookmarked": exists})
        except Exception as e:
            last_error = e
            logger.warning(f"Bookmark check attempt {attempt}/{max_attempts} failed for {tender_ocid}: {e}")
            if attempt < max_attempts:
                sleep(backoff_seconds * attempt)

    return _store_failure("check", last_error)


def list_bookmarks(
    store: TenderStore,
    user_id: Optional[str],
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Result[Dict[str, Any]]:
    if not user_id:
        return Result.fail(NOT_AUTHENTICATED_MESSAGE, ErrorCode.NOT_AUTHENTICATED)

    if limit < 1 or limit > MAX_PAGE_SIZE:
        limit = DEFAULT_PAGE_SIZE
    page = max(page, 1)
    offset = (page - 1) * limit

    try:
        rows = store.list_bookmarks(user_id, limit, offset)
    except Exception as e:
        return _store_failure("list", e)

    return Result.ok({"bookmarks": rows, "page": page, "limit": limit, "hasMore": len(rows) == limit})
