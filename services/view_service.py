"""
View Service - per-tender view counting with a dedup window
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config.settings import VIEW_DEDUP_MINUTES
from models.result import ErrorCode, Result
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "app")

MAX_OCID_LENGTH = 200


def clean_ocid(ocid: Any) -> Optional[str]:
    if not isinstance(ocid, str):
        return None
    ocid = ocid.strip()
    if not ocid or len(ocid) > MAX_OCID_LENGTH:
        return None
    return ocid


def track_view(
    store: TenderStore,
    ocid: Any,
    viewer_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    user_id: Optional[str] = None,
    dedup_minutes: int = VIEW_DEDUP_MINUTES,
    now: Optional[datetime] = None,
) -> Result[Dict[str, Any]]:
    """Count a view unless the same viewer was counted within the dedup window."""
    tender_ocid = clean_ocid(ocid)
    if tender_ocid is None:
        return Result.fail("A valid tender reference is required to record a view", ErrorCode.INVALID_REFERENCE)

    now = now or datetime.now(timezone.utc)
    try:
        outcome = store.record_view(tender_ocid, viewer_ip, user_agent, user_id, dedup_minutes, now)
    except Exception as e:
        logger.error(f"Error tracking view for {tender_ocid}: {e}")
        return Result.fail("Could not record the view because of a connection issue", ErrorCode.CONNECTION)

    view_count = outcome["view_count"]
    if not outcome["view_recorded"]:
        logger.debug(f"View for {tender_ocid} from {viewer_ip} already recorded recently")
        return Result.ok({
            "viewRecorded": False,
            "viewCount": view_count,
            "message": "View already recorded recently",
        })

    logger.info(f"Recorded view for tender {tender_ocid} (count={view_count})")
    return Result.ok({"viewRecorded": True, "viewCount": view_count, "message": "View recorded successfully"})


def get_view_stats(store: TenderStore, ocid: Any) -> Result[Dict[str, int]]:
    tender_ocid = clean_ocid(ocid)
    if tender_ocid is None:
        return Result.fail("A valid tender reference is required", ErrorCode.INVALID_REFERENCE)
    try:
        return Result.ok(store.get_tender_view_stats(tender_ocid))
    except Exception as e:
        logger.error(f"Error loading view stats for {tender_ocid}: {e}")
        return Result.fail("Could not load view statistics because of a connection issue", ErrorCode.CONNECTION)
