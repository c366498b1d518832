"""
Admin Service - dashboard statistics and sync status
"""
from typing import Any, Dict

from config.settings import FULL_SYNC_INTERVAL_DAYS, SYNC_INTERVAL_HOURS
from config.sync_config import get_sync_config_summary
from models.result import ErrorCode, Result
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "app")

MAX_ACTIVITY_LIMIT = 100


def get_admin_stats(store: TenderStore) -> Result[Dict[str, Any]]:
    try:
        return Result.ok(store.get_admin_stats())
    except Exception as e:
        logger.error(f"Failed to load admin stats: {e}")
        return Result.fail("Could not load admin statistics", ErrorCode.CONNECTION)


def get_recent_activity(store: TenderStore, limit: int = 10) -> Result[list]:
    limit = max(1, min(limit, MAX_ACTIVITY_LIMIT))
    try:
        return Result.ok(store.get_recent_activity(limit))
    except Exception as e:
        logger.error(f"Failed to load recent activity: {e}")
        return Result.fail("Could not load recent activity", ErrorCode.CONNECTION)


def get_sync_status(store: TenderStore, limit: int = 10) -> Result[Dict[str, Any]]:
    """Recent run log rows, 30-day statistics and the active sync configuration."""
    try:
        runs = store.get_recent_sync_runs(limit)
        statistics = store.get_sync_statistics()
    except Exception as e:
        logger.error(f"Failed to load sync status: {e}")
        return Result.fail("Could not load sync status", ErrorCode.CONNECTION)

    return Result.ok({
        "recentRuns": runs,
        "lastRun": runs[0] if runs else None,
        "statistics": statistics,
        "config": {
            "syncIntervalHours": SYNC_INTERVAL_HOURS,
            "fullSyncIntervalDays": FULL_SYNC_INTERVAL_DAYS,
            "profiles": get_sync_config_summary(),
        },
    })
