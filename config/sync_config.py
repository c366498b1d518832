"""
Tender Sync Configuration
Per-mode budgets for the fetch loop, retry policy and write phase
"""
import os
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any


class SyncType(str, Enum):
    """Operating modes of a sync run"""
    INCREMENTAL = "incremental"     # Window starts at the last successful sync
    FULL = "full"                   # Long historical lookback to repair drift


class SyncStatus(str, Enum):
    """Terminal status written to the run log"""
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class ShortPagePolicy(str, Enum):
    """How a page with fewer than PageSize records is interpreted"""
    COUNT_AS_EMPTY = "count_as_empty"   # Counts towards the empty-page threshold
    TREAT_AS_END = "treat_as_end"       # Ends the fetch loop immediately


@dataclass(frozen=True)
class SyncProfile:
    """Budgets applied to one sync mode."""
    sync_type: SyncType
    lookback_days: int | None
    forward_days: int
    max_pages: int
    max_execution_seconds: float
    max_consecutive_errors: int
    max_consecutive_empty_pages: int
    batch_size: int
    max_attempts: int
    backoff_base_seconds: float
    backoff_max_seconds: float
    page_delay_seconds: float
    error_delay_seconds: float
    batch_delay_seconds: float


# ==================== INCREMENTAL SYNC ====================

INCREMENTAL_PROFILE = SyncProfile(
    sync_type=SyncType.INCREMENTAL,
    lookback_days=None,  # Window starts at the last successful sync
    forward_days=int(os.getenv("SYNC_FORWARD_DAYS", "365")),
    max_pages=int(os.getenv("SYNC_INCREMENTAL_MAX_PAGES", "50")),
    max_execution_seconds=float(os.getenv("SYNC_INCREMENTAL_MAX_SECONDS", "30")),
    max_consecutive_errors=int(os.getenv("SYNC_INCREMENTAL_MAX_ERRORS", "3")),
    max_consecutive_empty_pages=int(os.getenv("SYNC_INCREMENTAL_MAX_EMPTY", "5")),
    batch_size=int(os.getenv("SYNC_INCREMENTAL_BATCH_SIZE", "50")),
    max_attempts=3,
    backoff_base_seconds=1.0,
    backoff_max_seconds=10.0,
    page_delay_seconds=0.05,
    error_delay_seconds=1.0,
    batch_delay_seconds=0.1,
)


# ==================== FULL RESYNC ====================

FULL_PROFILE = SyncProfile(
    sync_type=SyncType.FULL,
    lookback_days=int(os.getenv("SYNC_FULL_LOOKBACK_DAYS", "1095")),  # 3 years back
    forward_days=int(os.getenv("SYNC_FORWARD_DAYS", "365")),
    max_pages=int(os.getenv("SYNC_FULL_MAX_PAGES", "2000")),
    max_execution_seconds=float(os.getenv("SYNC_FULL_MAX_SECONDS", "180")),
    max_consecutive_errors=int(os.getenv("SYNC_FULL_MAX_ERRORS", "5")),
    max_consecutive_empty_pages=int(os.getenv("SYNC_FULL_MAX_EMPTY", "15")),
    batch_size=int(os.getenv("SYNC_FULL_BATCH_SIZE", "100")),
    max_attempts=5,
    backoff_base_seconds=1.0,
    backoff_max_seconds=60.0,
    page_delay_seconds=0.1,
    error_delay_seconds=5.0,
    batch_delay_seconds=0.1,
)


# ==================== DOCUMENT DOWNLOADS ====================

DOCUMENT_MAX_ATTEMPTS = 3
DOCUMENT_BACKOFF_BASE_SECONDS = 1.0
DOCUMENT_BACKOFF_MAX_SECONDS = 10.0


# ==================== HEURISTICS ====================

SHORT_PAGE_POLICY = ShortPagePolicy(
    os.getenv("SYNC_SHORT_PAGE_POLICY", ShortPagePolicy.COUNT_AS_EMPTY.value)
)

# Incremental window start when no completed run exists yet
DEFAULT_WATERMARK_DAYS = int(os.getenv("SYNC_DEFAULT_WATERMARK_DAYS", "7"))


# ==================== VALIDATION ====================

def validate_sync_profile(profile: SyncProfile):
    """Validate a sync profile before a run uses it"""
    errors = []

    if profile.max_pages < 1:
        errors.append(f"max_pages ({profile.max_pages}) must be >= 1")
    if profile.batch_size < 1:
        errors.append(f"batch_size ({profile.batch_size}) must be >= 1")
    if profile.max_attempts < 1:
        errors.append(f"max_attempts ({profile.max_attempts}) must be >= 1")
    if profile.max_consecutive_errors < 1:
        errors.append(f"max_consecutive_errors ({profile.max_consecutive_errors}) must be >= 1")
    if profile.max_consecutive_empty_pages < 1:
        errors.append(f"max_consecutive_empty_pages ({profile.max_consecutive_empty_pages}) must be >= 1")
    if profile.sync_type == SyncType.FULL and not profile.lookback_days:
        errors.append("full profile requires lookback_days")

    if errors:
        error_msg = "\n".join([f"  - {err}" for err in errors])
        raise ValueError(f"Invalid {profile.sync_type.value} sync profile:\n{error_msg}")

    return True


def get_sync_config_summary() -> Dict[str, Any]:
    """Get current sync configuration as dictionary"""
    summary = {}
    for profile in (INCREMENTAL_PROFILE, FULL_PROFILE):
        values = asdict(profile)
        values["sync_type"] = profile.sync_type.value
        summary[profile.sync_type.value] = values
    summary["short_page_policy"] = SHORT_PAGE_POLICY.value
    summary["default_watermark_days"] = DEFAULT_WATERMARK_DAYS
    return summary
