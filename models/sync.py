"""
Run statistics and results produced by the sync pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config.sync_config import SyncStatus, SyncType


class StoppedReason:
    MAX_PAGES = "max_pages"
    NO_MORE_DATA = "no_more_data"
    TIMEOUT = "timeout"
    CONSECUTIVE_ERRORS = "consecutive_errors"
    END_OF_DATA = "end_of_data"
    COMPLETED = "completed"


@dataclass
class FetchOutcome:
    """What the fetch loop collected and why it stopped."""
    releases: List[Dict[str, Any]] = field(default_factory=list)
    pages_processed: int = 0
    api_calls_made: int = 0
    consecutive_errors: int = 0
    consecutive_empty_pages: int = 0
    total_errors: int = 0
    stopped_reason: str = StoppedReason.COMPLETED
    error_threshold_hit: bool = False


@dataclass
class WriteStats:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    batches: int = 0
    failed_ocids: List[str] = field(default_factory=list)

    def merge(self, other: "WriteStats") -> None:
        self.attempted += other.attempted
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.batches += other.batches
        self.failed_ocids.extend(other.failed_ocids)


@dataclass
class SyncStats:
    total_fetched: int = 0
    open_tenders: int = 0
    successful_upserts: int = 0
    errors: int = 0
    pages_processed: int = 0
    api_calls_made: int = 0
    consecutive_errors: int = 0
    execution_time_ms: int = 0
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    batches: int = 0

    @property
    def records_per_api_call(self) -> int:
        if self.api_calls_made <= 0:
            return 0
        return round(self.total_fetched / self.api_calls_made)

    @property
    def records_per_second(self) -> int:
        if self.execution_time_ms <= 0:
            return 0
        return round(self.total_fetched / (self.execution_time_ms / 1000))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "totalFetched": self.total_fetched,
            "openTenders": self.open_tenders,
            "successfulUpserts": self.successful_upserts,
            "errors": self.errors,
            "pagesProcessed": self.pages_processed,
            "apiCallsMade": self.api_calls_made,
            "consecutiveErrors": self.consecutive_errors,
            "executionTimeMs": self.execution_time_ms,
            "batches": self.batches,
            "efficiency": {
                "recordsPerApiCall": self.records_per_api_call,
                "recordsPerSecond": self.records_per_second,
            },
        }
        if self.date_from or self.date_to:
            data["dateRange"] = {"from": self.date_from, "to": self.date_to}
        return data


@dataclass
class SyncRun:
    """One row of the run log. Written once at the end of a run, never updated."""
    sync_type: SyncType
    sync_status: SyncStatus
    stats: SyncStats
    stopped_reason: Optional[str] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        finished = self.finished_at.isoformat()
        return {
            "sync_type": self.sync_type.value,
            "sync_status": self.sync_status.value,
            "total_fetched": self.stats.total_fetched,
            "open_tenders": self.stats.open_tenders,
            "pages_processed": self.stats.pages_processed,
            "api_calls_made": self.stats.api_calls_made,
            "execution_time_ms": self.stats.execution_time_ms,
            "consecutive_errors": self.stats.consecutive_errors,
            "date_range_from": self.stats.date_from,
            "date_range_to": self.stats.date_to,
            "stopped_reason": self.stopped_reason,
            # Only completed runs advance the incremental watermark
            "last_successful_sync": finished if self.sync_status == SyncStatus.COMPLETED else None,
            "created_at": finished,
        }


@dataclass
class SyncResult:
    success: bool
    sync_type: SyncType
    sync_status: SyncStatus
    stats: SyncStats
    message: str = ""
    stopped_reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "syncType": self.sync_type.value,
            "syncStatus": self.sync_status.value,
            "stoppedReason": self.stopped_reason,
            "stats": self.stats.to_dict(),
        }
        if self.error is not None:
            data["error"] = self.error
        else:
            data["message"] = self.message
        return data
