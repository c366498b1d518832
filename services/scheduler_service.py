"""
Scheduler Service - periodic entry point for tender syncs

One scheduled step = orchestrator run + optional search indexing. Indexing is
best effort: a failure is reported in the response but never turns a
successful ingestion into a failed one. Nothing raised by a step is allowed
to escape the scheduling loop.
"""
import threading
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config.settings import ENABLE_TENDER_SYNC, SYNC_INTERVAL_HOURS
from services.search_index_service import SearchIndexer
from services.sync_orchestrator import SyncOrchestrator
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_scheduled_sync(
    orchestrator: SyncOrchestrator,
    indexer: Optional[SearchIndexer] = None,
    force_full: bool = False,
) -> Dict[str, Any]:
    logger.info(f"Automated tender sync started at: {_timestamp()}")

    try:
        result = orchestrator.run(force_full=force_full)
    except Exception as e:
        logger.error(f"Automated sync failed: {e}")
        traceback.print_exc()
        return {"success": False, "error": str(e), "timestamp": _timestamp()}

    if not result.success:
        logger.error(f"Sync operation failed: {result.error}")
        return {
            "success": False,
            "error": result.error,
            "syncType": result.sync_type.value,
            "syncStatus": result.sync_status.value,
            "timestamp": _timestamp(),
            "stats": {"database": result.stats.to_dict(), "search": None},
        }

    search_stats = None
    search_error = None
    if indexer is not None and indexer.is_configured:
        logger.info("Indexing tenders to search...")
        try:
            search_stats = indexer.index_tenders()
            logger.info(f"Search indexing completed: {search_stats.get('indexed', 0)} records")
        except Exception as e:
            # Search freshness never decides whether ingestion succeeded
            logger.warning(f"Search indexing error: {e}")
            search_error = str(e)
    else:
        logger.info("Search index not configured, skipping search indexing")

    response = {
        "success": True,
        "message": "Automated tender sync completed successfully",
        "syncType": result.sync_type.value,
        "syncStatus": result.sync_status.value,
        "stoppedReason": result.stopped_reason,
        "timestamp": _timestamp(),
        "stats": {"database": result.stats.to_dict(), "search": search_stats},
    }
    if search_error:
        response["searchError"] = search_error
    return response


class SyncScheduler:
    """Runs ``run_scheduled_sync`` every ``interval_hours`` until stopped."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        indexer: Optional[SearchIndexer] = None,
        interval_hours: float = SYNC_INTERVAL_HOURS,
        enabled: bool = ENABLE_TENDER_SYNC,
    ):
        self.orchestrator = orchestrator
        self.indexer = indexer
        self.interval_seconds = max(interval_hours * 3600, 1.0)
        self.enabled = enabled
        self.consecutive_failures = 0
        self.last_result: Optional[Dict[str, Any]] = None
        self._stop = threading.Event()

    def run_once(self, force_full: bool = False) -> Dict[str, Any]:
        try:
            result = run_scheduled_sync(self.orchestrator, self.indexer, force_full=force_full)
        except Exception as e:
            logger.error(f"Scheduled sync step crashed: {e}")
            traceback.print_exc()
            result = {"success": False, "error": str(e), "timestamp": _timestamp()}

        if result.get("success"):
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1
            logger.warning(f"Scheduled sync failed ({self.consecutive_failures} in a row), will retry next cycle")
        self.last_result = result
        return result

    def run_forever(self, initial_delay: float = 0.0) -> None:
        logger.info(f"Sync scheduler started, interval {self.interval_seconds:.0f}s")
        if initial_delay and self._stop.wait(initial_delay):
            return

        while not self._stop.is_set():
            if self.enabled:
                self.run_once()
            else:
                logger.info("ENABLE_TENDER_SYNC flag disabled; skipping scheduled sync cycle.")
            logger.debug(f"Sleeping {self.interval_seconds:.0f}s until next sync cycle.")
            if self._stop.wait(self.interval_seconds):
                break
        logger.info("Sync scheduler stopped")

    def stop(self) -> None:
        self._stop.set()

    def start_in_background(self, initial_delay: float = 0.0) -> threading.Thread:
        thread = threading.Thread(
            target=self.run_forever,
            kwargs={"initial_delay": initial_delay},
            name="tender-sync-scheduler",
            daemon=True,
        )
        thread.start()
        return thread


def build_scheduler(client, session=None) -> SyncScheduler:
    """Wire store, orchestrator and indexer around one injected Supabase client."""
    store = TenderStore(client)
    orchestrator = SyncOrchestrator(store, session=session)
    indexer = SearchIndexer(store, session=session)
    return SyncScheduler(orchestrator, indexer)
