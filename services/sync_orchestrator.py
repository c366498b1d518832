"""
Sync Orchestrator

Drives one sync run through four phases:

    determine_mode -> fetch_loop -> write_phase -> finalize

Operational failures (API errors, individual write failures) are absorbed
into run statistics. Only precondition failures (store unreachable, sync mode
undeterminable, invalid profile) end the run early, and even those come back
as a failed ``SyncResult`` rather than an exception.
"""
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from config.settings import FULL_SYNC_INTERVAL_DAYS, OCDS_PAGE_SIZE
from config.sync_config import (
    DEFAULT_WATERMARK_DAYS,
    FULL_PROFILE,
    INCREMENTAL_PROFILE,
    SHORT_PAGE_POLICY,
    ShortPagePolicy,
    SyncProfile,
    SyncStatus,
    SyncType,
    validate_sync_profile,
)
from models.release import ReleasePage
from models.sync import FetchOutcome, StoppedReason, SyncResult, SyncRun, SyncStats, WriteStats
from services.exceptions import SyncPreconditionError
from services.tender_normalizer import normalize_raw
from services.tender_store import TenderStore
from services.upstream_client import UpstreamClient
from services.upsert_writer import UpsertWriter
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")


@dataclass(frozen=True)
class SyncPlan:
    """Output of ``determine_mode``: which profile to run and over which window."""
    profile: SyncProfile
    date_from: date
    date_to: date

    @property
    def sync_type(self) -> SyncType:
        return self.profile.sync_type


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    def __init__(
        self,
        store: TenderStore,
        session: Optional[requests.Session] = None,
        upstream_factory: Optional[Callable[[SyncProfile], UpstreamClient]] = None,
        incremental_profile: SyncProfile = INCREMENTAL_PROFILE,
        full_profile: SyncProfile = FULL_PROFILE,
        full_sync_interval_days: int = FULL_SYNC_INTERVAL_DAYS,
        short_page_policy: ShortPagePolicy = SHORT_PAGE_POLICY,
        page_size: int = OCDS_PAGE_SIZE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.session = session
        self.incremental_profile = incremental_profile
        self.full_profile = full_profile
        self.full_sync_interval_days = full_sync_interval_days
        self.short_page_policy = short_page_policy
        self.page_size = page_size
        self._clock = clock
        self._sleep = sleep
        self._now = now
        self._upstream_factory = upstream_factory or self._default_upstream

    def _default_upstream(self, profile: SyncProfile) -> UpstreamClient:
        return UpstreamClient.from_profile(profile, session=self.session, sleep=self._sleep)

    # ==================== PHASE 1: MODE ====================

    def is_full_sync_due(self, now: datetime) -> bool:
        last_full = self.store.last_full_sync_at()
        if last_full is None:
            logger.info("No completed full sync on record, full sync is due")
            return True
        due = now - last_full > timedelta(days=self.full_sync_interval_days)
        logger.info(f"Last full sync at {last_full.isoformat()}, full sync due: {due}")
        return due

    def determine_mode(self, force_full: bool = False) -> SyncPlan:
        now = self._now()
        try:
            full = force_full or self.is_full_sync_due(now)
            if full:
                profile = self.full_profile
                window_start = now - timedelta(days=profile.lookback_days)
            else:
                profile = self.incremental_profile
                window_start = self.store.get_last_sync_timestamp(DEFAULT_WATERMARK_DAYS, now)
        except Exception as e:
            raise SyncPreconditionError(f"Cannot determine sync mode: {e}") from e

        try:
            validate_sync_profile(profile)
        except ValueError as e:
            raise SyncPreconditionError(str(e)) from e

        date_to = (now + timedelta(days=profile.forward_days)).date()
        return SyncPlan(profile=profile, date_from=window_start.date(), date_to=date_to)

    # ==================== PHASE 2: FETCH ====================

    def _apply_page(self, outcome: FetchOutcome, page: ReleasePage, threshold: int) -> Optional[str]:
        """Update the empty-page counter for a fetched page; return a stop reason when the loop should end."""
        if page.is_empty:
            outcome.consecutive_empty_pages += 1
        else:
            outcome.consecutive_empty_pages = 0
            if page.is_short:
                if self.short_page_policy == ShortPagePolicy.TREAT_AS_END:
                    return StoppedReason.END_OF_DATA
                # A short page usually means the end is near
                outcome.consecutive_empty_pages += 1

        if outcome.consecutive_empty_pages >= threshold:
            return StoppedReason.NO_MORE_DATA
        return None

    def fetch_loop(self, plan: SyncPlan, started: float) -> FetchOutcome:
        profile = plan.profile
        client = self._upstream_factory(profile)
        outcome = FetchOutcome()
        page_number = 1

        logger.info(
            f"Starting {plan.sync_type.value} fetch: {plan.date_from} to {plan.date_to}, "
            f"max {profile.max_pages} pages, {profile.max_execution_seconds}s budget"
        )

        while True:
            if page_number > profile.max_pages:
                outcome.stopped_reason = StoppedReason.MAX_PAGES
                break
            if self._clock() - started > profile.max_execution_seconds:
                logger.warning("Approaching execution time limit, stopping fetch")
                outcome.stopped_reason = StoppedReason.TIMEOUT
                break

            outcome.api_calls_made += 1
            try:
                page = client.fetch_page(plan.date_from, plan.date_to, page_number, self.page_size)
            except Exception as e:
                outcome.consecutive_errors += 1
                outcome.total_errors += 1
                logger.error(
                    f"Error fetching page {page_number} "
                    f"({outcome.consecutive_errors}/{profile.max_consecutive_errors} consecutive): {e}"
                )
                page_number += 1
                if outcome.consecutive_errors >= profile.max_consecutive_errors:
                    logger.error(f"Too many consecutive errors ({outcome.consecutive_errors}), stopping fetch")
                    outcome.error_threshold_hit = True
                    outcome.stopped_reason = StoppedReason.CONSECUTIVE_ERRORS
                    break
                self._sleep(profile.error_delay_seconds)
                continue

            outcome.consecutive_errors = 0
            outcome.pages_processed += 1
            outcome.releases.extend(page.releases)
            logger.info(f"Page {page_number}: +{page.count} releases (Total: {len(outcome.releases)})")
            page_number += 1

            stop = self._apply_page(outcome, page, profile.max_consecutive_empty_pages)
            if stop:
                outcome.stopped_reason = stop
                break

            if page_number <= profile.max_pages and profile.page_delay_seconds > 0:
                self._sleep(profile.page_delay_seconds)

        logger.info(
            f"Fetch finished ({outcome.stopped_reason}): {len(outcome.releases)} releases, "
            f"{outcome.api_calls_made} API calls, {outcome.total_errors} errors"
        )
        return outcome

    # ==================== PHASE 3: WRITE ====================

    def normalize_all(self, releases: List[Dict[str, Any]], now: datetime) -> Tuple[List[Dict[str, Any]], int]:
        """Normalize raw releases; later releases of the same ocid replace earlier ones."""
        rows: Dict[str, Dict[str, Any]] = {}
        failures = 0
        for raw in releases:
            try:
                row = normalize_raw(raw, now)
            except ValueError as e:
                failures += 1
                logger.error(f"Skipping malformed release {raw.get('ocid', '<no ocid>')}: {e}")
                continue
            rows[row["ocid"]] = row

        duplicates = len(releases) - failures - len(rows)
        if duplicates:
            logger.info(f"Collapsed {duplicates} repeated releases into their latest version")
        return list(rows.values()), failures

    def write_phase(self, plan: SyncPlan, releases: List[Dict[str, Any]], now: datetime) -> Tuple[WriteStats, int]:
        rows, failures = self.normalize_all(releases, now)
        writer = UpsertWriter(
            self.store,
            batch_size=plan.profile.batch_size,
            batch_delay=plan.profile.batch_delay_seconds,
            sleep=self._sleep,
        )
        return writer.write(rows), failures

    # ==================== PHASE 4: FINALIZE ====================

    def _count_open(self, now: datetime) -> int:
        try:
            return self.store.count_open_tenders(now)
        except Exception as e:
            logger.error(f"Failed to count open tenders: {e}")
            return 0

    def _record(self, run: SyncRun) -> None:
        try:
            self.store.record_sync_run(run)
        except Exception as e:
            logger.error(f"Failed to record {run.sync_type.value} sync run: {e}")

    def finalize(
        self,
        plan: SyncPlan,
        fetch: FetchOutcome,
        write: WriteStats,
        normalize_failures: int,
        started: float,
    ) -> SyncResult:
        now = self._now()
        status = SyncStatus.PARTIAL_FAILURE if fetch.error_threshold_hit else SyncStatus.COMPLETED

        stats = SyncStats(
            total_fetched=len(fetch.releases),
            open_tenders=self._count_open(now),
            successful_upserts=write.succeeded,
            errors=write.failed + normalize_failures,
            pages_processed=fetch.pages_processed,
            api_calls_made=fetch.api_calls_made,
            consecutive_errors=fetch.consecutive_errors,
            execution_time_ms=int((self._clock() - started) * 1000),
            date_from=plan.date_from.isoformat(),
            date_to=plan.date_to.isoformat(),
            batches=write.batches,
        )
        self._record(SyncRun(plan.sync_type, status, stats, fetch.stopped_reason, finished_at=now))

        message = (
            f"{plan.sync_type.value.capitalize()} sync {status.value}: "
            f"{stats.successful_upserts} tenders upserted, {stats.errors} errors, "
            f"{stats.api_calls_made} API calls"
        )
        logger.info(message)
        return SyncResult(
            success=True,
            sync_type=plan.sync_type,
            sync_status=status,
            stats=stats,
            message=message,
            stopped_reason=fetch.stopped_reason,
        )

    # ==================== ENTRY POINT ====================

    def run(self, force_full: bool = False) -> SyncResult:
        started = self._clock()
        try:
            plan = self.determine_mode(force_full)
        except SyncPreconditionError as e:
            logger.error(f"Sync aborted: {e}")
            sync_type = SyncType.FULL if force_full else SyncType.INCREMENTAL
            self._record(SyncRun(sync_type, SyncStatus.FAILED, SyncStats(), str(e), finished_at=self._now()))
            return SyncResult(
                success=False,
                sync_type=sync_type,
                sync_status=SyncStatus.FAILED,
                stats=SyncStats(),
                error=str(e),
            )

        logger.info(f"Running {plan.sync_type.value} sync")
        fetch = self.fetch_loop(plan, started)
        write, normalize_failures = self.write_phase(plan, fetch.releases, self._now())
        return self.finalize(plan, fetch, write, normalize_failures, started)
