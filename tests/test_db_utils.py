from datetime import datetime, timedelta, timezone

import httpx
import pytest
from postgrest.exceptions import APIError

from config.sync_config import SyncStatus, SyncType
from models.sync import SyncRun, SyncStats
from utils.db_utils import execute_with_retry, is_transient_db_error, is_unique_violation

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_transient_errors_are_retried():
    attempts = []
    delays = []

    def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused")
        return "ok"

    assert execute_with_retry(operation, retries=3, sleep=delays.append) == "ok"
    assert len(attempts) == 3
    assert delays == [0.5, 1.0]


def test_sql_errors_are_not_retried():
    attempts = []

    def operation():
        attempts.append(1)
        raise APIError({"message": "relation does not exist", "code": "42P01"})

    with pytest.raises(APIError):
        execute_with_retry(operation, sleep=lambda s: None)
    assert len(attempts) == 1


def test_exhausted_retries_reraise_last_error():
    def operation():
        raise httpx.ReadError("reset")

    with pytest.raises(httpx.ReadError):
        execute_with_retry(operation, retries=2, sleep=lambda s: None)


def test_error_classification():
    assert is_transient_db_error(httpx.ReadTimeout("timed out"))
    assert is_transient_db_error(Exception("Connection reset by peer"))
    assert not is_transient_db_error(APIError({"message": "permission denied", "code": "42501"}))

    assert is_unique_violation(APIError({"message": "duplicate key", "code": "23505"}))
    assert not is_unique_violation(APIError({"message": "other", "code": "22P02"}))


def test_watermark_defaults_when_no_completed_run(store, fake_supabase):
    assert store.get_last_sync_timestamp(default_days=7, now=NOW) == NOW - timedelta(days=7)

    store.record_sync_run(SyncRun(SyncType.INCREMENTAL, SyncStatus.PARTIAL_FAILURE, SyncStats(), finished_at=NOW))
    assert store.get_last_sync_timestamp(default_days=7, now=NOW) == NOW - timedelta(days=7)

    finished = NOW - timedelta(hours=3)
    store.record_sync_run(SyncRun(SyncType.INCREMENTAL, SyncStatus.COMPLETED, SyncStats(), finished_at=finished))
    assert store.get_last_sync_timestamp(default_days=7, now=NOW) == finished


def test_sync_statistics(store):
    store.record_sync_run(SyncRun(SyncType.FULL, SyncStatus.COMPLETED, SyncStats(total_fetched=100, api_calls_made=4, execution_time_ms=2000), finished_at=NOW - timedelta(days=1)))
    store.record_sync_run(SyncRun(SyncType.INCREMENTAL, SyncStatus.FAILED, SyncStats(), finished_at=NOW - timedelta(hours=1)))
    store.record_sync_run(SyncRun(SyncType.INCREMENTAL, SyncStatus.COMPLETED, SyncStats(total_fetched=20, api_calls_made=2), finished_at=NOW - timedelta(days=40)))

    stats = store.get_sync_statistics(days=30, now=NOW)

    assert stats["total_syncs"] == 2
    assert stats["full_syncs"] == 1
    assert stats["incremental_syncs"] == 1
    assert stats["failed_syncs"] == 1
    assert stats["total_api_calls"] == 4
    assert stats["avg_records_per_sync"] == 50
    assert stats["last_full_sync"] == (NOW - timedelta(days=1)).isoformat()
