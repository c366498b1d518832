"""
Tender Store - all Supabase table and RPC access used by the pipeline

The client is injected at construction; nothing here reaches for a global.
Network failures are retried through ``execute_with_retry``; everything else
(SQL errors, permission errors, constraint violations) propagates as
``postgrest.exceptions.APIError`` for the caller to classify.
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

from config.sync_config import SyncStatus, SyncType
from models.sync import SyncRun
from utils.db_utils import execute_with_retry
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")

TENDERS_TABLE = "tenders"
FETCH_LOGS_TABLE = "fetch_logs"
BOOKMARKS_TABLE = "bookmarks"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _first_row(data: Any) -> Optional[Dict[str, Any]]:
    """RPCs returning a table come back as a list; scalar/json ones as the value itself."""
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


class TenderStore:
    def __init__(
        self,
        client: Client,
        retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retries = retries
        self._sleep = sleep

    def _execute(self, operation_factory: Callable[[], Any]):
        return execute_with_retry(operation_factory, retries=self.retries, sleep=self._sleep)

    # ==================== HEALTH ====================

    def ping(self) -> None:
        """Raise if the store cannot be queried at all."""
        self._execute(lambda: self.client.table(TENDERS_TABLE).select("ocid").limit(1).execute())

    # ==================== TENDERS ====================

    def upsert_tender(self, record: Dict[str, Any]) -> None:
        # Single attempt: the writer counts failures, retrying here would hide them
        self.client.table(TENDERS_TABLE).upsert(record, on_conflict="ocid").execute()

    def count_open_tenders(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        response = self._execute(
            lambda: self.client.table(TENDERS_TABLE)
            .select("ocid", count="exact")
            .gt("close_date", now.isoformat())
            .limit(1)
            .execute()
        )
        return response.count or 0

    def get_tender(self, ocid: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            lambda: self.client.table(TENDERS_TABLE).select("*").eq("ocid", ocid).limit(1).execute()
        )
        return response.data[0] if response.data else None

    def fetch_tenders(
        self,
        updated_since: Optional[datetime] = None,
        page_size: int = 1000,
        max_rows: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch tender rows in chunks using PostgREST range pagination."""
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        results: List[Dict[str, Any]] = []
        offset = 0
        while True:
            def _run_page(offset=offset):
                query = self.client.table(TENDERS_TABLE).select("*")
                if updated_since:
                    query = query.gte("updated_at", updated_since.isoformat())
                return query.order("updated_at", desc=True).range(offset, offset + page_size - 1).execute()

            page = self._execute(_run_page).data or []
            results.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
            if max_rows and len(results) >= max_rows:
                break

        if max_rows and len(results) > max_rows:
            return results[:max_rows]
        return results

    # ==================== SYNC RUN LOG ====================

    def record_sync_run(self, run: SyncRun) -> Dict[str, Any]:
        row = run.to_row()
        self._execute(lambda: self.client.table(FETCH_LOGS_TABLE).insert(row).execute())
        return row

    def last_full_sync_at(self) -> Optional[datetime]:
        response = self._execute(
            lambda: self.client.table(FETCH_LOGS_TABLE)
            .select("created_at")
            .eq("sync_type", SyncType.FULL.value)
            .eq("sync_status", SyncStatus.COMPLETED.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first_row(response.data)
        return _parse_timestamp(row.get("created_at")) if row else None

    def get_last_sync_timestamp(self, default_days: int = 7, now: Optional[datetime] = None) -> datetime:
        """Watermark for incremental runs: the last completed run, else ``default_days`` ago."""
        now = now or datetime.now(timezone.utc)
        response = self._execute(
            lambda: self.client.table(FETCH_LOGS_TABLE)
            .select("last_successful_sync")
            .eq("sync_status", SyncStatus.COMPLETED.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first_row(response.data)
        watermark = _parse_timestamp(row.get("last_successful_sync")) if row else None
        return watermark or now - timedelta(days=default_days)

    def get_recent_sync_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        response = self._execute(
            lambda: self.client.table(FETCH_LOGS_TABLE)
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def get_sync_statistics(self, days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate the run log over the last ``days`` days."""
        now = now or datetime.now(timezone.utc)
        since = (now - timedelta(days=days)).isoformat()
        response = self._execute(
            lambda: self.client.table(FETCH_LOGS_TABLE)
            .select("*")
            .gte("created_at", since)
            .order("created_at", desc=True)
            .execute()
        )
        rows = response.data or []

        def _latest(sync_type: str) -> Optional[str]:
            for row in rows:
                if row.get("sync_type") == sync_type:
                    return row.get("created_at")
            return None

        total = len(rows)
        return {
            "total_syncs": total,
            "incremental_syncs": sum(1 for r in rows if r.get("sync_type") == SyncType.INCREMENTAL.value),
            "full_syncs": sum(1 for r in rows if r.get("sync_type") == SyncType.FULL.value),
            "failed_syncs": sum(1 for r in rows if r.get("sync_status") != SyncStatus.COMPLETED.value),
            "last_incremental_sync": _latest(SyncType.INCREMENTAL.value),
            "last_full_sync": _latest(SyncType.FULL.value),
            "avg_execution_time_ms": round(sum(r.get("execution_time_ms") or 0 for r in rows) / total) if total else 0,
            "total_api_calls": sum(r.get("api_calls_made") or 0 for r in rows),
            "avg_records_per_sync": round(sum(r.get("total_fetched") or 0 for r in rows) / total) if total else 0,
        }

    # ==================== VIEWS ====================

    def record_view(
        self,
        ocid: str,
        viewer_ip: Optional[str],
        user_agent: Optional[str],
        user_id: Optional[str],
        window_minutes: int,
        viewed_at: datetime,
    ) -> Dict[str, Any]:
        """Dedup check, event insert and increment in one ``increment_tender_view`` call.

        Signed-in viewers are identified by account, anonymous ones by IP + agent.
        Returns ``{"view_recorded": bool, "view_count": int}``.
        """
        params = {
            "p_tender_ocid": ocid,
            "p_viewer_ip": viewer_ip or "unknown",
            "p_user_agent": user_agent or "unknown",
            "p_user_id": user_id,
            "p_window_minutes": window_minutes,
            "p_viewed_at": viewed_at.isoformat(),
        }
        response = self._execute(lambda: self.client.rpc("increment_tender_view", params).execute())
        row = _first_row(response.data) or {}
        return {
            "view_recorded": bool(row.get("view_recorded")),
            "view_count": int(row.get("view_count") or 0),
        }

    def get_tender_view_stats(self, ocid: str) -> Dict[str, int]:
        response = self._execute(
            lambda: self.client.rpc("get_tender_view_stats", {"tender_ocid_param": ocid}).execute()
        )
        row = _first_row(response.data) or {}
        return {
            "total_views": int(row.get("total_views") or 0),
            "unique_viewers": int(row.get("unique_viewers") or 0),
            "views_today": int(row.get("views_today") or 0),
            "views_this_week": int(row.get("views_this_week") or 0),
        }

    # ==================== BOOKMARKS ====================

    def insert_bookmark(self, user_id: str, ocid: str) -> None:
        """Plain insert; a duplicate raises APIError with code 23505."""
        row = {"user_id": user_id, "tender_ocid": ocid}
        self._execute(lambda: self.client.table(BOOKMARKS_TABLE).insert(row).execute())

    def delete_bookmark(self, user_id: str, ocid: str) -> int:
        response = self._execute(
            lambda: self.client.table(BOOKMARKS_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("tender_ocid", ocid)
            .execute()
        )
        return len(response.data or [])

    def bookmark_exists(self, user_id: str, ocid: str) -> bool:
        # One attempt only; the bookmark service owns the retry loop for this check
        response = (
            self.client.table(BOOKMARKS_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .eq("tender_ocid", ocid)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def list_bookmarks(self, user_id: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        response = self._execute(
            lambda: self.client.table(BOOKMARKS_TABLE)
            .select("id, tender_ocid, created_at, tenders(*)")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        return response.data or []

    # ==================== ADMIN ====================

    def is_admin(self, user_id: str) -> bool:
        response = self._execute(lambda: self.client.rpc("is_admin", {"user_id_param": user_id}).execute())
        data = response.data
        if isinstance(data, list):
            data = data[0] if data else False
        return bool(data)

    def get_admin_stats(self) -> Dict[str, Any]:
        response = self._execute(lambda: self.client.rpc("get_admin_stats", {}).execute())
        row = _first_row(response.data) or {}
        return {
            "total_users": int(row.get("total_users") or 0),
            "total_tenders": int(row.get("total_tenders") or 0),
            "open_tenders": int(row.get("open_tenders") or 0),
            "total_bookmarks": int(row.get("total_bookmarks") or 0),
            "last_sync": row.get("last_sync"),
        }

    def get_recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        response = self._execute(
            lambda: self.client.rpc("get_recent_activity", {"limit_count": limit}).execute()
        )
        data = response.data
        return data if isinstance(data, list) else []
