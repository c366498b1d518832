import os
import sys
import threading
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-supabase-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("DISABLE_SYNC_LOOP", "1")

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from postgrest.exceptions import APIError  # noqa: E402


# ==================== FAKE SUPABASE ====================

def _comparable(value):
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.operation = "select"
        self.payload = None
        self.on_conflict = None
        self.count_mode = None
        self.filters = []
        self.order_by = None
        self.limit_n = None
        self.range_bounds = None

    def select(self, *columns, count=None):
        self.operation = "select"
        self.count_mode = count
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def _filter(self, column, value, predicate):
        self.filters.append((column, value, predicate))
        return self

    def eq(self, column, value):
        return self._filter(column, value, lambda a, b: a == b)

    def gt(self, column, value):
        return self._filter(column, value, lambda a, b: a is not None and _comparable(a) > _comparable(b))

    def gte(self, column, value):
        return self._filter(column, value, lambda a, b: a is not None and _comparable(a) >= _comparable(b))

    def lt(self, column, value):
        return self._filter(column, value, lambda a, b: a is not None and _comparable(a) < _comparable(b))

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def range(self, start, end):
        self.range_bounds = (start, end)
        return self

    def _matches(self, row):
        return all(predicate(row.get(column), value) for column, value, predicate in self.filters)

    def execute(self):
        return self.client._execute(self)


class FakeRpc:
    def __init__(self, client, name, params):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        self.client.rpc_calls.append((self.name, self.params))
        error = self.client.fail_rpcs.get(self.name)
        if error is not None:
            raise error
        handler = self.client.rpc_handlers.get(self.name)
        if handler is None:
            raise APIError({"message": f"function {self.name} does not exist", "code": "42883"})
        return SimpleNamespace(data=handler(self.params), count=None)


class FakeAuth:
    def __init__(self):
        self.users = {}

    def get_user(self, token):
        user = self.users.get(token)
        if user is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=user)


class FakeSupabase:
    """In-memory stand-in for the subset of supabase-py used by TenderStore."""

    UNIQUE_KEYS = {"tenders": ("ocid",), "bookmarks": ("user_id", "tender_ocid")}

    def __init__(self):
        self.tables = {}
        self.lock = threading.Lock()
        self.auth = FakeAuth()
        self.admin_ids = set()
        self.upsert_calls = 0
        self.rpc_calls = []
        self.fail_upsert_ocids = set()
        self.fail_tables = {}
        self.fail_rpcs = {}
        self.rpc_handlers = {
            "increment_tender_view": self._increment_tender_view,
            "get_tender_view_stats": self._view_stats,
            "is_admin": lambda params: params["user_id_param"] in self.admin_ids,
            "get_admin_stats": self._admin_stats,
            "get_recent_activity": self._recent_activity,
        }

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})

    def _execute(self, query):
        error = self.fail_tables.get(query.table)
        if error is not None:
            raise error

        with self.lock:
            rows = self.rows(query.table)
            if query.operation == "upsert":
                return self._upsert(query, rows)
            if query.operation == "insert":
                return self._insert(query, rows)
            if query.operation == "update":
                matched = [row for row in rows if query._matches(row)]
                for row in matched:
                    row.update(query.payload)
                return SimpleNamespace(data=[dict(r) for r in matched], count=None)
            if query.operation == "delete":
                removed = [row for row in rows if query._matches(row)]
                self.tables[query.table] = [row for row in rows if not query._matches(row)]
                return SimpleNamespace(data=removed, count=None)

            matched = [dict(row) for row in rows if query._matches(row)]
            total = len(matched)
            if query.order_by:
                column, desc = query.order_by
                present = [r for r in matched if r.get(column) is not None]
                missing = [r for r in matched if r.get(column) is None]
                present.sort(key=lambda r: _comparable(r[column]), reverse=desc)
                matched = present + missing
            if query.range_bounds:
                start, end = query.range_bounds
                matched = matched[start:end + 1]
            if query.limit_n is not None:
                matched = matched[:query.limit_n]
            return SimpleNamespace(data=matched, count=total if query.count_mode else None)

    def _upsert(self, query, rows):
        self.upsert_calls += 1
        record = dict(query.payload)
        if record.get("ocid") in self.fail_upsert_ocids:
            raise APIError({"message": "simulated write failure", "code": "XX000"})
        key = query.on_conflict
        for row in rows:
            if row.get(key) == record.get(key):
                row.update(record)
                return SimpleNamespace(data=[dict(row)], count=None)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("view_count", 0)
        rows.append(record)
        return SimpleNamespace(data=[dict(record)], count=None)

    def _insert(self, query, rows):
        record = dict(query.payload)
        unique = self.UNIQUE_KEYS.get(query.table)
        if unique and any(all(row.get(c) == record.get(c) for c in unique) for row in rows):
            raise APIError({"message": "duplicate key value violates unique constraint", "code": "23505"})
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        rows.append(record)
        return SimpleNamespace(data=[dict(record)], count=None)

    # RPC handlers mirror migrations/001_tender_sync.sql

    def _increment_tender_view(self, params):
        ocid = params["p_tender_ocid"]
        viewed_at = _comparable(params["p_viewed_at"])
        since = viewed_at - timedelta(minutes=params["p_window_minutes"])
        with self.lock:
            for view in self.rows("tender_views"):
                if view["tender_ocid"] != ocid or _comparable(view["viewed_at"]) < since:
                    continue
                if params["p_user_id"]:
                    same_viewer = view.get("user_id") == params["p_user_id"]
                else:
                    same_viewer = (
                        view.get("user_id") is None
                        and view["viewer_ip"] == params["p_viewer_ip"]
                        and view["user_agent"] == params["p_user_agent"]
                    )
                if same_viewer:
                    return {"view_recorded": False, "view_count": self._view_count(ocid)}

            self.rows("tender_views").append({
                "id": str(uuid.uuid4()),
                "tender_ocid": ocid,
                "viewer_ip": params["p_viewer_ip"],
                "user_agent": params["p_user_agent"],
                "user_id": params["p_user_id"],
                "viewed_at": params["p_viewed_at"],
            })
            for row in self.rows("tenders"):
                if row.get("ocid") == ocid:
                    row["view_count"] = (row.get("view_count") or 0) + 1
            return {"view_recorded": True, "view_count": self._view_count(ocid)}

    def _view_count(self, ocid):
        for row in self.rows("tenders"):
            if row.get("ocid") == ocid:
                return row.get("view_count") or 0
        return 0

    def _view_stats(self, params):
        views = [v for v in self.rows("tender_views") if v["tender_ocid"] == params["tender_ocid_param"]]
        viewers = {v.get("user_id") or v.get("viewer_ip") for v in views}
        return [{
            "total_views": len(views),
            "unique_viewers": len(viewers),
            "views_today": len(views),
            "views_this_week": len(views),
        }]

    def _admin_stats(self, params):
        now = datetime.now(timezone.utc)
        tenders = self.rows("tenders")
        logs = self.rows("fetch_logs")
        return [{
            "total_users": len(self.auth.users),
            "total_tenders": len(tenders),
            "open_tenders": sum(1 for t in tenders if t.get("close_date") and _comparable(t["close_date"]) > now),
            "total_bookmarks": len(self.rows("bookmarks")),
            "last_sync": max((log["created_at"] for log in logs), default=None),
        }]

    def _recent_activity(self, params):
        bookmarks = sorted(self.rows("bookmarks"), key=lambda b: b["created_at"], reverse=True)
        return [
            {"activity_type": "bookmark", "description": f"User bookmarked tender: {b['tender_ocid']}", "created_at": b["created_at"]}
            for b in bookmarks[:params.get("limit_count", 10)]
        ]


# ==================== FAKE HTTP ====================

class FakeHttpResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", headers=None, reason=""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON")
        return self._json

    def raise_for_status(self):
        import requests
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class ScriptedSession:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class PagedSession:
    """Serves OCDS pages by PageNumber; pages beyond the script are empty."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        page_number = params["PageNumber"]
        self.calls.append(page_number)
        item = self.pages.get(page_number, [])
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return FakeHttpResponse(status_code=item, reason="Scripted")
        return FakeHttpResponse(json_data={"releases": item})


def make_release(ocid, title="Supply of office furniture", close_date=None, **tender_fields):
    tender = {"id": f"BID-{ocid}", "title": title, "description": tender_fields.pop("description", None)}
    if close_date:
        tender["tenderPeriod"] = {"startDate": "2025-01-01T00:00:00Z", "endDate": close_date}
    tender.update(tender_fields)
    return {
        "ocid": ocid,
        "id": f"{ocid}-release",
        "date": "2025-01-01T00:00:00Z",
        "tender": tender,
        "buyer": {"name": "Department of Public Works"},
    }


def make_releases(count, prefix="ocds-test"):
    return [make_release(f"{prefix}-{i}") for i in range(count)]


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def store(fake_supabase):
    from services.tender_store import TenderStore
    return TenderStore(fake_supabase, sleep=lambda s: None)

