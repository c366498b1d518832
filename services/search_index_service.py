"""
Search Index Service

Pushes stored tenders to an external search index endpoint. Records are
flattened for search, long text is truncated to keep records under the
index's size limits, and uploads go out in batches.
"""
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from config.settings import SEARCH_INDEX_NAME, SEARCH_INDEX_TOKEN, SEARCH_INDEX_URL
from services.exceptions import SearchIndexError
from services.tender_normalizer import parse_datetime
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")

MAX_DESC_LENGTH = 5000
MAX_OTHER_TEXT_LENGTH = 1000
INDEX_BATCH_SIZE = 1000

SEARCHABLE_FIELDS = (
    "title",
    "description",
    "bid_description",
    "category",
    "buyer",
    "department",
    "contact_person",
    "service_location",
    "special_conditions",
    "bid_number",
    "reference_number",
)

PASSTHROUGH_FIELDS = (
    "title",
    "category",
    "buyer",
    "department",
    "close_date",
    "opening_date",
    "bid_number",
    "contact_person",
    "contact_email",
    "service_location",
    "submission_method",
    "province",
    "industry_category",
    "created_at",
    "updated_at",
)


def truncate_text(text: Optional[str], max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def days_until_close(close_date: Any, now: Optional[datetime] = None) -> int:
    """Whole days until closing, rounded up; -1 when there is no close date."""
    close = parse_datetime(close_date)
    if close is None:
        return -1
    now = now or datetime.now(timezone.utc)
    return math.ceil((close - now).total_seconds() / 86400)


def to_search_record(tender: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    truncated = dict(tender)
    truncated["description"] = truncate_text(tender.get("description"), MAX_DESC_LENGTH)
    truncated["bid_description"] = truncate_text(tender.get("bid_description"), MAX_DESC_LENGTH)
    truncated["special_conditions"] = truncate_text(tender.get("special_conditions"), MAX_OTHER_TEXT_LENGTH)

    searchable_text = " ".join(
        value for value in (truncated.get(field) for field in SEARCHABLE_FIELDS)
        if value and isinstance(value, str)
    ).lower()

    days_left = days_until_close(tender.get("close_date"), now)
    record = {field: tender.get(field) or "" for field in PASSTHROUGH_FIELDS}
    record.update({
        "objectID": tender["ocid"],
        "ocid": tender["ocid"],
        "description": truncated["description"],
        "special_conditions": truncated["special_conditions"],
        "searchable_text": searchable_text,
        "days_until_close": days_left,
        "is_open": days_left > 0,
    })
    return record


class SearchIndexer:
    def __init__(
        self,
        store: TenderStore,
        session: Optional[requests.Session] = None,
        endpoint: str = SEARCH_INDEX_URL,
        token: str = SEARCH_INDEX_TOKEN,
        index_name: str = SEARCH_INDEX_NAME,
        batch_size: int = INDEX_BATCH_SIZE,
        batch_delay: float = 0.1,
        timeout: float = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.session = session or requests.Session()
        self.endpoint = endpoint
        self.token = token
        self.index_name = index_name
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.timeout = timeout
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.token)

    def _post_batch(self, batch: List[Dict[str, Any]], batch_number: int) -> None:
        try:
            response = self.session.post(
                self.endpoint,
                json={"index": self.index_name, "objects": batch},
                headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise SearchIndexError(f"Failed to index batch {batch_number}: {e}") from e

    def index_tenders(self, updated_since: Optional[datetime] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Transform and upload tenders. Raises SearchIndexError on the first failed batch."""
        if not self.is_configured:
            raise SearchIndexError("Search index is not configured")

        now = now or datetime.now(timezone.utc)
        tenders = self.store.fetch_tenders(updated_since=updated_since)
        records = [to_search_record(tender, now) for tender in tenders if tender.get("ocid")]
        logger.info(f"Indexing {len(records)} records to '{self.index_name}'")

        indexed = 0
        for index in range(0, len(records), self.batch_size):
            batch = records[index:index + self.batch_size]
            batch_number = index // self.batch_size + 1
            self._post_batch(batch, batch_number)
            indexed += len(batch)
            logger.info(f"Indexed batch {batch_number}: {indexed}/{len(records)} records")
            if index + self.batch_size < len(records) and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        return {
            "total": len(tenders),
            "indexed": indexed,
            "openTenders": sum(1 for record in records if record["is_open"]),
            "indexName": self.index_name,
        }
