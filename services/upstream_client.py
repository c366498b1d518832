"""
Upstream Client - paginated access to the OCDS release API

Fetches one page of releases at a time with exponential backoff and jitter.
HTTP 5xx, 429 and 408 are retried up to the attempt budget; other 4xx and
permanent transport failures (DNS, TLS, certificates) fail immediately.
"""
import random
import re
import socket
import ssl
import time
from datetime import date
from typing import Any, Callable, Dict, Optional

import requests
from urllib3.exceptions import LocationParseError, NameResolutionError
from urllib3.exceptions import SSLError as Urllib3SSLError

from config.settings import OCDS_API_URL, OCDS_REQUEST_TIMEOUT_SECONDS, OCDS_USER_AGENT
from config.sync_config import SyncProfile
from models.release import ReleasePage
from services.exceptions import NonRetryableUpstreamError, RetryableUpstreamError, UpstreamError
from utils.logging_config import get_logger

logger = get_logger(__name__, "sync")

MAX_PAGE_SIZE = 1000
RETRYABLE_STATUS_CODES = {408, 429}
JITTER_RATIO = 0.3

# Transport failures that point at misconfiguration rather than a flaky network
_PERMANENT_TRANSPORT_TYPES = (
    requests.exceptions.SSLError,
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidSchema,
    requests.exceptions.MissingSchema,
    Urllib3SSLError,
    NameResolutionError,
    LocationParseError,
    socket.gaierror,
    ssl.SSLError,
)

# Matched against the message with URLs and host names removed
_PERMANENT_TRANSPORT_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "failed to resolve",
    "name resolution",
    "certificate verify failed",
)

_URL_PATTERN = re.compile(r"(https?://\S+|url: \S+|host='[^']*')", re.IGNORECASE)


def is_retryable_status(status_code: int) -> bool:
    """Rate limiting, request timeout and server errors are worth another attempt."""
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    return status_code >= 500


def _exception_chain(exc: BaseException):
    """The exception plus everything it wraps: causes, contexts, urllib3 reasons and exception args."""
    pending = [exc]
    seen = set()
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        linked = [current.__cause__, current.__context__, getattr(current, "reason", None), *current.args]
        pending.extend(item for item in linked if isinstance(item, BaseException))


def is_retryable_transport_error(exc: Exception) -> bool:
    """Classify a requests transport exception as transient or permanent."""
    for error in _exception_chain(exc):
        if isinstance(error, _PERMANENT_TRANSPORT_TYPES):
            return False
        message = _URL_PATTERN.sub("", str(error)).lower()
        if any(marker in message for marker in _PERMANENT_TRANSPORT_MARKERS):
            return False
    return True


def _format_date(value: date | str) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class UpstreamClient:
    """Stateless wrapper around one requests session and a retry policy."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str = OCDS_API_URL,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        timeout: float = OCDS_REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.session = session or requests.Session()
        self.base_url = base_url
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._sleep = sleep
        self._rng = rng
        self.headers = {
            "User-Agent": OCDS_USER_AGENT,
            "Accept": "application/json",
        }

    @classmethod
    def from_profile(cls, profile: SyncProfile, session: Optional[requests.Session] = None, **kwargs) -> "UpstreamClient":
        return cls(
            session=session,
            max_attempts=profile.max_attempts,
            base_delay=profile.backoff_base_seconds,
            max_delay=profile.backoff_max_seconds,
            **kwargs,
        )

    def compute_backoff(self, attempt: int) -> float:
        """Exponential delay for a zero-based attempt, plus up to 30% jitter, capped."""
        exponential = self.base_delay * (2 ** attempt)
        jitter = self._rng() * JITTER_RATIO * exponential
        return min(exponential + jitter, self.max_delay)

    def _retry_after(self, response: requests.Response) -> float | None:
        header = response.headers.get("Retry-After") if response.headers else None
        if not header:
            return None
        try:
            return max(0.0, min(float(header), self.max_delay))
        except ValueError:
            return None

    def get_with_retry(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """GET ``url`` until it succeeds, fails permanently, or the attempt budget runs out."""
        merged_headers = {**self.headers, **(headers or {})}
        last_error: UpstreamError | None = None

        for attempt in range(self.max_attempts):
            retry_after = None
            try:
                response = self.session.get(url, params=params, headers=merged_headers, timeout=self.timeout)
            except requests.RequestException as exc:
                if not is_retryable_transport_error(exc):
                    logger.error(f"Non-retryable transport error for {url}: {exc}")
                    raise NonRetryableUpstreamError(f"Request failed: {exc}", url=url) from exc
                last_error = RetryableUpstreamError(f"Request failed: {exc}", url=url)
                logger.warning(f"API request error on attempt {attempt + 1}/{self.max_attempts}: {exc}")
            else:
                status = response.status_code
                if response.ok:
                    if attempt > 0:
                        logger.info(f"API request succeeded on attempt {attempt + 1}")
                    return response
                message = f"API request failed: {status} {response.reason or ''}".strip()
                if not is_retryable_status(status):
                    logger.error(f"{message} (non-retryable) for {url}")
                    raise NonRetryableUpstreamError(f"{message} (non-retryable)", status_code=status, url=url)
                last_error = RetryableUpstreamError(message, status_code=status, url=url)
                retry_after = self._retry_after(response) if status == 429 else None
                logger.warning(f"{message} on attempt {attempt + 1}/{self.max_attempts}, will retry")

            if attempt < self.max_attempts - 1:
                delay = self.compute_backoff(attempt)
                if retry_after is not None:
                    delay = max(delay, retry_after)
                logger.debug(f"Waiting {delay:.2f}s before retry")
                self._sleep(delay)

        logger.error(f"All {self.max_attempts} attempts exhausted for {url}")
        raise last_error

    def fetch_page(
        self,
        date_from: date | str,
        date_to: date | str,
        page_number: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> ReleasePage:
        """Fetch one page of releases. An empty page signals end of data for the query."""
        if page_number < 1:
            raise ValueError("page_number is 1-based")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        params = {
            "dateFrom": _format_date(date_from),
            "dateTo": _format_date(date_to),
            "PageNumber": page_number,
            "PageSize": page_size,
        }
        logger.debug(f"Fetching page {page_number}: {self.base_url} {params}")
        response = self.get_with_retry(self.base_url, params=params)

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("Invalid API response: expected JSON object", url=self.base_url) from exc
        if not isinstance(data, dict):
            raise UpstreamError("Invalid API response: expected JSON object", url=self.base_url)

        releases = [rel for rel in (data.get("releases") or []) if isinstance(rel, dict)]
        return ReleasePage(releases=releases, page_number=page_number, page_size=page_size)
