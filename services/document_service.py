"""
Document Service - proxies tender documents from the publishing portal

Documents are fetched with the document retry policy and browser-like
headers (the portal rejects bare clients). When every attempt fails the
caller gets the original URL back so the user can still open it directly.
"""
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from config.sync_config import (
    DOCUMENT_BACKOFF_BASE_SECONDS,
    DOCUMENT_BACKOFF_MAX_SECONDS,
    DOCUMENT_MAX_ATTEMPTS,
)
from services.exceptions import DocumentDownloadError, UpstreamError
from services.upstream_client import UpstreamClient
from utils.logging_config import get_logger

logger = get_logger(__name__, "app")

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "application/pdf,application/octet-stream,*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def safe_filename(name: Optional[str], default: str = "document") -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (name or "").strip()).strip(" ._")
    return cleaned[:150] or default


def safe_format(fmt: Optional[str], default: str = "pdf") -> str:
    cleaned = re.sub(r"[^a-z0-9]", "", (fmt or "").lower())
    return cleaned[:10] or default


@dataclass
class DownloadedDocument:
    content: bytes
    content_type: str
    filename: str

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Disposition": f'attachment; filename="{self.filename}"',
            "Content-Length": str(len(self.content)),
        }


class DocumentService:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        client: Optional[UpstreamClient] = None,
    ):
        self.client = client or UpstreamClient(
            session=session,
            max_attempts=DOCUMENT_MAX_ATTEMPTS,
            base_delay=DOCUMENT_BACKOFF_BASE_SECONDS,
            max_delay=DOCUMENT_BACKOFF_MAX_SECONDS,
            sleep=sleep,
        )

    def download(self, url: str, filename: Optional[str] = None, fmt: Optional[str] = None) -> DownloadedDocument:
        if not url:
            raise ValueError("Document URL is required")
        if urlparse(url).scheme not in ("http", "https"):
            raise ValueError("Document URL must be http(s)")

        fmt = safe_format(fmt)
        logger.info(f"Downloading document from: {url}")
        try:
            response = self.client.get_with_retry(url, headers=BROWSER_HEADERS)
        except UpstreamError as e:
            raise DocumentDownloadError(f"Failed to fetch document: {e}", url=url) from e

        content = response.content
        content_type = response.headers.get("content-type") or f"application/{fmt}"
        logger.info(f"Successfully downloaded document: {len(content)} bytes")
        return DownloadedDocument(
            content=content,
            content_type=content_type,
            filename=f"{safe_filename(filename)}.{fmt}",
        )

    @staticmethod
    def fallback(url: str, error: Exception) -> Dict[str, object]:
        return {
            "success": False,
            "error": str(error) or "Failed to download document",
            "fallbackUrl": url,
        }
