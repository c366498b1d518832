"""
Exceptions raised by the sync pipeline
"""


class UpstreamError(Exception):
    """Base class for failures talking to the upstream tender API."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RetryableUpstreamError(UpstreamError):
    """Rate limiting, request timeouts, 5xx and transient transport failures."""


class NonRetryableUpstreamError(UpstreamError):
    """Client errors and permanent transport failures (DNS, TLS, certificates)."""


class SyncPreconditionError(Exception):
    """The run cannot start: store unreachable, mode undeterminable, bad configuration."""


class SearchIndexError(Exception):
    """The search index endpoint rejected a batch or could not be reached."""


class DocumentDownloadError(Exception):
    """A document could not be fetched after exhausting the retry budget."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url
