"""
Configuration and Environment Setup
"""
import os
from dotenv import load_dotenv
from supabase import create_client, Client

# Load environment variables
load_dotenv()

def _clean_env(value: str | None) -> str:
    """Clean environment variable values"""
    if not value:
        return ""
    return value.strip().strip('"').strip("'")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in {"0", "false", "off", "no"}


# Environment variables
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL"))
SUPABASE_KEY = _clean_env(os.getenv("SUPABASE_KEY"))
SUPABASE_SERVICE_ROLE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_ROLE_KEY"))

# Upstream OCDS release API
OCDS_API_URL = _clean_env(os.getenv("OCDS_API_URL")) or "https://ocds-api.etenders.gov.za/api/OCDSReleases"
OCDS_PAGE_SIZE = max(1, min(int(os.getenv("OCDS_PAGE_SIZE", "1000")), 1000))
OCDS_REQUEST_TIMEOUT_SECONDS = float(os.getenv("OCDS_REQUEST_TIMEOUT_SECONDS", "60"))
OCDS_USER_AGENT = os.getenv("OCDS_USER_AGENT", "TenderSync/1.0")

# Frontend configuration
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
ALLOWED_ORIGINS = [
    FRONTEND_ORIGIN,
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]
for _origin in _clean_env(os.getenv("EXTRA_ALLOWED_ORIGINS")).split(","):
    if _origin.strip() and _origin.strip() not in ALLOWED_ORIGINS:
        ALLOWED_ORIGINS.append(_origin.strip())

# Background sync configuration
SYNC_INTERVAL_HOURS = float(os.getenv("SYNC_INTERVAL_HOURS", "6"))
DISABLE_SYNC_LOOP = os.getenv("DISABLE_SYNC_LOOP", "0") == "1"

# Feature flags
ENABLE_TENDER_SYNC = _flag("ENABLE_TENDER_SYNC", "1")

# A full resync is due once the last completed one is older than this
FULL_SYNC_INTERVAL_DAYS = int(os.getenv("FULL_SYNC_INTERVAL_DAYS", "7"))

# Views from the same source inside this window are not counted again
VIEW_DEDUP_MINUTES = int(os.getenv("VIEW_DEDUP_MINUTES", "60"))

# Optional search indexing hook, run after a successful sync
SEARCH_INDEX_URL = _clean_env(os.getenv("SEARCH_INDEX_URL"))
SEARCH_INDEX_TOKEN = _clean_env(os.getenv("SEARCH_INDEX_TOKEN"))
SEARCH_INDEX_NAME = os.getenv("SEARCH_INDEX_NAME", "tenders")

# Admin configuration
ADMIN_EMAILS = {
    email.strip().lower()
    for email in _clean_env(os.getenv("ADMIN_EMAILS", "")).split(",")
    if email.strip()
}


def validate_supabase_config(url: str | None = None, key: str | None = None) -> None:
    """Raise ValueError when the Supabase connection settings are unusable."""
    url = SUPABASE_URL if url is None else url
    key = SUPABASE_KEY if key is None else key
    if not url or not url.startswith("https://"):
        raise ValueError(f"Invalid SUPABASE_URL format: '{url}'. Expected like https://xxxxx.supabase.co")
    if not key:
        raise ValueError("SUPABASE_KEY is missing")


def create_supabase_client(service_role: bool = False) -> Client:
    """
    Build a Supabase client from the environment.

    The sync pipeline writes with the service role key; request handlers that
    act on behalf of a user use the anon key. Callers own the returned handle
    and pass it explicitly to the services that need it.
    """
    key = SUPABASE_SERVICE_ROLE_KEY if service_role else SUPABASE_KEY
    if service_role and not key:
        raise ValueError("SUPABASE_SERVICE_ROLE_KEY is missing from environment variables")
    validate_supabase_config(SUPABASE_URL, key)
    return create_client(SUPABASE_URL, key)
