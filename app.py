"""
Tender Sync API - Main Application
"""
import os
import re

import requests
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import logging
from utils.logging_config import get_logger

# Setup logger
logger = get_logger(__name__, "app")

# Import configuration
from config.settings import (
    ALLOWED_ORIGINS,
    DISABLE_SYNC_LOOP,
    ENABLE_TENDER_SYNC,
    create_supabase_client,
)

# Import API routers
from api import admin, bookmarks, documents, health, sync, tenders

from services.document_service import DocumentService
from services.scheduler_service import SyncScheduler, build_scheduler

CORS_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|.*\.netlify\.app|.*\.vercel\.app)(:\d+)?"

# First scheduled sync waits this long so startup stays fast
SCHEDULER_INITIAL_DELAY_SECONDS = float(os.getenv("SYNC_INITIAL_DELAY_SECONDS", "60"))


def _cors_headers(origin: str) -> dict:
    if not origin:
        return {}
    if origin in ALLOWED_ORIGINS or re.match(CORS_ORIGIN_REGEX, origin):
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": "*",
            "Access-Control-Allow-Headers": "*",
        }
    return {}


def create_app(
    supabase=None,
    scheduler: SyncScheduler | None = None,
    document_service: DocumentService | None = None,
    start_scheduler: bool | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    The Supabase client and the services built on it are created once here
    and shared through ``app.state``; tests pass their own.
    """
    app = FastAPI(
        title="Tender Sync API",
        version="1.0.0",
        description="Ingestion and sync pipeline for government tenders",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(ALLOWED_ORIGINS),
        allow_origin_regex=CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    # Exception handler to ensure CORS headers are set on errors
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        cors_headers = _cors_headers(request.headers.get("origin", ""))

        if isinstance(exc, HTTPException):
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=cors_headers)

        logger.error(f"Unexpected error: {exc}", exc_info=True)

        error_msg = "Internal server error"
        exc_str = str(exc).lower()
        if "connection" in exc_str or "timeout" in exc_str:
            error_msg = "Database connection error. Please try again in a moment."
        elif "permission denied" in exc_str or "forbidden" in exc_str:
            error_msg = "Access denied. Please check your permissions."

        return JSONResponse(status_code=500, content={"detail": error_msg}, headers=cors_headers)

    # Register API routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(sync.router, tags=["Sync"])
    app.include_router(tenders.router, tags=["Tenders"])
    app.include_router(bookmarks.router, tags=["Bookmarks"])
    app.include_router(documents.router, tags=["Documents"])
    app.include_router(admin.router, tags=["Admin"])

    if supabase is None:
        supabase = create_supabase_client(service_role=True)
    if scheduler is None:
        scheduler = build_scheduler(supabase, session=requests.Session())

    app.state.supabase = supabase
    app.state.scheduler = scheduler
    app.state.store = scheduler.orchestrator.store
    app.state.documents = document_service or DocumentService()

    if start_scheduler is None:
        start_scheduler = not DISABLE_SYNC_LOOP

    @app.on_event("startup")
    def start_background_tasks():
        """
        Start the background sync loop unless disabled.
        Set DISABLE_SYNC_LOOP=1 to disable.
        """
        logger.info("=" * 80)
        logger.info("Tender Sync API Starting")
        logger.info("Version: 1.0.0")
        logger.info("=" * 80)

        if not start_scheduler:
            logger.info("Scheduled tender sync DISABLED")
            return

        if not ENABLE_TENDER_SYNC:
            logger.info("ENABLE_TENDER_SYNC=0; sync worker will remain idle until re-enabled")

        logger.info("Starting scheduled tender sync worker...")
        app.state.scheduler.start_in_background(initial_delay=SCHEDULER_INITIAL_DELAY_SECONDS)

    @app.on_event("shutdown")
    def stop_background_tasks():
        app.state.scheduler.stop()

    return app


# Main entry point for deployment
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
