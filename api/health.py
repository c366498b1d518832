"""
Health check endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__, "app")


@router.get("/")
def root():
    return {
        "message": "Tender Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@router.get("/health")
def health_check(request: Request):
    """Health check endpoint for monitoring"""
    try:
        request.app.state.store.ping()
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected"
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "disconnected",
            "error": str(e)
        }
