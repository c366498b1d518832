"""
Sync endpoints - manual triggers and run history
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.admin_service import get_sync_status
from utils.auth import require_admin
from utils.helpers import unwrap_result
from utils.logging_config import get_logger

router = APIRouter(prefix="/sync")
logger = get_logger(__name__, "app")


class SyncRequest(BaseModel):
    force_full: bool = False


def _respond(result: dict) -> JSONResponse:
    return JSONResponse(status_code=200 if result.get("success") else 500, content=result)


@router.post("/run")
def run_sync(request: Request, payload: Optional[SyncRequest] = None, admin: dict = Depends(require_admin)):
    """Run one scheduler step: orchestrator, then search indexing when configured."""
    force_full = bool(payload and payload.force_full)
    logger.info(f"Manual sync requested by {admin.get('email') or admin['id']} (force_full={force_full})")
    return _respond(request.app.state.scheduler.run_once(force_full=force_full))


@router.post("/full")
def run_full_sync(request: Request, admin: dict = Depends(require_admin)):
    logger.info(f"Manual full resync requested by {admin.get('email') or admin['id']}")
    return _respond(request.app.state.scheduler.run_once(force_full=True))


@router.get("/status")
def sync_status(request: Request, limit: int = Query(default=10, ge=1, le=100), _: dict = Depends(require_admin)):
    status = unwrap_result(get_sync_status(request.app.state.store, limit))
    status["lastScheduledResult"] = request.app.state.scheduler.last_result
    return status
