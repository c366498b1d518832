from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from services.admin_service import get_admin_stats, get_recent_activity
from utils.auth import get_user_from_authorization, is_admin_user, require_admin
from utils.helpers import unwrap_result
from utils.logging_config import get_logger

router = APIRouter(prefix="/admin")
logger = get_logger(__name__, "app")


@router.get("/status")
def admin_status(request: Request, authorization: Optional[str] = Header(default=None)):
    user = get_user_from_authorization(request.app.state.supabase, authorization)
    if not user:
        return {"is_admin": False}
    return {"is_admin": is_admin_user(request.app.state.store, user), "email": user.get("email")}


@router.get("/stats")
def admin_stats(request: Request, _: dict = Depends(require_admin)):
    return unwrap_result(get_admin_stats(request.app.state.store))


@router.get("/activity")
def admin_activity(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    _: dict = Depends(require_admin),
):
    return {"activity": unwrap_result(get_recent_activity(request.app.state.store, limit))}
