"""
Tender endpoints - view tracking and view statistics
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from models.result import ErrorCode
from services.view_service import get_view_stats, track_view
from utils.auth import optional_user
from utils.helpers import client_ip, unwrap_result

router = APIRouter(prefix="/tenders")


class ViewRequest(BaseModel):
    user_agent: Optional[str] = None


@router.post("/{ocid}/view")
def record_view(
    ocid: str,
    request: Request,
    payload: Optional[ViewRequest] = None,
    user: Optional[dict] = Depends(optional_user),
):
    user_agent = (payload.user_agent if payload else None) or request.headers.get("user-agent")
    result = track_view(
        request.app.state.store,
        ocid,
        viewer_ip=client_ip(request),
        user_agent=user_agent,
        user_id=user["id"] if user else None,
    )
    if not result.is_ok:
        status = 400 if result.error.code == ErrorCode.INVALID_REFERENCE else 503
        return JSONResponse(
            status_code=status,
            content={"success": False, "error": result.error.message, "viewRecorded": False, "viewCount": 0},
        )
    return {"success": True, **result.data}


@router.get("/{ocid}/views")
def view_stats(ocid: str, request: Request):
    return unwrap_result(get_view_stats(request.app.state.store, ocid))
