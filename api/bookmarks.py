"""
Bookmark endpoints - all require a signed-in user
"""
from fastapi import APIRouter, Depends, Query, Request

from services.bookmark_service import add_bookmark, is_bookmarked, list_bookmarks, remove_bookmark
from utils.auth import require_user
from utils.helpers import unwrap_result

router = APIRouter(prefix="/bookmarks")


@router.get("")
def get_bookmarks(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=24, ge=1, le=100),
    user: dict = Depends(require_user),
):
    return unwrap_result(list_bookmarks(request.app.state.store, user["id"], page=page, limit=limit))


@router.get("/{ocid}")
def check_bookmark(ocid: str, request: Request, user: dict = Depends(require_user)):
    return unwrap_result(is_bookmarked(request.app.state.store, user["id"], ocid))


@router.post("/{ocid}")
def create_bookmark(ocid: str, request: Request, user: dict = Depends(require_user)):
    return unwrap_result(add_bookmark(request.app.state.store, user["id"], ocid))


@router.delete("/{ocid}")
def delete_bookmark(ocid: str, request: Request, user: dict = Depends(require_user)):
    return unwrap_result(remove_bookmark(request.app.state.store, user["id"], ocid))
