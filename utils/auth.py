"""
Authentication utilities

Users authenticate with a Supabase session JWT sent as ``Authorization:
Bearer <token>``. Admin privilege comes from the ``is_admin`` store function,
with ``ADMIN_EMAILS`` as an override list.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request

from config.settings import ADMIN_EMAILS
from services.tender_store import TenderStore
from utils.logging_config import get_logger

logger = get_logger(__name__, "app")


def bearer_token(authorization: str | None) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_user_from_authorization(auth_client, authorization: str | None) -> Optional[dict]:
    """
    Resolve the bearer token to a user.

    Returns None for a missing, malformed or rejected token. Callers decide
    whether an anonymous request is acceptable.
    """
    token = bearer_token(authorization)
    if not token:
        return None
    try:
        response = auth_client.auth.get_user(token)
    except Exception as exc:
        logger.warning(f"Token verification failed: {exc}")
        return None

    user = getattr(response, "user", None)
    if not user or not getattr(user, "id", None):
        return None
    return {"id": str(user.id), "email": (getattr(user, "email", None) or "").lower()}


def is_admin_user(store: TenderStore, user: dict) -> bool:
    if user.get("email") and user["email"] in ADMIN_EMAILS:
        return True
    try:
        return store.is_admin(user["id"])
    except Exception as exc:
        logger.error(f"Admin check failed for {user.get('id')}: {exc}")
        return False


def optional_user(request: Request, authorization: str | None = Header(default=None)) -> Optional[dict]:
    return get_user_from_authorization(request.app.state.supabase, authorization)


def require_user(request: Request, authorization: str | None = Header(default=None)) -> dict:
    user = get_user_from_authorization(request.app.state.supabase, authorization)
    if not user:
        raise HTTPException(status_code=401, detail="Please sign in to continue")
    return user


def require_admin(request: Request, authorization: str | None = Header(default=None)) -> dict:
    user = require_user(request, authorization)
    if not is_admin_user(request.app.state.store, user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
