"""
General helper functions for the HTTP layer
"""
from fastapi import HTTPException, Request

from models.result import ErrorCode, Result

_STATUS_BY_CODE = {
    ErrorCode.INVALID_REFERENCE: 400,
    ErrorCode.NOT_AUTHENTICATED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONNECTION: 503,
}


def unwrap_result(result: Result):
    """Return ``result.data`` or raise the HTTPException matching its error code."""
    if result.error is None:
        return result.data
    status = _STATUS_BY_CODE.get(result.error.code, 500)
    raise HTTPException(status_code=status, detail={"message": result.error.message, "code": result.error.code})


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
