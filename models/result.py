"""
Result type returned by operations that fail for expected reasons
(validation, authentication, not-found). Callers branch on ``error``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode:
    INVALID_REFERENCE = "invalid_reference"
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_FOUND = "not_found"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    code: str = ErrorCode.UNKNOWN


@dataclass(frozen=True)
class Result(Generic[T]):
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "Result[T]":
        return cls(data=data, error=None)

    @classmethod
    def fail(cls, message: str, code: str = ErrorCode.UNKNOWN) -> "Result[T]":
        return cls(data=None, error=ErrorInfo(message=message, code=code))

    def to_dict(self) -> Dict[str, Any]:
        error = None
        if self.error is not None:
            error = {"message": self.error.message, "code": self.error.code}
        return {"data": self.data, "error": error}
