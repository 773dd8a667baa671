from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from fastapi import status

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    WINDOW_CLOSED = "WINDOW_CLOSED"
    LIMIT_REACHED = "LIMIT_REACHED"
    CHANNEL_DENIED = "CHANNEL_DENIED"
    TARGET_MISMATCH = "TARGET_MISMATCH"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"


class DomainError(Exception):
    """Recoverable, user-facing failure.

    Raised inside a service to unwind its transaction and turned into a
    ``Result`` before leaving the service.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"DomainError({self.kind.value}, {self.message!r})"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result":
        return cls(error=DomainError(kind, message))

    @classmethod
    def from_error(cls, error: DomainError) -> "Result":
        return cls(error=error)


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.WINDOW_CLOSED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.LIMIT_REACHED: status.HTTP_403_FORBIDDEN,
    ErrorKind.CHANNEL_DENIED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TARGET_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INSUFFICIENT_STOCK: status.HTTP_409_CONFLICT,
    ErrorKind.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
}


def http_status_for(kind: ErrorKind) -> int:
    return _HTTP_STATUS.get(kind, status.HTTP_400_BAD_REQUEST)
