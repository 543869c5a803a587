"""
Uniform outcome envelope returned by every action.

Callers branch on ``result.success`` (or ``isinstance``) and never need to
catch exceptions from the action layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar, Union

T = TypeVar("T")

AUTH_REQUIRED_MESSAGE = "Authentication required."
UNEXPECTED_MESSAGE = "An unexpected error occurred."


class ErrorKind(StrEnum):
    AUTH_REQUIRED = "auth_required"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORE_ERROR = "store_error"
    LIMIT_REACHED = "limit_reached"
    INVALID_INPUT = "invalid_input"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T

    @property
    def success(self) -> bool:
        return True

    def as_dict(self) -> dict:
        return {"success": True, "data": self.data}


@dataclass(frozen=True)
class Failure:
    message: str
    kind: ErrorKind = ErrorKind.UNEXPECTED

    @property
    def success(self) -> bool:
        return False

    def as_dict(self) -> dict:
        return {"success": False, "message": self.message}


ActionResult = Union[Success[T], Failure]


def auth_required(message: str = AUTH_REQUIRED_MESSAGE) -> Failure:
    return Failure(message, ErrorKind.AUTH_REQUIRED)
