"""
Typed failures for relationship operations.

All of these are expected outcomes that callers handle; the HTTP layer
maps `status_code` straight onto the response.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException

from compliancedb.apps.workflow import TransitionError


class ClientManagementError(Exception):
    code = "client_management_error"
    status_code = 400

    def __init__(self, message: str, *, code: Optional[str] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.detail = detail

    def to_detail(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class NotFound(ClientManagementError):
    code = "not_found"
    status_code = 404


class InvalidTransition(ClientManagementError):
    code = "invalid_transition"
    status_code = 409


class CapacityExceeded(ClientManagementError):
    code = "capacity_exceeded"
    status_code = 409

    def __init__(self, *, limit: int, current: int, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Client limit reached. Maximum: {limit}. Current: {current}",
            detail={"limit": limit, "current": current},
        )
        self.limit = limit
        self.current = current


class AlreadyAssigned(ClientManagementError):
    code = "already_assigned"
    status_code = 409


class Forbidden(ClientManagementError):
    code = "forbidden"
    status_code = 403


class ConflictingWrite(ClientManagementError):
    """The entry changed between read and conditional write; refetch before retrying."""

    code = "conflicting_write"
    status_code = 409


def from_transition_error(exc: TransitionError) -> ClientManagementError:
    reason = exc.detail[0]["reason"] if exc.detail else exc.code
    if exc.code == "forbidden_actor":
        return Forbidden(reason, detail=exc.detail)
    return InvalidTransition(reason, detail=exc.detail)


def to_http_exception(exc: ClientManagementError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
