# backend/backoffice/domain/approval_errors.py
"""
Typed failures of the approval workflow.

Each kind carries a stable machine code and the HTTP status the API layer
answers with. Services raise these inside the unit of work and hand them
back to callers as an ApprovalOutcome after rolling back.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class ApprovalError(Exception):
    code: str = "APPROVAL_ERROR"
    http_status: int = 400
    # internal kinds point at a data bug, not at caller input
    internal: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_failure(self) -> "ApprovalFailure":
        return ApprovalFailure(code=self.code, message=self.message, http_status=self.http_status)


class PropertyNotFound(ApprovalError):
    code = "PROPERTY_NOT_FOUND"
    http_status = 404


class InvalidStatus(ApprovalError):
    code = "INVALID_STATUS"
    http_status = 409


class InsufficientPermissions(ApprovalError):
    code = "INSUFFICIENT_PERMISSIONS"
    http_status = 403


class ApprovalExists(ApprovalError):
    code = "APPROVAL_EXISTS"
    http_status = 409


class ApprovalNotFound(ApprovalError):
    code = "APPROVAL_NOT_FOUND"
    http_status = 404


class RunNotActive(ApprovalError):
    code = "RUN_NOT_ACTIVE"
    http_status = 409


class InvalidAction(ApprovalError):
    code = "INVALID_ACTION"
    http_status = 400


class InvalidReason(ApprovalError):
    code = "INVALID_REASON"
    http_status = 400


class ValidationFailed(ApprovalError):
    code = "VALIDATION_FAILED"
    http_status = 422


class InvalidListingType(ApprovalError):
    code = "INVALID_LISTING_TYPE"
    http_status = 500
    internal = True


class NoPendingSteps(ApprovalError):
    code = "NO_PENDING_STEPS"
    http_status = 500
    internal = True


@dataclass(frozen=True)
class ApprovalFailure:
    code: str
    message: str
    http_status: int = 400

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ApprovalOutcome:
    ok: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[ApprovalFailure] = None

    @classmethod
    def success(cls, **data: Any) -> "ApprovalOutcome":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, err: ApprovalError) -> "ApprovalOutcome":
        return cls(ok=False, error=err.as_failure())
