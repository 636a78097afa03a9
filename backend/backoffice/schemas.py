# backend/backoffice/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Approval workflow --------------------

class DecisionIn(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=4000)


class DirectApproveIn(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=4000)


class DirectRejectIn(BaseModel):
    # length is checked by the service so the caller gets INVALID_REASON, not a 422
    reason: Optional[str] = None


class ErrorOut(BaseModel):
    code: str
    message: str


class EnvelopeOut(BaseModel):
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[ErrorOut] = None


# -------------------- Audit --------------------

class AuditEventOut(BaseModel):
    id: int
    actor_user_id: Optional[int] = None
    actor_role: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    before_json: Optional[str] = None
    after_json: Optional[str] = None
    meta_json: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PrincipalOut(BaseModel):
    user_id: int
    email: str
    role: str
    branch_id: Optional[int] = None
