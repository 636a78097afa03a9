# backend/backoffice/routers/audit.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..domain.approval_plan import Role
from ..models import AuditEvent
from ..schemas import AuditEventOut

router = APIRouter(prefix="/audit", tags=["audit"])

AUDIT_READERS = frozenset({Role.DIRECTOR, Role.ADMIN})


@router.get("", response_model=list[AuditEventOut])
def list_audit(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None),
    actor_user_id: int | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    """Raw audit rows, newest first. Director and admin only."""
    if p.role not in AUDIT_READERS:
        raise HTTPException(status_code=403, detail="Requires director or admin role")

    q = select(AuditEvent).order_by(desc(AuditEvent.created_at), desc(AuditEvent.id))
    if entity_type:
        q = q.where(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.where(AuditEvent.entity_id == entity_id)
    if action:
        q = q.where(AuditEvent.action == action)
    if actor_user_id is not None:
        q = q.where(AuditEvent.actor_user_id == actor_user_id)
    return list(db.scalars(q.limit(limit)).all())
