# backend/backoffice/services/approval_queries.py
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session, aliased

from ..auth import Principal
from ..config import settings
from ..domain.approval_plan import APPROVER_ROLES, ApprovalStatus, PropertyStatus, Role, StepStatus
from ..domain.audit import PROPERTY_ENTITY, loads_snapshot
from ..models import AppUser, Approval, ApprovalStep, AuditEvent, Property
from .approval_common import latest_run

# Audit actions that belong to an approval history.
WORKFLOW_ACTIONS = (
    "APPROVE",
    "UPDATE",
    "approval_started",
    "budget_step_skipped",
    "approval_step_approved",
    "approval_rejected",
    "property_approved",
)

PENDING_VIEWS = ("steps", "properties")


def _days_pending(created_at: Optional[datetime], now: datetime) -> Optional[int]:
    if created_at is None:
        return None
    # timedelta.days floors, same as floor(ms / 86_400_000)
    return (now - created_at).days


def _iso(v: Optional[datetime]) -> Optional[str]:
    return v.isoformat() if v else None


def _page_args(page: Any, limit: Any) -> tuple[int, int]:
    try:
        p = max(1, int(page or 1))
    except (TypeError, ValueError):
        p = 1
    try:
        lim = int(limit or settings.pending_page_size)
    except (TypeError, ValueError):
        lim = settings.pending_page_size
    lim = max(1, min(lim, int(settings.pending_page_size_max)))
    return p, lim


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": int(math.ceil(total / limit)) if total else 0,
    }


def _branch_scope(actor: Principal) -> Optional[int]:
    # managers work their own branch; vp/director/admin see every branch
    if actor.role is Role.MANAGER and actor.branch_id is not None:
        return actor.branch_id
    return None


def _creator_name(user: Optional[AppUser]) -> Optional[str]:
    return user.display_name if user is not None else None


def get_pending_for_role(
    db: Session,
    actor: Principal,
    *,
    view: str = "steps",
    page: Any = 1,
    limit: Any = None,
) -> dict[str, Any]:
    """
    Approval queue for the actor.

    view="steps":      current steps of in-progress runs that the actor's role
                       may act on (admin: every role), oldest property first.
    view="properties": pending properties the direct path can still act on
                       (no run in flight), newest first.

    Roles that never approve get an empty queue.
    """
    if view not in PENDING_VIEWS:
        raise ValueError(f"view must be one of {', '.join(PENDING_VIEWS)}")

    p, lim = _page_args(page, limit)
    if actor.role not in APPROVER_ROLES:
        return {"view": view, "items": [], "pagination": _pagination(p, lim, 0)}

    if view == "properties":
        return _pending_properties(db, actor, page=p, limit=lim)
    return _pending_steps(db, actor, page=p, limit=lim)


def _pending_steps(db: Session, actor: Principal, *, page: int, limit: int) -> dict[str, Any]:
    other = aliased(ApprovalStep)
    current_order = (
        select(func.min(other.step_order))
        .where(
            other.approval_id == ApprovalStep.approval_id,
            other.status == StepStatus.PENDING.value,
        )
        .correlate(ApprovalStep)
        .scalar_subquery()
    )

    q = (
        select(ApprovalStep, Approval, Property, AppUser)
        .join(Approval, ApprovalStep.approval_id == Approval.id)
        .join(Property, Approval.property_id == Property.id)
        .outerjoin(AppUser, Property.created_by_id == AppUser.id)
        .where(
            ApprovalStep.status == StepStatus.PENDING.value,
            Approval.status == ApprovalStatus.IN_PROGRESS.value,
            ApprovalStep.step_order == current_order,
        )
    )
    if actor.role is not Role.ADMIN:
        q = q.where(ApprovalStep.required_role == actor.role.value)

    branch_id = _branch_scope(actor)
    if branch_id is not None:
        q = q.where(Property.branch_id == branch_id)

    total = int(db.scalar(q.with_only_columns(func.count(ApprovalStep.id))) or 0)
    rows = db.execute(
        q.order_by(Property.created_at.asc(), ApprovalStep.id.asc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    now = datetime.utcnow()
    items = [
        {
            "step_id": int(step.id),
            "approval_id": int(run.id),
            "property_id": int(prop.id),
            "property_code": prop.code,
            "step": step.step,
            "step_order": int(step.step_order),
            "required_role": step.required_role,
            "status": step.status,
            "listing_type": prop.listing_type,
            "property_category": prop.property_category,
            "property_subcategory": prop.property_subcategory,
            "area_m2": prop.area_m2,
            "buy_price": prop.buy_price,
            "created_by": _creator_name(creator),
            "property_created_at": _iso(prop.created_at),
            "days_pending": _days_pending(prop.created_at, now),
        }
        for (step, run, prop, creator) in rows
    ]
    return {"view": "steps", "items": items, "pagination": _pagination(page, limit, total)}


def _pending_properties(db: Session, actor: Principal, *, page: int, limit: int) -> dict[str, Any]:
    q = (
        select(Property, AppUser)
        .outerjoin(AppUser, Property.created_by_id == AppUser.id)
        .where(
            Property.status == PropertyStatus.PENDING.value,
            # the direct path refuses listings with a run in flight
            ~exists(
                select(Approval.id).where(
                    Approval.property_id == Property.id,
                    Approval.status == ApprovalStatus.IN_PROGRESS.value,
                )
            ),
        )
    )
    branch_id = _branch_scope(actor)
    if branch_id is not None:
        q = q.where(Property.branch_id == branch_id)

    total = int(db.scalar(q.with_only_columns(func.count(Property.id))) or 0)
    rows = db.execute(
        q.order_by(Property.created_at.desc(), Property.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()

    now = datetime.utcnow()
    items = [
        {
            "property_id": int(prop.id),
            "property_code": prop.code,
            "status": prop.status,
            "listing_type": prop.listing_type,
            "property_category": prop.property_category,
            "property_subcategory": prop.property_subcategory,
            "area_m2": prop.area_m2,
            "buy_price": prop.buy_price,
            "sell_price": prop.sell_price,
            "branch_id": prop.branch_id,
            "created_by": _creator_name(creator),
            "created_at": _iso(prop.created_at),
            "days_pending": _days_pending(prop.created_at, now),
        }
        for (prop, creator) in rows
    ]
    return {"view": "properties", "items": items, "pagination": _pagination(page, limit, total)}


def get_history(db: Session, property_id: int, *, limit: Optional[int] = None) -> dict[str, Any]:
    """Workflow audit trail for one property, newest first."""
    lim = int(limit or settings.history_limit)
    rows = db.execute(
        select(AuditEvent, AppUser)
        .outerjoin(AppUser, AuditEvent.actor_user_id == AppUser.id)
        .where(
            AuditEvent.entity_type == PROPERTY_ENTITY,
            AuditEvent.entity_id == str(property_id),
            AuditEvent.action.in_(WORKFLOW_ACTIONS),
        )
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(lim)
    ).all()

    history = [
        {
            "id": int(ev.id),
            "action": ev.action,
            "actor_id": ev.actor_user_id,
            "actor_role": ev.actor_role,
            "actor": user.display_name if user is not None else None,
            "before_state": loads_snapshot(ev.before_json),
            "after_state": loads_snapshot(ev.after_json),
            "metadata": loads_snapshot(ev.meta_json),
            "timestamp": _iso(ev.created_at),
        }
        for (ev, user) in rows
    ]
    return {"property_id": property_id, "history": history}


def get_approval_status(db: Session, property_id: int) -> dict[str, Any]:
    """Latest run for the property (any status) with its ordered steps."""
    run = latest_run(db, property_id)
    if run is None:
        return {"approval": None, "steps": []}

    rows = db.execute(
        select(ApprovalStep, AppUser)
        .outerjoin(AppUser, ApprovalStep.approved_by == AppUser.id)
        .where(ApprovalStep.approval_id == run.id)
        .order_by(ApprovalStep.step_order.asc())
    ).all()

    steps = [
        {
            "id": int(step.id),
            "step": step.step,
            "step_order": int(step.step_order),
            "required_role": step.required_role,
            "status": step.status,
            "approved_by": step.approved_by,
            "approved_by_name": user.display_name if user is not None else None,
            "approved_at": _iso(step.approved_at),
            "comments": step.comments,
        }
        for (step, user) in rows
    ]
    current = next((s for s in steps if s["status"] == StepStatus.PENDING.value), None)

    return {
        "approval": {
            "id": int(run.id),
            "property_id": int(run.property_id),
            "status": run.status,
            "started_by": run.started_by,
            "started_at": _iso(run.started_at),
            "completed_at": _iso(run.completed_at),
            "current_step": current["step"] if current and run.status == ApprovalStatus.IN_PROGRESS.value else None,
        },
        "steps": steps,
    }
