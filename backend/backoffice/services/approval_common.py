# backend/backoffice/services/approval_common.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.approval_errors import (
    ApprovalError,
    ApprovalOutcome,
    InvalidStatus,
    PropertyNotFound,
)
from ..domain.approval_plan import ApprovalStatus, PropertyStatus, StepStatus
from ..models import Approval, ApprovalStep, Property

log = logging.getLogger("backoffice.approvals")


def utcnow() -> datetime:
    return datetime.utcnow()


# -----------------------------------------------------------------------------
# Row access (all reads that gate a write happen under a row lock)
# -----------------------------------------------------------------------------


def lock_property(db: Session, property_id: int) -> Optional[Property]:
    return db.scalar(select(Property).where(Property.id == property_id).with_for_update())


def require_property(db: Session, property_id: int) -> Property:
    prop = lock_property(db, property_id)
    if prop is None:
        raise PropertyNotFound("Property not found")
    return prop


def require_pending(prop: Property) -> None:
    if prop.status != PropertyStatus.PENDING.value:
        raise InvalidStatus(f"Property is not in pending status (current status: {prop.status})")


def active_run(db: Session, property_id: int) -> Optional[Approval]:
    return db.scalar(
        select(Approval)
        .where(
            Approval.property_id == property_id,
            Approval.status == ApprovalStatus.IN_PROGRESS.value,
        )
        .with_for_update()
    )


def latest_run(db: Session, property_id: int) -> Optional[Approval]:
    return db.scalar(
        select(Approval)
        .where(Approval.property_id == property_id)
        .order_by(Approval.id.desc())
        .limit(1)
    )


def current_step(db: Session, approval_id: int) -> Optional[ApprovalStep]:
    """The lowest-ordered pending step. Always derived, never stored."""
    return db.scalar(
        select(ApprovalStep)
        .where(
            ApprovalStep.approval_id == approval_id,
            ApprovalStep.status == StepStatus.PENDING.value,
        )
        .order_by(ApprovalStep.step_order.asc())
        .limit(1)
    )


# -----------------------------------------------------------------------------
# Snapshots for audit before/after
# -----------------------------------------------------------------------------


def property_snapshot(prop: Property) -> dict[str, Any]:
    return {
        "id": int(prop.id),
        "code": prop.code,
        "status": prop.status,
        "listing_type": prop.listing_type,
        "buy_price": prop.buy_price,
        "sell_price": prop.sell_price,
        "owner_first_name": prop.owner_first_name,
        "owner_last_name": prop.owner_last_name,
        "owner_contact": prop.owner_contact,
        "brokerage_commission_percent": prop.brokerage_commission_percent,
        "branch_id": prop.branch_id,
    }


def step_snapshot(step: ApprovalStep) -> dict[str, Any]:
    return {
        "id": int(step.id),
        "step": step.step,
        "step_order": int(step.step_order),
        "required_role": step.required_role,
        "status": step.status,
    }


def actor_fields(actor: Principal) -> dict[str, Any]:
    return {"actor_user_id": actor.user_id, "actor_role": actor.role.value}


# -----------------------------------------------------------------------------
# Unit of work
# -----------------------------------------------------------------------------


def run_unit_of_work(
    db: Session,
    *,
    operation: str,
    property_id: int,
    actor: Principal,
    work: Callable[[], dict[str, Any]],
) -> ApprovalOutcome:
    """
    Run `work` as one transaction.

    - success: commit, return ApprovalOutcome.success(**data)
    - ApprovalError: roll back, return ApprovalOutcome.failure(err)
    - anything else: roll back, log with context, re-raise
    """
    ctx = {
        "operation": operation,
        "property_id": property_id,
        "actor_id": actor.user_id,
        "actor_role": actor.role.value,
    }
    try:
        data = work()
        db.commit()
    except ApprovalError as e:
        db.rollback()
        if e.internal:
            log.error("%s failed: %s (%s)", operation, e.code, e.message, extra=ctx)
        else:
            log.info("%s refused: %s", operation, e.code, extra=ctx)
        return ApprovalOutcome.failure(e)
    except Exception:
        db.rollback()
        log.exception("%s crashed", operation, extra=ctx)
        raise

    log.info("%s ok", operation, extra=ctx)
    return ApprovalOutcome.success(**data)
