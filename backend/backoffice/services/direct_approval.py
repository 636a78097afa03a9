# backend/backoffice/services/direct_approval.py
"""
Direct approval: move a pending property straight to active or rejected
without opening a step-wise run.

Shares the property lock, the pending-status gate, the role enum and the
audit writer with the step-wise workflow. It never creates or touches
approval/step rows and refuses while a step-wise run is in progress for
the same property.
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..domain.approval_errors import (
    ApprovalExists,
    ApprovalOutcome,
    InsufficientPermissions,
    InvalidReason,
    ValidationFailed,
)
from ..domain.approval_plan import APPROVER_ROLES, PropertyStatus
from ..domain.audit import PROPERTY_ENTITY, audit_write
from ..domain.listing_requirements import validate_listing_type_requirements
from ..models import Property
from .approval_common import (
    active_run,
    actor_fields,
    property_snapshot,
    require_pending,
    require_property,
    run_unit_of_work,
    utcnow,
)


def validate_approval_permissions(actor: Principal) -> bool:
    return actor.role in APPROVER_ROLES


def _load_for_decision(db: Session, property_id: int, actor: Principal) -> Property:
    prop = require_property(db, property_id)
    require_pending(prop)
    if not validate_approval_permissions(actor):
        raise InsufficientPermissions("You are not allowed to approve or reject properties")
    if active_run(db, property_id) is not None:
        raise ApprovalExists("A step-wise approval is in progress for this property")
    return prop


def approve_property(
    db: Session,
    *,
    property_id: int,
    actor: Principal,
    comments: Optional[str] = None,
) -> ApprovalOutcome:
    def work() -> dict[str, Any]:
        prop = _load_for_decision(db, property_id, actor)

        check = validate_listing_type_requirements(prop)
        if not check.valid:
            raise ValidationFailed(check.message or "Listing requirements not met")

        before = property_snapshot(prop)
        prop.status = PropertyStatus.ACTIVE.value
        prop.updated_at = utcnow()
        db.add(prop)
        db.flush()

        ev = audit_write(
            db,
            **actor_fields(actor),
            action="APPROVE",
            entity_type=PROPERTY_ENTITY,
            entity_id=prop.id,
            before=before,
            after=property_snapshot(prop),
            meta={
                "actor_role": actor.role.value,
                "listing_type": prop.listing_type,
                "property_code": prop.code,
                "comments": (comments or "").strip() or None,
            },
        )
        return {
            "message": "Property approved successfully",
            "property_id": int(prop.id),
            "new_status": prop.status,
            "audit_log_id": int(ev.id),
        }

    return run_unit_of_work(
        db, operation="approval.direct_approve", property_id=property_id, actor=actor, work=work
    )


def reject_property(
    db: Session,
    *,
    property_id: int,
    actor: Principal,
    reason: Optional[str],
) -> ApprovalOutcome:
    min_len = int(settings.rejection_reason_min_length)

    def work() -> dict[str, Any]:
        cleaned = (reason or "").strip()
        if len(cleaned) < min_len:
            raise InvalidReason(f"Rejection reason must be at least {min_len} characters")

        prop = _load_for_decision(db, property_id, actor)

        before = property_snapshot(prop)
        prop.status = PropertyStatus.REJECTED.value
        prop.updated_at = utcnow()
        db.add(prop)
        db.flush()

        ev = audit_write(
            db,
            **actor_fields(actor),
            action="UPDATE",
            entity_type=PROPERTY_ENTITY,
            entity_id=prop.id,
            before=before,
            after=property_snapshot(prop),
            meta={
                "actor_role": actor.role.value,
                "action_type": "REJECT",
                "listing_type": prop.listing_type,
                "property_code": prop.code,
                "rejection_reason": cleaned,
            },
        )
        return {
            "message": "Property rejected",
            "property_id": int(prop.id),
            "new_status": prop.status,
            "rejection_reason": cleaned,
            "audit_log_id": int(ev.id),
        }

    return run_unit_of_work(
        db, operation="approval.direct_reject", property_id=property_id, actor=actor, work=work
    )
