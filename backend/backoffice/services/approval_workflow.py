# backend/backoffice/services/approval_workflow.py
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..domain.approval_errors import (
    ApprovalExists,
    ApprovalNotFound,
    ApprovalOutcome,
    InsufficientPermissions,
    InvalidAction,
    NoPendingSteps,
    RunNotActive,
    ValidationFailed,
)
from ..domain.approval_plan import (
    BUDGET_STEP,
    START_ROLES,
    ApprovalStatus,
    Decision,
    PropertyStatus,
    Role,
    StepStatus,
    budget_skip_reason,
    build_plan,
    includes_budget_step,
    parse_listing_type,
)
from ..domain.audit import PROPERTY_ENTITY, audit_write
from ..domain.listing_requirements import validate_listing_type_requirements
from ..models import Approval, ApprovalStep
from .approval_common import (
    active_run,
    actor_fields,
    current_step,
    latest_run,
    lock_property,
    require_pending,
    require_property,
    run_unit_of_work,
    step_snapshot,
    utcnow,
)

# -----------------------------------------------------------------------------
# Property approval state machine
# -----------------------------------------------------------------------------
# Run lifecycle:  (no run) -> in_progress -> approved | rejected
#
# Product decision on rejection:
#   Rejecting ANY step is terminal for the run AND for the property:
#   property.status becomes "rejected". There is no path back to "pending"
#   inside the workflow; a resubmission is a new listing.
#
# Approving the last pending step closes the run as "approved" and flips the
# property to "active". That is the only place a run writes the property.
#
# The current step is never stored: it is the lowest step_order whose
# status is still "pending".
# -----------------------------------------------------------------------------


def _parse_decision(action: object) -> Decision:
    try:
        return Decision(str(action or "").strip().lower())
    except ValueError:
        raise InvalidAction("Action must be approve or reject") from None


def _can_act(actor: Principal, step: ApprovalStep) -> bool:
    return actor.role is Role.ADMIN or actor.role.value == step.required_role


def start_approval(db: Session, *, property_id: int, actor: Principal) -> ApprovalOutcome:
    """
    Open an approval run for a pending property.

    Preconditions, first failure wins:
      PropertyNotFound -> InvalidStatus -> InsufficientPermissions -> ApprovalExists
    """

    def work() -> dict[str, Any]:
        prop = require_property(db, property_id)
        require_pending(prop)

        if actor.role not in START_ROLES:
            raise InsufficientPermissions("Not authorized to start approval")

        if active_run(db, property_id) is not None:
            raise ApprovalExists("Approval process already started")

        if settings.approval_validate_on_start:
            check = validate_listing_type_requirements(prop)
            if not check.valid:
                raise ValidationFailed(check.message or "Listing requirements not met")

        listing_type = parse_listing_type(prop.listing_type)
        plan = build_plan(listing_type)
        now = utcnow()

        run = Approval(
            property_id=prop.id,
            status=ApprovalStatus.IN_PROGRESS.value,
            started_by=actor.user_id,
            started_at=now,
            created_at=now,
        )
        db.add(run)
        try:
            db.flush()
        except IntegrityError:
            # lost the race against a concurrent start
            raise ApprovalExists("Approval process already started") from None

        for ps in plan:
            db.add(
                ApprovalStep(
                    approval_id=run.id,
                    step=ps.step_name,
                    step_order=ps.step_order,
                    required_role=ps.required_role.value,
                    status=StepStatus.PENDING.value,
                    created_at=now,
                    updated_at=now,
                )
            )
        db.flush()

        steps = [p.as_dict() | {"status": StepStatus.PENDING.value} for p in plan]
        audit_write(
            db,
            **actor_fields(actor),
            action="approval_started",
            entity_type=PROPERTY_ENTITY,
            entity_id=prop.id,
            before={"status": prop.status, "approval": None},
            after={
                "status": prop.status,
                "approval_id": int(run.id),
                "approval_status": run.status,
                "steps": steps,
            },
            meta={
                "approval_id": int(run.id),
                "listing_type": listing_type.value,
                "property_code": prop.code,
            },
        )

        if not includes_budget_step(listing_type):
            reason = budget_skip_reason(listing_type)
            audit_write(
                db,
                **actor_fields(actor),
                action="budget_step_skipped",
                entity_type=PROPERTY_ENTITY,
                entity_id=prop.id,
                before=None,
                after={"approval_id": int(run.id), "step": BUDGET_STEP, "status": "skipped"},
                meta={"approval_id": int(run.id), "step": BUDGET_STEP, "reason": reason},
            )

        return {
            "message": "Approval process started",
            "approval_id": int(run.id),
            "steps": steps,
        }

    return run_unit_of_work(
        db, operation="approval.start", property_id=property_id, actor=actor, work=work
    )


def decide_approval(
    db: Session,
    *,
    property_id: int,
    actor: Principal,
    action: object,
    comments: Optional[str] = None,
) -> ApprovalOutcome:
    """
    Approve or reject the current step of the property's in-progress run.

    Preconditions:
      ApprovalNotFound (RunNotActive if the latest run is already closed)
      -> NoPendingSteps -> InsufficientPermissions
    """

    def work() -> dict[str, Any]:
        decision = _parse_decision(action)

        # serialises concurrent decisions on the same property
        prop = lock_property(db, property_id)
        run = active_run(db, property_id) if prop is not None else None

        if run is None:
            last = latest_run(db, property_id) if prop is not None else None
            if last is not None:
                raise RunNotActive(f"Approval process is already {last.status}")
            raise ApprovalNotFound("No active approval found for this property")

        step = current_step(db, run.id)
        if step is None:
            raise NoPendingSteps(f"No pending approval steps (approval_id={run.id})")

        if not _can_act(actor, step):
            raise InsufficientPermissions(f"This step requires {step.required_role} role")

        require_pending(prop)

        now = utcnow()
        note = (comments or "").strip() or None
        before_step = step_snapshot(step)

        step.status = (
            StepStatus.APPROVED.value if decision is Decision.APPROVE else StepStatus.REJECTED.value
        )
        step.approved_by = actor.user_id
        step.approved_at = now
        step.comments = note
        step.updated_at = now
        db.add(step)

        if decision is Decision.REJECT:
            run.status = ApprovalStatus.REJECTED.value
            run.completed_at = now
            prop.status = PropertyStatus.REJECTED.value
            prop.updated_at = now
            db.add_all([run, prop])
            db.flush()

            ev = audit_write(
                db,
                **actor_fields(actor),
                action="approval_rejected",
                entity_type=PROPERTY_ENTITY,
                entity_id=prop.id,
                before={"status": PropertyStatus.PENDING.value, "approval_status": ApprovalStatus.IN_PROGRESS.value, "step": before_step},
                after={"status": prop.status, "approval_id": int(run.id), "approval_status": run.status, "step": step_snapshot(step)},
                meta={"approval_id": int(run.id), "step": step.step, "comments": note},
            )
            return {
                "message": "Property rejected successfully",
                "approval_id": int(run.id),
                "step": step.step,
                "approval_status": run.status,
                "property_status": prop.status,
                "audit_log_id": int(ev.id),
            }

        db.flush()
        nxt = current_step(db, run.id)

        if nxt is not None:
            ev = audit_write(
                db,
                **actor_fields(actor),
                action="approval_step_approved",
                entity_type=PROPERTY_ENTITY,
                entity_id=prop.id,
                before={"approval_status": run.status, "step": before_step},
                after={
                    "approval_id": int(run.id),
                    "approval_status": run.status,
                    "step": step_snapshot(step),
                    "next_step": step_snapshot(nxt),
                },
                meta={"approval_id": int(run.id), "step": step.step, "comments": note},
            )
            return {
                "message": "Property approved successfully",
                "approval_id": int(run.id),
                "step": step.step,
                "approval_status": run.status,
                "property_status": prop.status,
                "next_step": nxt.step,
                "next_required_role": nxt.required_role,
                "audit_log_id": int(ev.id),
            }

        run.status = ApprovalStatus.APPROVED.value
        run.completed_at = now
        prop.status = PropertyStatus.ACTIVE.value
        prop.updated_at = now
        db.add_all([run, prop])
        db.flush()

        ev = audit_write(
            db,
            **actor_fields(actor),
            action="property_approved",
            entity_type=PROPERTY_ENTITY,
            entity_id=prop.id,
            before={"status": PropertyStatus.PENDING.value, "approval_status": ApprovalStatus.IN_PROGRESS.value, "step": before_step},
            after={"status": prop.status, "approval_id": int(run.id), "approval_status": run.status, "step": step_snapshot(step)},
            meta={"approval_id": int(run.id), "step": step.step, "comments": note},
        )
        return {
            "message": "Property approved successfully",
            "approval_id": int(run.id),
            "step": step.step,
            "approval_status": run.status,
            "property_status": prop.status,
            "audit_log_id": int(ev.id),
        }

    return run_unit_of_work(
        db, operation="approval.decide", property_id=property_id, actor=actor, work=work
    )
