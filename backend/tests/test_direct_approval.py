from __future__ import annotations

import json

from sqlalchemy import func, select

from backoffice.domain.approval_plan import Role
from backoffice.models import Approval, AuditEvent, Property
from backoffice.services.approval_workflow import start_approval
from backoffice.services.direct_approval import (
    approve_property,
    reject_property,
    validate_approval_permissions,
)


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditEvent.id))) or 0)


def test_direct_approve_activates_and_audits(db, mk):
    director = mk.principal(Role.DIRECTOR)
    p = mk.listing("agency_owned")

    out = approve_property(db, property_id=p.id, actor=director, comments="ok")

    assert out.ok, out.error
    assert out.data["new_status"] == "active"
    assert out.data["property_id"] == p.id
    assert db.get(Property, p.id).status == "active"

    ev = db.get(AuditEvent, out.data["audit_log_id"])
    assert ev.action == "APPROVE"
    assert ev.entity_type == "Property"
    assert json.loads(ev.before_json)["status"] == "pending"
    assert json.loads(ev.after_json)["status"] == "active"
    assert ev.actor_role == "director"

    # never opens a step-wise run
    assert db.scalar(select(Approval).where(Approval.property_id == p.id)) is None


def test_direct_approve_requires_listing_data(db, mk):
    p = mk.listing("brokerage", owner_contact=None)

    out = approve_property(db, property_id=p.id, actor=mk.principal(Role.MANAGER))

    assert out.error.code == "VALIDATION_FAILED"
    assert "owner data" in out.error.message
    assert db.get(Property, p.id).status == "pending"
    assert _audit_count(db) == 0


def test_workflow_start_and_direct_approve_disagree_on_incomplete_brokerage(db, mk):
    p = mk.listing("brokerage", owner_contact=None)
    assert start_approval(db, property_id=p.id, actor=mk.principal(Role.AGENT)).ok

    out = approve_property(db, property_id=p.id, actor=mk.principal(Role.ADMIN))
    # the run is still open, so the direct path is refused before validation
    assert out.error.code == "APPROVAL_EXISTS"


def test_agent_cannot_use_direct_path(db, mk):
    agent = mk.principal(Role.AGENT)
    p = mk.listing("agency_owned")

    assert not validate_approval_permissions(agent)
    out = approve_property(db, property_id=p.id, actor=agent)
    assert out.error.code == "INSUFFICIENT_PERMISSIONS"
    assert out.error.http_status == 403


def test_direct_approve_only_from_pending(db, mk):
    p = mk.listing("agency_owned", status="sold")
    out = approve_property(db, property_id=p.id, actor=mk.principal(Role.ADMIN))
    assert out.error.code == "INVALID_STATUS"

    out = approve_property(db, property_id=777, actor=mk.principal(Role.ADMIN))
    assert out.error.code == "PROPERTY_NOT_FOUND"


def test_direct_reject_trims_reason_and_audits(db, mk):
    vp = mk.principal(Role.VP)
    p = mk.listing("branch_owned")

    out = reject_property(db, property_id=p.id, actor=vp, reason="   price far above market   ")

    assert out.ok
    assert out.data["new_status"] == "rejected"
    assert out.data["rejection_reason"] == "price far above market"
    assert db.get(Property, p.id).status == "rejected"

    ev = db.get(AuditEvent, out.data["audit_log_id"])
    assert ev.action == "UPDATE"
    meta = json.loads(ev.meta_json)
    assert meta["action_type"] == "REJECT"
    assert meta["rejection_reason"] == "price far above market"


def test_direct_reject_needs_a_real_reason(db, mk):
    p = mk.listing("agency_owned")
    manager = mk.principal(Role.MANAGER)

    for reason in (None, "", "   short   "):
        out = reject_property(db, property_id=p.id, actor=manager, reason=reason)
        assert out.error.code == "INVALID_REASON"

    assert db.get(Property, p.id).status == "pending"
    assert _audit_count(db) == 0


def test_direct_reject_refused_while_run_in_progress(db, mk):
    p = mk.listing("agency_owned")
    start_approval(db, property_id=p.id, actor=mk.principal(Role.AGENT))
    audits_before = _audit_count(db)

    out = reject_property(db, property_id=p.id, actor=mk.principal(Role.DIRECTOR), reason="duplicate listing of P-1")

    assert out.error.code == "APPROVAL_EXISTS"
    assert db.get(Property, p.id).status == "pending"
    assert _audit_count(db) == audits_before
