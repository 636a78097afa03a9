from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backoffice.domain.approval_errors import ApprovalExists, NoPendingSteps
from backoffice.domain.approval_plan import Role
from backoffice.domain.audit import audit_write
from backoffice.models import Approval, AuditEvent, Property
from backoffice.services.approval_common import run_unit_of_work


def _audit_count(db) -> int:
    return int(db.scalar(select(func.count(AuditEvent.id))) or 0)


def test_typed_error_rolls_back_and_becomes_failure(db, mk):
    actor = mk.principal(Role.MANAGER)
    p = mk.listing("agency_owned")

    def work():
        p.status = "active"
        audit_write(db, actor_user_id=actor.user_id, actor_role="manager", action="x", entity_type="Property", entity_id=p.id)
        raise ApprovalExists("already running")

    out = run_unit_of_work(db, operation="test", property_id=p.id, actor=actor, work=work)

    assert not out.ok
    assert out.error.code == "APPROVAL_EXISTS"
    assert out.error.as_dict() == {"code": "APPROVAL_EXISTS", "message": "already running"}
    assert db.get(Property, p.id).status == "pending"
    assert _audit_count(db) == 0


def test_internal_error_kind_is_still_a_failure(db, mk):
    actor = mk.principal(Role.ADMIN)

    def work():
        raise NoPendingSteps("run 1 has no pending steps")

    out = run_unit_of_work(db, operation="test", property_id=1, actor=actor, work=work)
    assert out.error.code == "NO_PENDING_STEPS"
    assert out.error.http_status == 500


def test_unexpected_error_rolls_back_and_propagates(db, mk):
    actor = mk.principal(Role.ADMIN)
    p = mk.listing("branch_owned")

    def work():
        p.status = "sold"
        db.flush()
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_unit_of_work(db, operation="test", property_id=p.id, actor=actor, work=work)

    assert db.get(Property, p.id).status == "pending"


def test_success_commits(db, mk):
    actor = mk.principal(Role.ADMIN)

    out = run_unit_of_work(db, operation="test", property_id=1, actor=actor, work=lambda: {"value": 3})

    assert out.ok
    assert out.data == {"value": 3}


def test_database_allows_one_in_progress_run_per_property(db, mk):
    p = mk.listing("agency_owned")
    now = datetime.utcnow()
    db.add(Approval(property_id=p.id, status="rejected", started_at=now, created_at=now))
    db.add(Approval(property_id=p.id, status="in_progress", started_at=now, created_at=now))
    db.commit()

    db.add(Approval(property_id=p.id, status="in_progress", started_at=now, created_at=now))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
