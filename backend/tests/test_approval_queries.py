from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from backoffice.domain.approval_plan import Role
from backoffice.services.approval_queries import (
    get_approval_status,
    get_history,
    get_pending_for_role,
)
from backoffice.services.approval_workflow import decide_approval, start_approval


def _start(db, mk, listing_type="agency_owned", **fields):
    p = mk.listing(listing_type, **fields)
    assert start_approval(db, property_id=p.id, actor=mk.principal(Role.AGENT)).ok
    return p


def test_pending_steps_shows_only_current_step_for_role(db, mk):
    old = _start(db, mk, "agency_owned", created_at=datetime.utcnow() - timedelta(days=3, hours=2))
    new = _start(db, mk, "branch_owned")
    moved_on = _start(db, mk, "agency_owned")
    decide_approval(db, property_id=moved_on.id, actor=mk.principal(Role.MANAGER), action="approve")

    out = get_pending_for_role(db, mk.principal(Role.MANAGER), view="steps")

    assert out["view"] == "steps"
    # manager_publish steps are not current yet, moved_on sits at vp_budget
    assert [i["property_id"] for i in out["items"]] == [old.id, new.id]
    assert all(i["step"] == "manager" for i in out["items"])
    assert out["items"][0]["days_pending"] == 3
    assert out["items"][0]["property_code"] == old.code
    assert out["pagination"] == {"page": 1, "limit": 20, "total": 2, "total_pages": 1}

    vp_items = get_pending_for_role(db, mk.principal(Role.VP))["items"]
    assert [(i["property_id"], i["step"]) for i in vp_items] == [(moved_on.id, "vp_budget")]


def test_admin_sees_every_current_step(db, mk):
    a = _start(db, mk, "agency_owned")
    b = _start(db, mk, "brokerage")
    decide_approval(db, property_id=a.id, actor=mk.principal(Role.MANAGER), action="approve")

    items = get_pending_for_role(db, mk.principal(Role.ADMIN))["items"]

    assert {(i["property_id"], i["required_role"]) for i in items} == {(a.id, "vp"), (b.id, "manager")}


def test_closed_runs_leave_the_queue(db, mk):
    p = _start(db, mk, "branch_owned")
    decide_approval(db, property_id=p.id, actor=mk.principal(Role.MANAGER), action="reject")

    assert get_pending_for_role(db, mk.principal(Role.ADMIN))["items"] == []


def test_agent_queue_is_empty(db, mk):
    _start(db, mk, "agency_owned")
    out = get_pending_for_role(db, mk.principal(Role.AGENT), view="properties")
    assert out["items"] == []
    assert out["pagination"]["total"] == 0


def test_manager_queue_is_branch_scoped(db, mk):
    north = mk.branch("North")
    south = mk.branch("South")
    mine = _start(db, mk, "agency_owned", branch_id=north.id)
    _start(db, mk, "agency_owned", branch_id=south.id)

    items = get_pending_for_role(db, mk.principal(Role.MANAGER, branch_id=north.id))["items"]
    assert [i["property_id"] for i in items] == [mine.id]

    vp_items = get_pending_for_role(db, mk.principal(Role.VP, branch_id=north.id))["items"]
    assert vp_items == []

    admin_items = get_pending_for_role(db, mk.principal(Role.ADMIN, branch_id=north.id))["items"]
    assert len(admin_items) == 2


def test_pending_properties_view_leaves_out_listings_with_a_run(db, mk):
    free = mk.listing("agency_owned")
    in_flight = _start(db, mk, "branch_owned")

    out = get_pending_for_role(db, mk.principal(Role.DIRECTOR), view="properties")

    ids = [i["property_id"] for i in out["items"]]
    assert free.id in ids
    assert in_flight.id not in ids
    assert out["pagination"]["total"] == 1


def test_pending_properties_view_newest_first_with_paging(db, mk):
    now = datetime.utcnow()
    p1 = mk.listing("agency_owned", created_at=now - timedelta(days=5))
    p2 = mk.listing("branch_owned", created_at=now - timedelta(days=1))
    p3 = mk.listing("brokerage", created_at=now)
    mk.listing("agency_owned", status="active")

    director = mk.principal(Role.DIRECTOR)
    page1 = get_pending_for_role(db, director, view="properties", page=1, limit=2)
    page2 = get_pending_for_role(db, director, view="properties", page=2, limit=2)

    assert [i["property_id"] for i in page1["items"]] == [p3.id, p2.id]
    assert [i["property_id"] for i in page2["items"]] == [p1.id]
    assert page2["items"][0]["days_pending"] == 5
    assert page1["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}


def test_page_size_is_clamped(db, mk):
    out = get_pending_for_role(db, mk.principal(Role.DIRECTOR), view="properties", page=0, limit=10_000)
    assert out["pagination"]["page"] == 1
    assert out["pagination"]["limit"] == 100


def test_unknown_view(db, mk):
    with pytest.raises(ValueError):
        get_pending_for_role(db, mk.principal(Role.ADMIN), view="everything")


def test_history_newest_first_with_actor_names(db, mk):
    p = _start(db, mk, "branch_owned")
    manager = mk.principal(Role.MANAGER)
    decide_approval(db, property_id=p.id, actor=manager, action="approve", comments="first pass")

    out = get_history(db, p.id)

    assert out["property_id"] == p.id
    actions = [h["action"] for h in out["history"]]
    assert actions == ["approval_step_approved", "budget_step_skipped", "approval_started"]

    top = out["history"][0]
    assert top["actor_id"] == manager.user_id
    assert top["actor_role"] == "manager"
    assert top["actor"].startswith("Manager ")
    assert top["metadata"]["comments"] == "first pass"
    assert top["after_state"]["next_step"]["step"] == "director"
    assert top["timestamp"]


def test_history_of_untouched_property_is_empty(db, mk):
    p = mk.listing("agency_owned")
    assert get_history(db, p.id)["history"] == []


def test_approval_status_view(db, mk):
    assert get_approval_status(db, 1) == {"approval": None, "steps": []}

    p = _start(db, mk, "agency_owned")
    manager = mk.principal(Role.MANAGER)
    decide_approval(db, property_id=p.id, actor=manager, action="approve")

    out = get_approval_status(db, p.id)
    assert out["approval"]["status"] == "in_progress"
    assert out["approval"]["current_step"] == "vp_budget"
    assert [s["status"] for s in out["steps"]] == ["approved", "pending", "pending", "pending"]
    assert out["steps"][0]["approved_by"] == manager.user_id
    assert out["steps"][0]["approved_by_name"].startswith("Manager ")

    decide_approval(db, property_id=p.id, actor=mk.principal(Role.VP), action="reject")
    closed = get_approval_status(db, p.id)
    assert closed["approval"]["status"] == "rejected"
    assert closed["approval"]["current_step"] is None
    assert closed["approval"]["completed_at"]
