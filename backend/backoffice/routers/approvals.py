from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..domain.approval_errors import ApprovalOutcome
from ..schemas import DecisionIn, DirectApproveIn, DirectRejectIn, EnvelopeOut, PrincipalOut
from ..services.approval_queries import (
    PENDING_VIEWS,
    get_approval_status,
    get_history,
    get_pending_for_role,
)
from ..services.approval_workflow import decide_approval, start_approval
from ..services.direct_approval import approve_property, reject_property

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _respond(outcome: ApprovalOutcome):
    if outcome.ok:
        return {"success": True, "data": outcome.data}
    err = outcome.error
    return JSONResponse(
        status_code=err.http_status,
        content={"success": False, "error": err.as_dict()},
    )


@router.get("/me", response_model=PrincipalOut)
def whoami(p: Principal = Depends(get_principal)):
    return PrincipalOut(user_id=p.user_id, email=p.email, role=p.role.value, branch_id=p.branch_id)


@router.get("/pending")
def pending(
    view: str = Query(default="steps"),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    if view not in PENDING_VIEWS:
        raise HTTPException(status_code=400, detail=f"view must be one of {', '.join(PENDING_VIEWS)}")
    return {"success": True, "data": get_pending_for_role(db, p, view=view, page=page, limit=limit)}


@router.post("/properties/{property_id}/start", response_model=EnvelopeOut)
def start(property_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return _respond(start_approval(db, property_id=property_id, actor=p))


@router.get("/properties/{property_id}")
def status(property_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return {"success": True, "data": get_approval_status(db, property_id)}


@router.get("/properties/{property_id}/history")
def history(property_id: int, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return {"success": True, "data": get_history(db, property_id)}


@router.post("/properties/{property_id}/{action}", response_model=EnvelopeOut)
def decide(
    property_id: int,
    action: str,
    payload: Optional[DecisionIn] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    comments = payload.comments if payload else None
    return _respond(decide_approval(db, property_id=property_id, actor=p, action=action, comments=comments))


@router.post("/direct/{property_id}/approve", response_model=EnvelopeOut)
def direct_approve(
    property_id: int,
    payload: Optional[DirectApproveIn] = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    comments = payload.comments if payload else None
    return _respond(approve_property(db, property_id=property_id, actor=p, comments=comments))


@router.post("/direct/{property_id}/reject", response_model=EnvelopeOut)
def direct_reject(
    property_id: int,
    payload: DirectRejectIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return _respond(reject_property(db, property_id=property_id, actor=p, reason=payload.reason))
