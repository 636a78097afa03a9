# backend/backoffice/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from backoffice.db import Base, SessionLocal, engine
from backoffice.domain.approval_plan import ListingType, PropertyStatus, Role
from backoffice.models import AppUser, Branch, Property
from backoffice.services.auth_service import create_access_token


@dataclass(frozen=True)
class SeedResult:
    branch_id: int
    user_emails: dict[str, str]
    user_ids: dict[str, int] = field(default_factory=dict)
    property_ids: dict[str, int] = field(default_factory=dict)


# one demo login per role, all in the same branch
DEMO_USERS = {
    Role.AGENT: ("agent@demo.local", "Aysel", "Agent"),
    Role.MANAGER: ("manager@demo.local", "Murad", "Manager"),
    Role.VP: ("vp@demo.local", "Vugar", "Budget"),
    Role.DIRECTOR: ("director@demo.local", "Dilara", "Director"),
    Role.ADMIN: ("admin@demo.local", "Anar", "Admin"),
}


def _get_or_create_branch(db: Session, name: str) -> Branch:
    row = db.query(Branch).filter(Branch.name == name).one_or_none()
    if row:
        return row
    row = Branch(name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_user(db: Session, email: str, first: str, last: str, role: Role, branch_id: int) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, first_name=first, last_name=last, role=role.value, branch_id=branch_id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_property(db: Session, code: str, **fields) -> Property:
    row = db.query(Property).filter(Property.code == code).one_or_none()
    if row:
        return row
    now = datetime.utcnow()
    row = Property(code=code, status=PropertyStatus.PENDING.value, created_at=now, updated_at=now, **fields)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(
    *,
    branch_name: str = "Main",
    create_schema: bool = False,
    create_sample_properties: bool = True,
) -> SeedResult:
    if create_schema:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        branch = _get_or_create_branch(db, branch_name)
        users = {
            role: _get_or_create_user(db, email, first, last, role, branch.id)
            for role, (email, first, last) in DEMO_USERS.items()
        }

        property_ids: dict[str, int] = {}
        if create_sample_properties:
            agent = users[Role.AGENT]
            common = {"branch_id": branch.id, "created_by_id": agent.id, "property_category": "apartment"}

            agency = _get_or_create_property(
                db, "DEMO-AG-001", listing_type=ListingType.AGENCY_OWNED.value, buy_price=120_000, area_m2=84.0, **common
            )
            branch_owned = _get_or_create_property(
                db, "DEMO-BR-001", listing_type=ListingType.BRANCH_OWNED.value, buy_price=95_000, area_m2=61.5, **common
            )
            brokerage = _get_or_create_property(
                db,
                "DEMO-BK-001",
                listing_type=ListingType.BROKERAGE.value,
                owner_first_name="Leyla",
                owner_last_name="Huseynova",
                owner_contact="+994 50 000 00 00",
                brokerage_commission_percent=2.5,
                sell_price=150_000,
                area_m2=102.0,
                **common,
            )
            property_ids = {
                ListingType.AGENCY_OWNED.value: int(agency.id),
                ListingType.BRANCH_OWNED.value: int(branch_owned.id),
                ListingType.BROKERAGE.value: int(brokerage.id),
            }

        return SeedResult(
            branch_id=int(branch.id),
            user_emails={role.value: u.email for role, u in users.items()},
            user_ids={role.value: int(u.id) for role, u in users.items()},
            property_ids=property_ids,
        )
    finally:
        db.close()


def demo_tokens(result: SeedResult, *, minutes: int | None = None) -> dict[str, str]:
    """Bearer token per demo role; lifetime defaults to settings.jwt_exp_minutes."""
    return {
        role: create_access_token(user_id=uid, role=role, minutes=minutes)
        for role, uid in result.user_ids.items()
    }
