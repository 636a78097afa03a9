# backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile
from datetime import datetime
from typing import Optional

import pytest

# settings are read at import time; point them at a throwaway sqlite file first
_DB_DIR = tempfile.mkdtemp(prefix="backoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AUTH_MODE", "dev")

from backoffice.auth import Principal  # noqa: E402
from backoffice.db import Base, SessionLocal, engine  # noqa: E402
from backoffice.domain.approval_plan import Role  # noqa: E402
from backoffice.models import AppUser, Branch, Property  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


class Factory:
    """Small builders for branches, users and listings."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def branch(self, name: str = "Main") -> Branch:
        b = Branch(name=name, created_at=datetime.utcnow())
        self.db.add(b)
        self.db.commit()
        self.db.refresh(b)
        return b

    def user(self, role: Role, *, branch_id: Optional[int] = None, email: Optional[str] = None) -> AppUser:
        self._n += 1
        u = AppUser(
            email=email or f"{role.value}{self._n}@t.local",
            first_name=role.value.title(),
            last_name=f"User{self._n}",
            role=role.value,
            branch_id=branch_id,
            created_at=datetime.utcnow(),
        )
        self.db.add(u)
        self.db.commit()
        self.db.refresh(u)
        return u

    def principal(self, role: Role, *, branch_id: Optional[int] = None) -> Principal:
        u = self.user(role, branch_id=branch_id)
        return Principal(user_id=u.id, email=u.email, role=role, branch_id=branch_id)

    def listing(self, listing_type: str = "agency_owned", *, created_at: Optional[datetime] = None, **fields) -> Property:
        self._n += 1
        now = created_at or datetime.utcnow()
        defaults = {
            "agency_owned": {"buy_price": 100_000.0},
            "branch_owned": {"buy_price": 80_000.0},
            "brokerage": {
                "owner_first_name": "Leyla",
                "owner_last_name": "Huseynova",
                "owner_contact": "+994 50 000 00 00",
                "brokerage_commission_percent": 2.5,
            },
        }.get(listing_type, {})
        values = {
            "code": f"P-{self._n:04d}",
            "status": "pending",
            "listing_type": listing_type,
            "created_at": now,
            "updated_at": now,
            **defaults,
            **fields,
        }
        p = Property(**values)
        self.db.add(p)
        self.db.commit()
        self.db.refresh(p)
        return p


@pytest.fixture
def mk(db):
    return Factory(db)
