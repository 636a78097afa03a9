# backend/backoffice/services/auth_service.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt  # PyJWT

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..models import AppUser


def _now() -> datetime:
    return datetime.utcnow()


def create_access_token(*, user_id: int, role: str, minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = int(minutes if minutes is not None else settings.jwt_exp_minutes)
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "uid": int(user_id),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])


def get_or_create_user(
    db: Session,
    email: str,
    *,
    role: str,
    branch_id: Optional[int] = None,
) -> AppUser:
    email = email.strip().lower()
    u = db.scalar(select(AppUser).where(AppUser.email == email))
    if u:
        return u
    local = email.split("@")[0]
    u = AppUser(email=email, first_name=local, role=role, branch_id=branch_id, created_at=_now())
    db.add(u)
    db.commit()
    db.refresh(u)
    return u
