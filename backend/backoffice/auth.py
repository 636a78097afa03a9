# backend/backoffice/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .domain.approval_plan import Role, parse_role
from .models import AppUser
from .services.auth_service import decode_access_token, get_or_create_user


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str
    role: Role
    branch_id: Optional[int] = None


def _principal_from_user(user: AppUser, role_override: Optional[Role] = None) -> Principal:
    role = role_override or parse_role(user.role)
    if role is None:
        raise HTTPException(status_code=401, detail=f"Unknown role: {user.role}")
    return Principal(
        user_id=int(user.id),
        email=str(user.email),
        role=role,
        branch_id=int(user.branch_id) if user.branch_id is not None else None,
    )


def _parse_branch(raw: Optional[str]) -> Optional[int]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        raise HTTPException(status_code=400, detail="Branch header must be an integer") from None


def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """
    Auth modes supported (in priority order):
      1) Authorization: Bearer <token> (HS256, claims uid + role)
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    token = None
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()

    if token:
        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired") from None
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token") from None

        try:
            user_id = int(claims.get("uid") or claims.get("sub") or 0)
        except (TypeError, ValueError):
            user_id = 0
        user = db.get(AppUser, user_id) if user_id else None
        if user is None:
            raise HTTPException(status_code=401, detail="Unknown user")
        return _principal_from_user(user)

    if settings.auth_mode == "dev":
        email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower()
        role_hint = (request.headers.get(settings.dev_header_user_role) or "").strip().lower()
        branch_id = _parse_branch(request.headers.get(settings.dev_header_branch_id))
        if not email:
            raise HTTPException(status_code=401, detail="Missing X-User-Email for dev auth")

        role = parse_role(role_hint) if role_hint else None
        if role_hint and role is None:
            raise HTTPException(status_code=401, detail=f"Unknown role: {role_hint}")

        user = db.query(AppUser).filter(AppUser.email == email).first()
        if user is None:
            if not settings.dev_auto_provision:
                raise HTTPException(status_code=401, detail="Unknown user")
            user = get_or_create_user(db, email, role=(role or Role.AGENT).value, branch_id=branch_id)

        # header role wins in dev so one seeded user can exercise every step
        return _principal_from_user(user, role_override=role)

    raise HTTPException(status_code=401, detail="Not authenticated")
