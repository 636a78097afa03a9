# backend/backoffice/domain/audit.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent

PROPERTY_ENTITY = "Property"


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str, ensure_ascii=False)


def loads_snapshot(s: Optional[str]) -> Optional[dict[str, Any]]:
    if not s:
        return None
    try:
        x = json.loads(s)
    except ValueError:
        return None
    return x if isinstance(x, dict) else None


def audit_write(
    db: Session,
    *,
    actor_user_id: Optional[int],
    actor_role: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    meta: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Append one audit row to the caller's transaction.

    Flushes so the id is available, never commits: the row lands or
    disappears together with the mutation it describes.
    """
    row = AuditEvent(
        actor_user_id=actor_user_id,
        actor_role=actor_role,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        meta_json=_dumps(meta),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    return row
