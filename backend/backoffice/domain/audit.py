# backend/backoffice/domain/audit.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..models import AppUser, AuditLog

ENTITY_PROPERTY = "property"
ENTITY_BOOKING = "booking"


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def _loads(s: Optional[str]) -> Optional[dict[str, Any]]:
    if not s:
        return None
    try:
        x = json.loads(s)
        return x if isinstance(x, dict) else {"value": x}
    except ValueError:
        return {"raw": s}


def audit_write(
    db: Session,
    *,
    actor_id: Optional[int],
    actor_role: str,
    action: str,
    entity: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    meta: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Append one audit row.

    Never commits: the row must land in the same transaction as the change it
    describes. Flushes so the caller can report the new id.
    """
    row = AuditLog(
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        before_json=_dumps(before),
        after_json=_dumps(after),
        meta_json=_dumps(meta),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    return row


@dataclass(frozen=True)
class AuditEntryView:
    id: int
    entity: str
    entity_id: str
    action: str
    actor_id: Optional[int]
    actor_role: str
    actor_name: Optional[str]
    before_state: Optional[dict[str, Any]]
    after_state: Optional[dict[str, Any]]
    metadata: Optional[dict[str, Any]]
    created_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "actor": self.actor_name,
            "before_state": self.before_state,
            "after_state": self.after_state,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }


def _view(row: AuditLog, actor: Optional[AppUser]) -> AuditEntryView:
    return AuditEntryView(
        id=int(row.id),
        entity=row.entity,
        entity_id=row.entity_id,
        action=row.action,
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        actor_name=actor.full_name if actor is not None else None,
        before_state=_loads(row.before_json),
        after_state=_loads(row.after_json),
        metadata=_loads(row.meta_json),
        created_at=row.created_at,
    )


def history_for_entity(db: Session, *, entity: str, entity_id: Any, limit: int = 200) -> list[AuditEntryView]:
    """Entity history, newest first."""
    q = (
        select(AuditLog, AppUser)
        .outerjoin(AppUser, AppUser.id == AuditLog.actor_id)
        .where(AuditLog.entity == entity, AuditLog.entity_id == str(entity_id))
        .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
        .limit(int(limit))
    )
    return [_view(row, actor) for row, actor in db.execute(q).all()]


def entries_by_actor(
    db: Session,
    *,
    actor_id: int,
    action: Optional[str] = None,
    limit: int = 200,
) -> list[AuditEntryView]:
    """Accountability view: everything one user did, newest first."""
    q = (
        select(AuditLog, AppUser)
        .outerjoin(AppUser, AppUser.id == AuditLog.actor_id)
        .where(AuditLog.actor_id == int(actor_id))
    )
    if action:
        q = q.where(AuditLog.action == action)
    q = q.order_by(desc(AuditLog.created_at), desc(AuditLog.id)).limit(int(limit))
    return [_view(row, actor) for row, actor in db.execute(q).all()]
