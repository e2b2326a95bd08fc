# backend/backoffice/routers/audit.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require_permission
from ..db import get_db
from ..domain.audit import entries_by_actor, history_for_entity
from ..errors import ValidationFailed
from ..schemas import AuditEntryOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditEntryOut])
def list_audit(
    actor_id: Optional[int] = Query(default=None),
    action: Optional[str] = Query(default=None),
    entity: Optional[str] = Query(default=None),
    entity_id: Optional[str] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("audit:read")),
):
    if actor_id is not None:
        rows = entries_by_actor(db, actor_id=actor_id, action=action, limit=limit)
    elif entity and entity_id:
        rows = history_for_entity(db, entity=entity, entity_id=entity_id, limit=limit)
    else:
        raise ValidationFailed("Pass actor_id, or entity and entity_id")
    return [r.as_dict() for r in rows]
