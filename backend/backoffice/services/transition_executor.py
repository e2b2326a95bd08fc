# backend/backoffice/services/transition_executor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.approval_policy import Decision
from ..domain.audit import ENTITY_PROPERTY, audit_write
from ..domain.statuses import (
    PROPERTY_ACTIVE,
    PROPERTY_ARCHIVED,
    PROPERTY_REJECTED,
    PROPERTY_SOLD,
)
from ..errors import ConflictError, NotFoundError
from ..models import Property
from .notifications import notify_many

log = logging.getLogger("backoffice.transitions")

# -----------------------------------------------------------------------------
# Transition Executor
# -----------------------------------------------------------------------------
# The only writer of Property.status. Applies an allowed Decision with a single
# conditional UPDATE keyed on the status the decision was computed from, and
# writes the audit row in the same transaction. Zero rows updated means another
# actor moved the property first: CONFLICT, never a silent retry.
# -----------------------------------------------------------------------------

NOTIFY_TYPE_BY_STATUS = {
    PROPERTY_ACTIVE: "property_approved",
    PROPERTY_REJECTED: "property_rejected",
    PROPERTY_SOLD: "property_sold",
    PROPERTY_ARCHIVED: "property_archived",
}

SNAPSHOT_FIELDS = (
    "status",
    "code",
    "listing_type",
    "category",
    "property_category",
    "buy_price_azn",
    "sell_price_azn",
    "brokerage_commission_percent",
)


def _utcnow() -> datetime:
    return datetime.utcnow()


def property_snapshot(prop: Property) -> dict[str, Any]:
    return {k: getattr(prop, k, None) for k in SNAPSHOT_FIELDS}


@dataclass(frozen=True)
class TransitionResult:
    property_id: int
    property_code: str
    previous_status: str
    new_status: str
    audit_log_id: int
    recipients: tuple[Optional[int], ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "property_id": self.property_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "audit_log_id": self.audit_log_id,
        }


def apply_transition(
    db: Session,
    *,
    property_id: int,
    decision: Decision,
    actor: Principal,
    meta: Optional[dict[str, Any]] = None,
    extra_values: Optional[dict[str, Any]] = None,
    commit: bool = True,
) -> TransitionResult:
    """
    Apply an allowed decision to one property.

    commit=True: commits, then requests notifications (failures never roll
    back the transition).
    commit=False: flush only; the caller bundles more writes and commits,
    then calls notify_transition().
    """
    if not decision.allowed or not decision.next_status:
        raise ValueError("apply_transition requires an allowed decision")

    prop = db.get(Property, int(property_id))
    if prop is None:
        raise NotFoundError("Property not found", code="PROPERTY_NOT_FOUND")

    expected = decision.current_status
    now = _utcnow()

    values: dict[str, Any] = {
        "status": decision.next_status,
        "updated_at": now,
        "updated_by": actor.user_id,
    }
    if decision.next_status == PROPERTY_ARCHIVED:
        values["archived_at"] = now
    if decision.next_status == PROPERTY_SOLD:
        values["sold_at"] = now
    if extra_values:
        values.update(extra_values)

    before = property_snapshot(prop)
    before["status"] = expected

    res = db.execute(
        update(Property)
        .where(Property.id == int(property_id), Property.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        if commit:
            db.rollback()
        log.warning(
            "status changed concurrently",
            extra={"property_id": int(property_id), "user_id": actor.user_id, "action": decision.action},
        )
        raise ConflictError(
            f"Property status changed concurrently (expected {expected})",
            code="CONFLICT",
            details={"expected_status": expected},
        )

    db.refresh(prop)
    after = property_snapshot(prop)

    audit_meta: dict[str, Any] = {
        "listing_type": prop.listing_type,
        "property_code": prop.code,
    }
    if meta:
        audit_meta.update(meta)

    entry = audit_write(
        db,
        actor_id=actor.user_id,
        actor_role=actor.role,
        action=decision.audit_action or decision.action.upper(),
        entity=ENTITY_PROPERTY,
        entity_id=prop.id,
        before=before,
        after=after,
        meta=audit_meta,
    )

    result = TransitionResult(
        property_id=int(prop.id),
        property_code=str(prop.code),
        previous_status=expected,
        new_status=str(prop.status),
        audit_log_id=int(entry.id),
        recipients=(prop.created_by_id, prop.agent_id),
    )

    if commit:
        db.commit()
        log.info(
            "property %s: %s -> %s",
            prop.code,
            expected,
            result.new_status,
            extra={"property_id": result.property_id, "user_id": actor.user_id, "action": decision.action},
        )
        notify_transition(result, actor)

    return result


def notify_transition(result: TransitionResult, actor: Principal) -> int:
    type_ = NOTIFY_TYPE_BY_STATUS.get(result.new_status)
    if type_ is None:
        return 0
    recipients = [r for r in result.recipients if r is not None and int(r) != actor.user_id]
    return notify_many(
        recipients,
        type_,
        related_property_id=result.property_id,
        property_code=result.property_code,
        sender_id=actor.user_id,
    )
