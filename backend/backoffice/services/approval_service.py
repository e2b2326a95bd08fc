# backend/backoffice/services/approval_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..domain.approval_policy import ACTION_APPROVE, ACTION_REJECT, evaluate, has_permission, normalize_rejection_reason
from ..domain.audit import ENTITY_PROPERTY, AuditEntryView, history_for_entity
from ..domain.statuses import PROPERTY_PENDING
from ..errors import ForbiddenError, ValidationFailed, error_for_denial
from ..models import AppUser, Property
from . import approval_workflow
from .property_service import get_property, missing_listing_fields
from .transition_executor import apply_transition

log = logging.getLogger("backoffice.approvals")


@dataclass(frozen=True)
class PendingPage:
    properties: list[dict[str, Any]]
    steps: list[dict[str, Any]]
    total: int
    limit: int
    offset: int


def _days_pending(created_at: Optional[datetime], now: datetime) -> int:
    if created_at is None:
        return 0
    return max(0, (now - created_at).days)


def list_pending(db: Session, *, actor: Principal, limit: Optional[int] = None, offset: int = 0) -> PendingPage:
    """Pending properties, oldest first, plus workflow steps waiting on the caller's role."""
    if not has_permission(actor.role, "approvals:review"):
        raise ForbiddenError(f"Role '{actor.role}' may not review approvals")

    lim = int(limit or settings.pending_page_size)
    now = datetime.utcnow()

    base = select(Property).where(Property.status == PROPERTY_PENDING)
    total = int(db.scalar(select(func.count()).select_from(base.subquery())) or 0)

    rows = db.execute(
        select(Property, AppUser)
        .outerjoin(AppUser, AppUser.id == Property.created_by_id)
        .where(Property.status == PROPERTY_PENDING)
        .order_by(Property.created_at.asc(), Property.id.asc())
        .limit(lim)
        .offset(int(offset))
    ).all()

    properties = [
        {
            "id": int(p.id),
            "code": p.code,
            "status": p.status,
            "property_category": p.property_category,
            "listing_type": p.listing_type,
            "category": p.category,
            "area_m2": p.area_m2,
            "buy_price_azn": p.buy_price_azn,
            "sell_price_azn": p.sell_price_azn,
            "created_at": p.created_at,
            "created_by": creator.full_name if creator is not None else None,
            "days_pending": _days_pending(p.created_at, now),
        }
        for p, creator in rows
    ]

    steps = [
        {
            "approval_id": int(step.approval_id),
            "step_id": int(step.id),
            "step": step.step,
            "step_order": step.step_order,
            "required_role": step.required_role,
            "property_id": int(prop.id),
            "property_code": prop.code,
        }
        for step, prop in approval_workflow.pending_steps_for_role(db, actor.role)
    ]

    return PendingPage(properties=properties, steps=steps, total=total, limit=lim, offset=int(offset))


def _single_step(
    db: Session,
    *,
    prop: Property,
    actor: Principal,
    action: str,
    meta: dict[str, Any],
) -> dict[str, Any]:
    decision = evaluate(prop.status, actor.role, action)
    if not decision.allowed:
        log.info(
            "%s denied: %s",
            action,
            decision.code,
            extra={"property_id": prop.id, "user_id": actor.user_id, "action": action},
        )
        raise error_for_denial(decision.code or "INVALID_STATUS", decision.reason or f"{action} denied")

    if action == ACTION_APPROVE:
        missing = missing_listing_fields({k: getattr(prop, k, None) for k in (
            "listing_type",
            "buy_price_azn",
            "owner_first_name",
            "owner_last_name",
            "owner_contact",
            "brokerage_commission_percent",
        )})
        if missing:
            raise ValidationFailed(
                f"Listing type '{prop.listing_type}' requires: {', '.join(missing)}",
                code="VALIDATION_FAILED",
                details={"missing": missing},
            )

    result = apply_transition(db, property_id=prop.id, decision=decision, actor=actor, meta=meta)
    return result.as_dict()


def approve_property(db: Session, *, property_id: int, actor: Principal, comments: Optional[str] = None) -> dict[str, Any]:
    prop = get_property(db, property_id)

    out = approval_workflow.act(db, property_id=prop.id, actor=actor, action=ACTION_APPROVE, comments=comments)
    if out is not None:
        return out

    return _single_step(db, prop=prop, actor=actor, action=ACTION_APPROVE, meta={"comments": comments})


def reject_property(db: Session, *, property_id: int, actor: Principal, reason: Optional[str]) -> dict[str, Any]:
    try:
        clean = normalize_rejection_reason(reason, min_length=settings.rejection_reason_min_length)
    except ValueError as exc:
        raise ValidationFailed(str(exc), code="VALIDATION_ERROR")

    prop = get_property(db, property_id)

    out = approval_workflow.act(db, property_id=prop.id, actor=actor, action=ACTION_REJECT, reason=clean)
    if out is None:
        out = _single_step(db, prop=prop, actor=actor, action=ACTION_REJECT, meta={"rejection_reason": clean})
        out["rejection_reason"] = clean
    return out


def approval_history(db: Session, *, property_id: int) -> list[AuditEntryView]:
    prop = get_property(db, property_id)
    return history_for_entity(db, entity=ENTITY_PROPERTY, entity_id=prop.id)
