# backend/backoffice/services/property_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain.approval_policy import ACTION_ARCHIVE, evaluate, has_permission
from ..domain.statuses import (
    BROKERAGE_REQUIRED_FIELDS,
    LISTING_BROKERAGE,
    LISTING_TYPES,
    OWNED_REQUIRED_FIELDS,
    PROPERTY_PENDING,
    ROLE_AGENT,
    WORKFLOW_IN_PROGRESS,
    WORKFLOW_REJECTED,
)
from ..errors import ConflictError, ForbiddenError, NotFoundError, StateError, ValidationFailed, error_for_denial
from ..models import Approval, Property
from .transition_executor import TransitionResult, apply_transition, notify_transition

log = logging.getLogger("backoffice.properties")

EDITABLE_FIELDS = (
    "property_category",
    "listing_type",
    "category",
    "address",
    "district",
    "area_m2",
    "rooms_count",
    "buy_price_azn",
    "target_price_azn",
    "sell_price_azn",
    "owner_first_name",
    "owner_last_name",
    "owner_contact",
    "brokerage_commission_percent",
    "agent_id",
)


def missing_listing_fields(values: dict[str, Any]) -> list[str]:
    """
    Fields required by the listing type but missing from `values`.

    Mirrors ck_properties_listing_type_fields so callers get a readable error
    before the database rejects the row.
    """
    lt = values.get("listing_type")
    if lt not in LISTING_TYPES:
        return ["listing_type"]
    required = BROKERAGE_REQUIRED_FIELDS if lt == LISTING_BROKERAGE else OWNED_REQUIRED_FIELDS
    missing = []
    for f in required:
        v = values.get(f)
        if v is None or (isinstance(v, str) and not v.strip()):
            missing.append(f)
    return missing


def _ensure_listing_fields(values: dict[str, Any]) -> None:
    missing = missing_listing_fields(values)
    if missing:
        raise ValidationFailed(
            f"Listing type '{values.get('listing_type')}' requires: {', '.join(missing)}",
            details={"missing": missing},
        )


def _new_code() -> str:
    return f"PRP-{datetime.utcnow():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def get_property(db: Session, property_id: int) -> Property:
    prop = db.get(Property, int(property_id))
    if prop is None:
        raise NotFoundError("Property not found", code="PROPERTY_NOT_FOUND")
    return prop


def create_property(db: Session, *, payload: dict[str, Any], actor: Principal) -> Property:
    values = {k: payload.get(k) for k in EDITABLE_FIELDS if k in payload}
    _ensure_listing_fields(values)

    now = datetime.utcnow()
    prop = Property(
        code=(payload.get("code") or "").strip() or _new_code(),
        status=PROPERTY_PENDING,
        created_by_id=actor.user_id,
        updated_by=actor.user_id,
        created_at=now,
        updated_at=now,
        **values,
    )
    if prop.agent_id is None and actor.role == ROLE_AGENT:
        prop.agent_id = actor.user_id

    db.add(prop)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if db.scalar(select(Property.id).where(Property.code == prop.code)) is not None:
            raise ConflictError(f"Property code '{prop.code}' already exists", code="CONFLICT")
        raise ValidationFailed("Property violates a storage constraint", details={"error": str(exc.orig)})

    db.refresh(prop)
    log.info("property created", extra={"property_id": prop.id, "user_id": actor.user_id})
    return prop


def update_property(db: Session, *, property_id: int, patch: dict[str, Any], actor: Principal) -> Property:
    """
    Edit draft fields. Only pending listings are editable and status is never
    writable here; status moves through the Transition Executor only.
    """
    prop = get_property(db, property_id)

    if not has_permission(actor.role, "property:edit"):
        raise ForbiddenError(f"Role '{actor.role}' may not edit properties")
    if actor.role == ROLE_AGENT and actor.user_id not in (prop.created_by_id, prop.agent_id):
        raise ForbiddenError("Agents may only edit their own listings")
    if prop.status != PROPERTY_PENDING:
        raise StateError(f"Only pending properties can be edited (property is {prop.status})", code="INVALID_STATUS")

    changes = {k: v for k, v in patch.items() if k in EDITABLE_FIELDS}
    merged = {k: getattr(prop, k) for k in EDITABLE_FIELDS}
    merged.update(changes)
    _ensure_listing_fields(merged)

    for k, v in changes.items():
        setattr(prop, k, v)
    prop.updated_at = datetime.utcnow()
    prop.updated_by = actor.user_id

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationFailed("Property violates a storage constraint", details={"error": str(exc.orig)})

    db.refresh(prop)
    return prop


def list_properties(
    db: Session,
    *,
    status: Optional[str] = None,
    listing_type: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Property], int]:
    q = select(Property)
    if status:
        q = q.where(Property.status == status)
    if listing_type:
        q = q.where(Property.listing_type == listing_type)
    if category:
        q = q.where(Property.category == category)

    total = int(db.scalar(select(func.count()).select_from(q.subquery())) or 0)
    rows = db.scalars(q.order_by(desc(Property.created_at), desc(Property.id)).limit(limit).offset(offset)).all()
    return list(rows), total


def archive_property(db: Session, *, property_id: int, actor: Principal, reason: Optional[str] = None) -> TransitionResult:
    prop = get_property(db, property_id)
    decision = evaluate(prop.status, actor.role, ACTION_ARCHIVE)
    if not decision.allowed:
        raise error_for_denial(decision.code or "INVALID_STATUS", decision.reason or "Archive denied")

    open_ids = list(
        db.scalars(
            select(Approval.id).where(Approval.property_id == prop.id, Approval.status == WORKFLOW_IN_PROGRESS)
        ).all()
    )
    meta: dict[str, Any] = {}
    if reason:
        meta["reason"] = reason
    if open_ids:
        meta["closed_approval_ids"] = open_ids

    try:
        result = apply_transition(
            db,
            property_id=prop.id,
            decision=decision,
            actor=actor,
            meta=meta or None,
            commit=False,
        )
    except ConflictError:
        db.rollback()
        raise

    if open_ids:
        # an archived property can never finish its approval chain
        db.execute(
            update(Approval)
            .where(Approval.id.in_(open_ids), Approval.status == WORKFLOW_IN_PROGRESS)
            .values(status=WORKFLOW_REJECTED, completed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

    db.commit()
    log.info(
        "property %s archived",
        prop.code,
        extra={"property_id": result.property_id, "user_id": actor.user_id, "action": ACTION_ARCHIVE},
    )
    notify_transition(result, actor)
    return result
