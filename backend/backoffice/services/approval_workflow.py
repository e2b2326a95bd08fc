# backend/backoffice/services/approval_workflow.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..auth import Principal
from ..domain.approval_policy import (
    ACTION_APPROVE,
    ACTION_REJECT,
    evaluate,
    evaluate_step,
    has_permission,
    plan_steps,
    skipped_steps,
)
from ..domain.audit import ENTITY_PROPERTY, audit_write
from ..domain.statuses import (
    PROPERTY_PENDING,
    ROLE_ADMIN,
    STEP_PENDING,
    WORKFLOW_APPROVED,
    WORKFLOW_IN_PROGRESS,
    WORKFLOW_REJECTED,
)
from ..errors import ConflictError, ForbiddenError, StateError, error_for_denial
from ..models import AppUser, Approval, ApprovalStep, Property
from .notifications import notify_many
from .property_service import get_property
from .transition_executor import apply_transition, notify_transition

log = logging.getLogger("backoffice.approvals.workflow")

# -----------------------------------------------------------------------------
# Multi-step approval workflow
# -----------------------------------------------------------------------------
# manager -> vp_budget (agency_owned only) -> director -> manager_publish
#
# Steps are acted on strictly in step_order. Each step moves with its own
# conditional UPDATE (status = 'pending'), so two reviewers racing on the same
# step get one success and one CONFLICT. The property only changes status
# through the Transition Executor: on the final approval or on any rejection.
# -----------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.utcnow()


def active_workflow(db: Session, property_id: int) -> Optional[Approval]:
    return db.scalar(
        select(Approval)
        .options(selectinload(Approval.steps))
        .where(Approval.property_id == int(property_id), Approval.status == WORKFLOW_IN_PROGRESS)
        .execution_options(populate_existing=True)
    )


def latest_workflow(db: Session, property_id: int) -> Optional[Approval]:
    return db.scalar(
        select(Approval)
        .options(selectinload(Approval.steps))
        .where(Approval.property_id == int(property_id))
        .order_by(Approval.started_at.desc(), Approval.id.desc())
        .execution_options(populate_existing=True)
    )


def current_step(approval: Approval) -> Optional[ApprovalStep]:
    pending = [s for s in approval.steps if s.status == STEP_PENDING]
    return min(pending, key=lambda s: s.step_order) if pending else None


def notify_step_reviewers(db: Session, *, prop: Property, step: Optional[ApprovalStep], actor: Principal) -> int:
    """Ask every active user holding the step's role to review. Call after commit."""
    if step is None:
        return 0
    reviewer_ids = db.scalars(
        select(AppUser.id).where(AppUser.role == step.required_role, AppUser.is_active.is_(True))
    ).all()
    return notify_many(
        [uid for uid in reviewer_ids if int(uid) != actor.user_id],
        "approval_request",
        related_property_id=prop.id,
        property_code=prop.code,
        sender_id=actor.user_id,
    )


def start_workflow(db: Session, *, property_id: int, actor: Principal) -> Approval:
    if not has_permission(actor.role, "approvals:start"):
        raise ForbiddenError("Not authorized to start approval")

    prop = get_property(db, property_id)
    if prop.status != PROPERTY_PENDING:
        raise StateError("Property is not in pending status", code="INVALID_STATUS")
    if active_workflow(db, prop.id) is not None:
        raise ConflictError("Approval process already started", code="APPROVAL_EXISTS")

    now = _utcnow()
    approval = Approval(
        property_id=prop.id,
        status=WORKFLOW_IN_PROGRESS,
        started_by=actor.user_id,
        started_at=now,
    )
    plan = plan_steps(prop.listing_type)
    for planned in plan:
        approval.steps.append(
            ApprovalStep(
                step=planned.step,
                step_order=planned.step_order,
                required_role=planned.required_role,
                status=STEP_PENDING,
                created_at=now,
                updated_at=now,
            )
        )
    db.add(approval)

    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Approval process already started", code="APPROVAL_EXISTS")

    audit_write(
        db,
        actor_id=actor.user_id,
        actor_role=actor.role,
        action="WORKFLOW_START",
        entity=ENTITY_PROPERTY,
        entity_id=prop.id,
        before={"status": prop.status},
        after={"status": prop.status, "approval_id": approval.id},
        meta={"steps": [s.step for s in plan], "property_code": prop.code, "listing_type": prop.listing_type},
    )
    for step in skipped_steps(prop.listing_type):
        audit_write(
            db,
            actor_id=actor.user_id,
            actor_role=actor.role,
            action="BUDGET_STEP_SKIPPED",
            entity=ENTITY_PROPERTY,
            entity_id=prop.id,
            meta={"step": step, "reason": f"SKIPPED_BY_RULE(listing_type={prop.listing_type})"},
        )

    db.commit()
    db.refresh(approval)
    log.info("approval workflow started", extra={"property_id": prop.id, "user_id": actor.user_id})
    notify_step_reviewers(db, prop=prop, step=current_step(approval), actor=actor)
    return approval


def act_on_step(
    db: Session,
    *,
    prop: Property,
    approval: Approval,
    actor: Principal,
    action: str,
    comments: Optional[str] = None,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    step = current_step(approval)
    if step is None:
        raise StateError("No pending approval steps", code="NO_PENDING_STEPS")

    remaining = [s for s in approval.steps if s.status == STEP_PENDING and s.id != step.id]
    decision = evaluate_step(
        step_status=step.status,
        required_role=step.required_role,
        actor_role=actor.role,
        action=action,
        is_last_step=not remaining,
        property_status=prop.status,
    )
    if not decision.allowed:
        log.info("step %s denied: %s", step.step, decision.code, extra={"property_id": prop.id, "user_id": actor.user_id})
        raise error_for_denial(decision.code or "INVALID_STATUS", decision.reason or "Denied")

    now = _utcnow()
    res = db.execute(
        update(ApprovalStep)
        .where(ApprovalStep.id == step.id, ApprovalStep.status == STEP_PENDING)
        .values(
            status=decision.next_status,
            approved_by=actor.user_id,
            approved_at=now,
            comments=reason if action == ACTION_REJECT else comments,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        raise ConflictError(f"Step '{step.step}' was already decided", code="CONFLICT")

    step_meta: dict[str, Any] = {"step": step.step, "step_order": step.step_order, "approval_id": approval.id}
    transition = None

    if decision.audit_action == "STEP_APPROVE":
        entry = audit_write(
            db,
            actor_id=actor.user_id,
            actor_role=actor.role,
            action="STEP_APPROVE",
            entity=ENTITY_PROPERTY,
            entity_id=prop.id,
            before={"status": prop.status, "step_status": STEP_PENDING},
            after={"status": prop.status, "step_status": decision.next_status},
            meta={**step_meta, "comments": comments, "property_code": prop.code},
        )
        audit_log_id = int(entry.id)
        new_status = prop.status
    else:
        # Final approval or rejection: the property itself moves.
        prop_decision = evaluate(prop.status, actor.role, action)
        if not prop_decision.allowed:
            db.rollback()
            raise error_for_denial(prop_decision.code or "INVALID_STATUS", prop_decision.reason or "Denied")

        db.execute(
            update(Approval)
            .where(Approval.id == approval.id)
            .values(
                status=WORKFLOW_REJECTED if action == ACTION_REJECT else WORKFLOW_APPROVED,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        meta = dict(step_meta)
        if action == ACTION_REJECT:
            meta["rejection_reason"] = reason
        else:
            meta["comments"] = comments
        try:
            transition = apply_transition(
                db, property_id=prop.id, decision=prop_decision, actor=actor, meta=meta, commit=False
            )
        except ConflictError:
            db.rollback()
            raise
        audit_log_id = transition.audit_log_id
        new_status = transition.new_status

    db.commit()
    log.info(
        "step %s %s",
        step.step,
        decision.next_status,
        extra={"property_id": prop.id, "user_id": actor.user_id, "action": action},
    )
    if transition is not None:
        notify_transition(transition, actor)

    # core UPDATEs bypassed the identity map
    db.expire_all()
    nxt = current_step(approval)
    if transition is None:
        notify_step_reviewers(db, prop=prop, step=nxt, actor=actor)
    out: dict[str, Any] = {
        "property_id": int(prop.id),
        "new_status": new_status,
        "audit_log_id": audit_log_id,
        "step": step.step,
        "step_status": decision.next_status,
        "next_step": nxt.step if nxt is not None else None,
    }
    if action == ACTION_REJECT:
        out["rejection_reason"] = reason
    return out


def pending_steps_for_role(db: Session, role: str) -> list[tuple[ApprovalStep, Property]]:
    """
    Current (lowest-ordered pending) step of every in-progress workflow that
    `role` may act on. Admin sees all of them.
    """
    rows = db.execute(
        select(ApprovalStep, Property, Approval)
        .join(Approval, Approval.id == ApprovalStep.approval_id)
        .join(Property, Property.id == Approval.property_id)
        .where(
            Approval.status == WORKFLOW_IN_PROGRESS,
            ApprovalStep.status == STEP_PENDING,
            Property.status == PROPERTY_PENDING,
        )
        .order_by(Property.created_at.asc(), ApprovalStep.step_order.asc())
    ).all()

    seen: set[int] = set()
    out: list[tuple[ApprovalStep, Property]] = []
    for step, prop, approval in rows:
        if approval.id in seen:
            continue
        seen.add(approval.id)
        if role == ROLE_ADMIN or step.required_role == role:
            out.append((step, prop))
    return out


def act(db: Session, *, property_id: int, actor: Principal, action: str, **kwargs) -> Optional[dict[str, Any]]:
    """Act on the workflow if one is in progress; None means no workflow."""
    approval = active_workflow(db, property_id)
    if approval is None:
        return None
    prop = get_property(db, property_id)
    if action not in (ACTION_APPROVE, ACTION_REJECT):
        raise StateError("Action must be approve or reject", code="UNKNOWN_ACTION")
    return act_on_step(db, prop=prop, approval=approval, actor=actor, action=action, **kwargs)
