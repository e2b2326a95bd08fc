# backend/backoffice/routers/approvals.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, require_permission
from ..db import get_db
from ..errors import NotFoundError
from ..schemas import (
    ApprovalHistoryEntry,
    ApprovalOut,
    ApproveIn,
    PendingApprovalsOut,
    RejectIn,
    TransitionOut,
    WorkflowStatusOut,
)
from ..services import approval_service, approval_workflow
from ..services.property_service import get_property

router = APIRouter(tags=["approvals"])


@router.get("/approvals/pending", response_model=PendingApprovalsOut)
def pending_approvals(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("approvals:review")),
):
    page = approval_service.list_pending(db, actor=p, limit=limit, offset=offset)
    return PendingApprovalsOut(
        properties=page.properties,
        steps=page.steps,
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.post("/properties/{property_id}/approve", response_model=TransitionOut)
def approve(
    property_id: int,
    payload: ApproveIn | None = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    comments = payload.comments if payload else None
    return approval_service.approve_property(db, property_id=property_id, actor=p, comments=comments)


@router.post("/properties/{property_id}/reject", response_model=TransitionOut)
def reject(
    property_id: int,
    payload: RejectIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return approval_service.reject_property(db, property_id=property_id, actor=p, reason=payload.reason)


@router.get("/properties/{property_id}/approval-history", response_model=list[ApprovalHistoryEntry])
def approval_history(
    property_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("property:read")),
):
    return [e.as_dict() for e in approval_service.approval_history(db, property_id=property_id)]


# -------------------- multi-step workflow --------------------

@router.post("/approvals/properties/{property_id}/start", response_model=ApprovalOut)
def start_workflow(
    property_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return approval_workflow.start_workflow(db, property_id=property_id, actor=p)


@router.get("/approvals/properties/{property_id}", response_model=WorkflowStatusOut)
def workflow_status(
    property_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("property:read")),
):
    prop = get_property(db, property_id)
    approval = approval_workflow.latest_workflow(db, prop.id)
    if approval is None:
        raise NotFoundError("No approval process for this property", code="APPROVAL_NOT_FOUND")
    step = approval_workflow.current_step(approval)
    return WorkflowStatusOut(
        approval=ApprovalOut.model_validate(approval),
        current_step=step.step if step is not None else None,
    )
