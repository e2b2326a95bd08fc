# backend/backoffice/routers/customers.py
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Principal, require_permission
from ..db import get_db
from ..errors import NotFoundError, ValidationFailed
from ..models import Customer
from ..schemas import CustomerCreate, CustomerOut

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=CustomerOut, status_code=201)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("customer:create")),
):
    if not payload.phone and not payload.email:
        raise ValidationFailed("Customer needs a phone or an email")

    row = Customer(**payload.model_dump(), created_by_id=p.user_id, created_at=datetime.utcnow())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("customer:create")),
):
    row = db.get(Customer, customer_id)
    if row is None:
        raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")
    return row
