# backend/backoffice/routers/bookings.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, require_permission
from ..db import get_db
from ..schemas import BookingCancelIn, BookingConvertIn, BookingCreate, BookingOut, BookingUpdate, ExpireOut
from ..services import booking_guard

router = APIRouter(tags=["bookings"])


@router.post("/properties/{property_id}/bookings", response_model=BookingOut, status_code=201)
def create_booking(
    property_id: int,
    payload: BookingCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return booking_guard.create_booking(
        db,
        property_id=property_id,
        customer_id=payload.customer_id,
        actor=p,
        end_date=payload.end_date,
        deposit_amount_azn=payload.deposit_amount_azn,
        notes=payload.notes,
    )


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(
    status: Optional[str] = Query(default=None),
    property_id: Optional[int] = Query(default=None),
    customer_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("booking:manage")),
):
    return booking_guard.list_bookings(
        db,
        actor=p,
        status=status,
        property_id=property_id,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )


@router.post("/bookings/expire", response_model=ExpireOut)
def expire_bookings(
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("booking:expire")),
):
    return ExpireOut(expired=booking_guard.expire_overdue_bookings(db))


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return booking_guard.get_booking(db, booking_id=booking_id, actor=p)


@router.patch("/bookings/{booking_id}", response_model=BookingOut)
def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return booking_guard.update_booking(
        db,
        booking_id=booking_id,
        actor=p,
        changes=payload.model_dump(exclude_unset=True),
    )


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(
    booking_id: int,
    payload: BookingCancelIn | None = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return booking_guard.cancel_booking(
        db,
        booking_id=booking_id,
        actor=p,
        reason=payload.reason if payload else None,
    )


@router.post("/bookings/{booking_id}/convert", response_model=BookingOut)
def convert_booking(
    booking_id: int,
    payload: BookingConvertIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return booking_guard.convert_booking(
        db,
        booking_id=booking_id,
        actor=p,
        sale_price_azn=payload.sale_price_azn,
        notes=payload.notes,
    )
