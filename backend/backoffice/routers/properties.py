# backend/backoffice/routers/properties.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, require_permission
from ..db import get_db
from ..schemas import ArchiveIn, PropertyCreate, PropertyListOut, PropertyOut, PropertyUpdate, TransitionOut
from ..services import property_service

router = APIRouter(prefix="/properties", tags=["properties"])


@router.post("", response_model=PropertyOut, status_code=201)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("property:create")),
):
    return property_service.create_property(db, payload=payload.model_dump(), actor=p)


@router.get("", response_model=PropertyListOut)
def list_properties(
    status: Optional[str] = Query(default=None),
    listing_type: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("property:read")),
):
    rows, total = property_service.list_properties(
        db,
        status=status,
        listing_type=listing_type,
        category=category,
        limit=limit,
        offset=offset,
    )
    return PropertyListOut(items=rows, total=total, limit=limit, offset=offset)


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(
    property_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_permission("property:read")),
):
    return property_service.get_property(db, property_id)


@router.patch("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return property_service.update_property(
        db,
        property_id=property_id,
        patch=payload.model_dump(exclude_unset=True),
        actor=p,
    )


@router.post("/{property_id}/archive", response_model=TransitionOut)
def archive_property(
    property_id: int,
    payload: ArchiveIn | None = None,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    result = property_service.archive_property(
        db,
        property_id=property_id,
        actor=p,
        reason=payload.reason if payload else None,
    )
    return result.as_dict()
