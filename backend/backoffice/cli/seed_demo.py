# backend/backoffice/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.auth import sign_token
from backoffice.config import settings
from backoffice.db import Base, engine, session_scope
from backoffice.domain.statuses import (
    LISTING_AGENCY_OWNED,
    PROPERTY_PENDING,
    ROLE_ADMIN,
    ROLE_AGENT,
    ROLE_CALL_CENTER,
    ROLE_DIRECTOR,
    ROLE_MANAGER,
    ROLE_VP,
)
from backoffice.models import AppUser, Property

DEMO_USERS: tuple[tuple[str, str, str, str], ...] = (
    ("admin@demo.local", "Aydan", "Admin", ROLE_ADMIN),
    ("director@demo.local", "Rashad", "Director", ROLE_DIRECTOR),
    ("vp@demo.local", "Leyla", "Budget", ROLE_VP),
    ("manager@demo.local", "Kamran", "Manager", ROLE_MANAGER),
    ("agent@demo.local", "Nigar", "Agent", ROLE_AGENT),
    ("callcenter@demo.local", "Elvin", "Operator", ROLE_CALL_CENTER),
)

DEMO_PROPERTY_CODE = "PRP-DEMO-0001"


@dataclass(frozen=True)
class SeedResult:
    users: dict[str, int]
    property_id: Optional[int]
    tokens: dict[str, str] = field(default_factory=dict)


def _get_or_create_user(db: Session, email: str, first: str, last: str, role: str) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        if row.role != role:
            row.role = role
            db.commit()
        return row
    row = AppUser(email=email, first_name=first, last_name=last, role=role)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_property(db: Session, *, agent_id: int) -> Property:
    row = db.scalar(select(Property).where(Property.code == DEMO_PROPERTY_CODE))
    if row:
        return row
    row = Property(
        code=DEMO_PROPERTY_CODE,
        property_category="residential",
        listing_type=LISTING_AGENCY_OWNED,
        category="sale",
        status=PROPERTY_PENDING,
        address="28 May St 14",
        district="Nasimi",
        area_m2=85.0,
        rooms_count=3,
        buy_price_azn=150000.0,
        target_price_azn=185000.0,
        created_by_id=agent_id,
        agent_id=agent_id,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(*, create_schema: bool = True, create_sample_property: bool = True) -> SeedResult:
    if create_schema:
        Base.metadata.create_all(bind=engine)

    with session_scope() as db:
        users: dict[str, int] = {}
        for email, first, last, role in DEMO_USERS:
            u = _get_or_create_user(db, email, first, last, role)
            users[role] = int(u.id)

        property_id: Optional[int] = None
        if create_sample_property:
            prop = _get_or_create_property(db, agent_id=users[ROLE_AGENT])
            property_id = int(prop.id)

        tokens: dict[str, str] = {}
        # tokens need a configured secret; dev-header mode works without them
        if settings.jwt_secret:
            tokens = {role: sign_token(user_id=uid, role=role) for role, uid in users.items()}

        return SeedResult(users=users, property_id=property_id, tokens=tokens)
