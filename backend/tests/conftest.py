# backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile
import uuid

import pytest

# Settings are read at import time: point everything at a throwaway SQLite file first.
_TMP = tempfile.mkdtemp(prefix="backoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["APP_ENV"] = "local"
os.environ["AUTH_MODE"] = "dev"
os.environ["JWT_SECRET"] = "unit-test-signing-key"
os.environ.pop("CELERY_BROKER_URL", None)

from fastapi.testclient import TestClient  # noqa: E402

from backoffice.auth import Principal  # noqa: E402
from backoffice.db import Base, SessionLocal, engine  # noqa: E402
from backoffice.domain.statuses import (  # noqa: E402
    LISTING_AGENCY_OWNED,
    LISTING_BROKERAGE,
    PROPERTY_PENDING,
    ROLES,
)
from backoffice.main import create_app  # noqa: E402
from backoffice.models import AppUser, Customer, Property  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def users(db_session) -> dict[str, AppUser]:
    """One persisted user per role, keyed by role."""
    out: dict[str, AppUser] = {}
    for role in ROLES:
        u = AppUser(email=f"{role}-{uuid.uuid4().hex[:6]}@test.local", first_name=role.title(), last_name="Tester", role=role)
        db_session.add(u)
        out[role] = u
    db_session.commit()
    return out


def principal_for(user: AppUser) -> Principal:
    return Principal(user_id=int(user.id), role=user.role, email=user.email)


@pytest.fixture
def as_principal():
    return principal_for


@pytest.fixture
def dev_headers():
    def _h(user: AppUser) -> dict[str, str]:
        return {"X-User-Id": str(user.id), "X-User-Role": user.role}

    return _h


@pytest.fixture
def make_property(db_session, users):
    def _make(*, status: str = PROPERTY_PENDING, listing_type: str = LISTING_AGENCY_OWNED, **overrides) -> Property:
        agent = users["agent"]
        values = dict(
            code=f"PRP-T-{uuid.uuid4().hex[:8].upper()}",
            property_category="residential",
            listing_type=listing_type,
            category="sale",
            status=status,
            area_m2=72.5,
            rooms_count=2,
            created_by_id=agent.id,
            agent_id=agent.id,
        )
        if listing_type == LISTING_BROKERAGE:
            values.update(
                owner_first_name="Farid",
                owner_last_name="Aliyev",
                owner_contact="+994501234567",
                brokerage_commission_percent=2.5,
            )
        else:
            values["buy_price_azn"] = 100000.0
        values.update(overrides)
        prop = Property(**values)
        db_session.add(prop)
        db_session.commit()
        db_session.refresh(prop)
        return prop

    return _make


@pytest.fixture
def make_customer(db_session):
    def _make(**overrides) -> Customer:
        values = dict(first_name="Aysel", last_name="Mammadova", phone="+994551112233", type="buyer")
        values.update(overrides)
        c = Customer(**values)
        db_session.add(c)
        db_session.commit()
        db_session.refresh(c)
        return c

    return _make
