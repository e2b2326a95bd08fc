# backend/backoffice/models.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.statuses import (
    BOOKING_ACTIVE,
    BOOKING_STATUSES,
    CUSTOMER_TYPES,
    DEAL_CATEGORIES,
    LISTING_TYPES,
    PROPERTY_CATEGORIES,
    PROPERTY_PENDING,
    PROPERTY_STATUSES,
    ROLES,
    STEP_PENDING,
    STEP_STATUSES,
    WORKFLOW_IN_PROGRESS,
    WORKFLOW_STATUSES,
    sql_in,
)

LISTING_TYPE_FIELDS_CHECK = (
    "(listing_type = 'brokerage' AND "
    "owner_first_name IS NOT NULL AND "
    "owner_last_name IS NOT NULL AND "
    "owner_contact IS NOT NULL AND "
    "brokerage_commission_percent IS NOT NULL) OR "
    "(listing_type IN ('agency_owned', 'branch_owned') AND buy_price_azn IS NOT NULL)"
)

ACTIVE_BOOKING_WHERE = f"status = '{BOOKING_ACTIVE}'"
IN_PROGRESS_WORKFLOW_WHERE = f"status = '{WORKFLOW_IN_PROGRESS}'"


# -----------------------------
# Users / customers
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"
    __table_args__ = (CheckConstraint(sql_in("role", ROLES), name="ck_app_users_role"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="agent")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(x for x in (self.first_name, self.last_name) if x) or self.email


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint(sql_in("type", CUSTOMER_TYPES), name="ck_customers_type"),
        CheckConstraint("phone IS NOT NULL OR email IS NOT NULL", name="ck_customers_contact"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="buyer")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Core domain: Properties
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint(sql_in("status", PROPERTY_STATUSES), name="ck_properties_status"),
        CheckConstraint(sql_in("listing_type", LISTING_TYPES), name="ck_properties_listing_type"),
        CheckConstraint(sql_in("property_category", PROPERTY_CATEGORIES), name="ck_properties_property_category"),
        CheckConstraint(sql_in("category", DEAL_CATEGORIES), name="ck_properties_category"),
        CheckConstraint(LISTING_TYPE_FIELDS_CHECK, name="ck_properties_listing_type_fields"),
        CheckConstraint("area_m2 IS NULL OR area_m2 > 0", name="ck_properties_area"),
        Index("ix_properties_pending_approvals", "status", "listing_type", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)

    property_category: Mapped[str] = mapped_column(String(20), nullable=False, default="residential")
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(10), nullable=False, default="sale")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PROPERTY_PENDING, index=True)

    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    district: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    area_m2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rooms_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    buy_price_azn: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    target_price_azn: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sell_price_azn: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    owner_first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    owner_last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    owner_contact: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    brokerage_commission_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True, index=True)
    agent_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True, index=True)
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    sold_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="property")
    approvals: Mapped[List["Approval"]] = relationship(back_populates="property")


# -----------------------------
# Audit (append-only)
# -----------------------------
class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity_lookup", "entity", "entity_id", "created_at"),
        Index("ix_audit_logs_actor_lookup", "actor_id", "action", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entity: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)
    action: Mapped[str] = mapped_column(String(40), nullable=False)

    actor_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    # captured at action time; later role changes must not rewrite history
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Multi-step approval workflow
# -----------------------------
class Approval(Base):
    __tablename__ = "approvals"
    __table_args__ = (
        CheckConstraint(sql_in("status", WORKFLOW_STATUSES), name="ck_approvals_status"),
        Index(
            "uq_approvals_property_in_progress",
            "property_id",
            unique=True,
            postgresql_where=text(IN_PROGRESS_WORKFLOW_WHERE),
            sqlite_where=text(IN_PROGRESS_WORKFLOW_WHERE),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WORKFLOW_IN_PROGRESS)
    started_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    property: Mapped["Property"] = relationship(back_populates="approvals")
    steps: Mapped[List["ApprovalStep"]] = relationship(
        back_populates="approval", order_by="ApprovalStep.step_order", cascade="all, delete-orphan"
    )


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("approval_id", "step_order", name="uq_approval_steps_order"),
        CheckConstraint(sql_in("status", STEP_STATUSES), name="ck_approval_steps_status"),
        Index("ix_approval_steps_status_role", "status", "required_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    approval_id: Mapped[int] = mapped_column(Integer, ForeignKey("approvals.id", ondelete="CASCADE"), nullable=False)
    step: Mapped[str] = mapped_column(String(40), nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STEP_PENDING)
    required_role: Mapped[str] = mapped_column(String(20), nullable=False)

    approved_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    approval: Mapped["Approval"] = relationship(back_populates="steps")


# -----------------------------
# Bookings
# -----------------------------
class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(sql_in("status", BOOKING_STATUSES), name="ck_bookings_status"),
        # The authoritative one-active-booking-per-property guard.
        Index(
            "uq_bookings_property_active",
            "property_id",
            unique=True,
            postgresql_where=text(ACTIVE_BOOKING_WHERE),
            sqlite_where=text(ACTIVE_BOOKING_WHERE),
        ),
        CheckConstraint("deposit_amount_azn IS NULL OR deposit_amount_azn >= 0", name="ck_bookings_deposit"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BOOKING_ACTIVE, index=True)

    booking_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    deposit_amount_azn: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sale_price_azn: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    property: Mapped["Property"] = relationship(back_populates="bookings")


# -----------------------------
# Notifications (delivery sink)
# -----------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)
    sender_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    related_property_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("properties.id"), nullable=True)
    related_booking_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("bookings.id"), nullable=True)

    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
