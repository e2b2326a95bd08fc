# backend/backoffice/domain/statuses.py
from __future__ import annotations

# Property lifecycle
PROPERTY_PENDING = "pending"
PROPERTY_ACTIVE = "active"
PROPERTY_SOLD = "sold"
PROPERTY_ARCHIVED = "archived"
PROPERTY_REJECTED = "rejected"

PROPERTY_STATUSES = (
    PROPERTY_PENDING,
    PROPERTY_ACTIVE,
    PROPERTY_SOLD,
    PROPERTY_ARCHIVED,
    PROPERTY_REJECTED,
)

PROPERTY_CATEGORIES = ("residential", "commercial")
DEAL_CATEGORIES = ("sale", "rent")

LISTING_AGENCY_OWNED = "agency_owned"
LISTING_BRANCH_OWNED = "branch_owned"
LISTING_BROKERAGE = "brokerage"
LISTING_TYPES = (LISTING_AGENCY_OWNED, LISTING_BRANCH_OWNED, LISTING_BROKERAGE)

# Fields that must be non-null per listing type (mirrors ck_properties_listing_type_fields)
BROKERAGE_REQUIRED_FIELDS = (
    "owner_first_name",
    "owner_last_name",
    "owner_contact",
    "brokerage_commission_percent",
)
OWNED_REQUIRED_FIELDS = ("buy_price_azn",)

# Bookings (canonical set; the pending/confirmed/completed variant is not used)
BOOKING_ACTIVE = "ACTIVE"
BOOKING_EXPIRED = "EXPIRED"
BOOKING_CONVERTED = "CONVERTED"
BOOKING_CANCELLED = "CANCELLED"
BOOKING_STATUSES = (BOOKING_ACTIVE, BOOKING_EXPIRED, BOOKING_CONVERTED, BOOKING_CANCELLED)
BOOKING_TERMINAL = frozenset({BOOKING_EXPIRED, BOOKING_CONVERTED, BOOKING_CANCELLED})

# Multi-step workflow
WORKFLOW_IN_PROGRESS = "in_progress"
WORKFLOW_APPROVED = "approved"
WORKFLOW_REJECTED = "rejected"
WORKFLOW_STATUSES = (WORKFLOW_IN_PROGRESS, WORKFLOW_APPROVED, WORKFLOW_REJECTED)

STEP_PENDING = "pending"
STEP_APPROVED = "approved"
STEP_REJECTED = "rejected"
STEP_STATUSES = (STEP_PENDING, STEP_APPROVED, STEP_REJECTED)

# Roles
ROLE_ADMIN = "admin"
ROLE_DIRECTOR = "director"
ROLE_VP = "vp"
ROLE_MANAGER = "manager"
ROLE_AGENT = "agent"
ROLE_CALL_CENTER = "call_center"
ROLES = (ROLE_ADMIN, ROLE_DIRECTOR, ROLE_VP, ROLE_MANAGER, ROLE_AGENT, ROLE_CALL_CENTER)

CUSTOMER_TYPES = ("seller", "buyer", "tenant")


def sql_in(column: str, values: tuple[str, ...]) -> str:
    """Render a CHECK (column IN (...)) body for a fixed vocabulary."""
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"
