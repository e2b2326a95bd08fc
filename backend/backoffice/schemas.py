# backend/backoffice/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import settings
from .domain.approval_policy import normalize_rejection_reason

ListingType = Literal["agency_owned", "branch_owned", "brokerage"]
PropertyCategory = Literal["residential", "commercial"]
DealCategory = Literal["sale", "rent"]
PropertyStatus = Literal["pending", "active", "sold", "archived", "rejected"]
BookingStatus = Literal["ACTIVE", "EXPIRED", "CONVERTED", "CANCELLED"]


# -------------------- Properties --------------------

class PropertyBase(BaseModel):
    property_category: PropertyCategory = "residential"
    listing_type: ListingType
    category: DealCategory = "sale"

    address: Optional[str] = None
    district: Optional[str] = None
    area_m2: Optional[float] = Field(default=None, gt=0)
    rooms_count: Optional[int] = Field(default=None, ge=0)

    buy_price_azn: Optional[float] = Field(default=None, ge=0)
    target_price_azn: Optional[float] = Field(default=None, ge=0)
    sell_price_azn: Optional[float] = Field(default=None, ge=0)

    owner_first_name: Optional[str] = None
    owner_last_name: Optional[str] = None
    owner_contact: Optional[str] = None
    brokerage_commission_percent: Optional[float] = Field(default=None, ge=0, le=100)

    agent_id: Optional[int] = None


class PropertyCreate(PropertyBase):
    code: Optional[str] = Field(default=None, max_length=50)


class PropertyUpdate(BaseModel):
    """Draft edits. There is no `status` field; status moves only through transitions."""

    model_config = ConfigDict(extra="forbid")

    property_category: Optional[PropertyCategory] = None
    listing_type: Optional[ListingType] = None
    category: Optional[DealCategory] = None
    address: Optional[str] = None
    district: Optional[str] = None
    area_m2: Optional[float] = Field(default=None, gt=0)
    rooms_count: Optional[int] = Field(default=None, ge=0)
    buy_price_azn: Optional[float] = Field(default=None, ge=0)
    target_price_azn: Optional[float] = Field(default=None, ge=0)
    sell_price_azn: Optional[float] = Field(default=None, ge=0)
    owner_first_name: Optional[str] = None
    owner_last_name: Optional[str] = None
    owner_contact: Optional[str] = None
    brokerage_commission_percent: Optional[float] = Field(default=None, ge=0, le=100)
    agent_id: Optional[int] = None


class PropertyOut(PropertyBase):
    id: int
    code: str
    status: PropertyStatus
    created_by_id: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    archived_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PropertyListOut(BaseModel):
    items: list[PropertyOut]
    total: int
    limit: int
    offset: int


class ArchiveIn(BaseModel):
    reason: Optional[str] = None


# -------------------- Approvals --------------------

class ApproveIn(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=2000)


class RejectIn(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_min_length(cls, v: str) -> str:
        return normalize_rejection_reason(v, min_length=settings.rejection_reason_min_length)


class TransitionOut(BaseModel):
    property_id: int
    new_status: PropertyStatus
    audit_log_id: int
    previous_status: Optional[str] = None
    rejection_reason: Optional[str] = None

    # multi-step workflow only
    step: Optional[str] = None
    step_status: Optional[str] = None
    next_step: Optional[str] = None


class PendingPropertyOut(BaseModel):
    id: int
    code: str
    status: str
    property_category: str
    listing_type: str
    category: str
    area_m2: Optional[float] = None
    buy_price_azn: Optional[float] = None
    sell_price_azn: Optional[float] = None
    created_at: datetime
    created_by: Optional[str] = None
    days_pending: int


class PendingStepOut(BaseModel):
    approval_id: int
    step_id: int
    step: str
    step_order: int
    required_role: str
    property_id: int
    property_code: str


class PendingApprovalsOut(BaseModel):
    properties: list[PendingPropertyOut]
    steps: list[PendingStepOut] = Field(default_factory=list)
    total: int
    limit: int
    offset: int


class ApprovalHistoryEntry(BaseModel):
    id: int
    action: str
    actor_id: Optional[int] = None
    actor_role: str
    actor: Optional[str] = None
    before_state: Optional[dict[str, Any]] = None
    after_state: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime


class AuditEntryOut(ApprovalHistoryEntry):
    entity: str
    entity_id: str


class ApprovalStepOut(BaseModel):
    id: int
    step: str
    step_order: int
    status: str
    required_role: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    comments: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalOut(BaseModel):
    id: int
    property_id: int
    status: str
    started_by: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    steps: list[ApprovalStepOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class WorkflowStatusOut(BaseModel):
    approval: ApprovalOut
    current_step: Optional[str] = None


# -------------------- Customers / Bookings --------------------

class CustomerCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    type: Literal["seller", "buyer", "tenant"] = "buyer"
    notes: Optional[str] = None


class CustomerOut(CustomerCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    customer_id: int
    end_date: Optional[datetime] = None
    deposit_amount_azn: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class BookingOut(BaseModel):
    id: int
    property_id: int
    customer_id: int
    status: BookingStatus
    booking_date: datetime
    end_date: datetime
    deposit_amount_azn: Optional[float] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    sale_price_azn: Optional[float] = None
    created_by_id: Optional[int] = None
    created_at: datetime
    converted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingUpdate(BaseModel):
    """Edits to an ACTIVE booking. There is no `status` field."""

    model_config = ConfigDict(extra="forbid")

    end_date: Optional[datetime] = None
    deposit_amount_azn: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class BookingCancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BookingConvertIn(BaseModel):
    sale_price_azn: float = Field(gt=0)
    notes: Optional[str] = None


class ExpireOut(BaseModel):
    expired: list[int]
