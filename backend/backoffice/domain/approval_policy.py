# backend/backoffice/domain/approval_policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .statuses import (
    LISTING_AGENCY_OWNED,
    PROPERTY_ACTIVE,
    PROPERTY_ARCHIVED,
    PROPERTY_PENDING,
    PROPERTY_REJECTED,
    PROPERTY_SOLD,
    ROLE_ADMIN,
    ROLE_AGENT,
    ROLE_CALL_CENTER,
    ROLE_DIRECTOR,
    ROLE_MANAGER,
    ROLE_VP,
    STEP_APPROVED,
    STEP_PENDING,
    STEP_REJECTED,
)

# -----------------------------------------------------------------------------
# Approval Policy Engine
# -----------------------------------------------------------------------------
# Pure decisions only: (current status, actor role, action) -> Decision.
# No DB access, no exceptions for a denial. Routers and services never compare
# role strings themselves; they ask this module.
# -----------------------------------------------------------------------------

REVIEWERS = frozenset({ROLE_MANAGER, ROLE_VP, ROLE_DIRECTOR, ROLE_ADMIN})
STAFF = frozenset({ROLE_AGENT, ROLE_MANAGER, ROLE_VP, ROLE_DIRECTOR, ROLE_ADMIN})

PERMISSIONS: dict[str, frozenset[str]] = {
    "property:create": STAFF,
    "property:edit": STAFF,
    "property:read": STAFF | {ROLE_CALL_CENTER},
    "property:approve": REVIEWERS,
    "property:reject": REVIEWERS,
    "property:archive": REVIEWERS,
    "property:mark_sold": STAFF,
    "approvals:review": REVIEWERS,
    "approvals:start": frozenset({ROLE_AGENT, ROLE_MANAGER, ROLE_DIRECTOR, ROLE_ADMIN}),
    "audit:read": frozenset({ROLE_DIRECTOR, ROLE_ADMIN}),
    "booking:create": STAFF,
    "booking:manage": STAFF,
    "booking:expire": frozenset({ROLE_MANAGER, ROLE_DIRECTOR, ROLE_ADMIN}),
    "customer:create": STAFF | {ROLE_CALL_CENTER},
}

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_ARCHIVE = "archive"
ACTION_MARK_SOLD = "mark_sold"


@dataclass(frozen=True)
class TransitionRule:
    action: str
    permission: str
    from_statuses: frozenset[str]
    to_status: str
    audit_action: str


TRANSITIONS: dict[str, TransitionRule] = {
    ACTION_APPROVE: TransitionRule(
        action=ACTION_APPROVE,
        permission="property:approve",
        from_statuses=frozenset({PROPERTY_PENDING}),
        to_status=PROPERTY_ACTIVE,
        audit_action="APPROVE",
    ),
    ACTION_REJECT: TransitionRule(
        action=ACTION_REJECT,
        permission="property:reject",
        from_statuses=frozenset({PROPERTY_PENDING}),
        to_status=PROPERTY_REJECTED,
        audit_action="REJECT",
    ),
    ACTION_ARCHIVE: TransitionRule(
        action=ACTION_ARCHIVE,
        permission="property:archive",
        from_statuses=frozenset({PROPERTY_PENDING, PROPERTY_ACTIVE, PROPERTY_REJECTED}),
        to_status=PROPERTY_ARCHIVED,
        audit_action="ARCHIVE",
    ),
    ACTION_MARK_SOLD: TransitionRule(
        action=ACTION_MARK_SOLD,
        permission="property:mark_sold",
        from_statuses=frozenset({PROPERTY_ACTIVE}),
        to_status=PROPERTY_SOLD,
        audit_action="MARK_SOLD",
    ),
}

BOOKABLE_STATUSES = frozenset({PROPERTY_ACTIVE})


def has_permission(role: Optional[str], permission: str) -> bool:
    if role == ROLE_ADMIN:
        return True
    return (role or "") in PERMISSIONS.get(permission, frozenset())


@dataclass(frozen=True)
class Decision:
    allowed: bool
    action: str
    current_status: str
    next_status: Optional[str] = None
    code: Optional[str] = None
    reason: Optional[str] = None
    audit_action: Optional[str] = None

    @classmethod
    def allow(cls, *, action: str, current_status: str, next_status: str, audit_action: str) -> "Decision":
        return cls(
            allowed=True,
            action=action,
            current_status=current_status,
            next_status=next_status,
            audit_action=audit_action,
        )

    @classmethod
    def deny(cls, *, action: str, current_status: str, code: str, reason: str) -> "Decision":
        return cls(allowed=False, action=action, current_status=current_status, code=code, reason=reason)


def evaluate(current_status: str, actor_role: Optional[str], action: str) -> Decision:
    """
    Decide whether `actor_role` may perform `action` on a property in `current_status`.

    Role is checked before status: a caller without the role is denied with
    INSUFFICIENT_PERMISSIONS whatever the property's state.
    """
    rule = TRANSITIONS.get(action)
    if rule is None:
        return Decision.deny(
            action=action,
            current_status=current_status,
            code="UNKNOWN_ACTION",
            reason=f"Unknown action '{action}'",
        )

    if not has_permission(actor_role, rule.permission):
        return Decision.deny(
            action=action,
            current_status=current_status,
            code="INSUFFICIENT_PERMISSIONS",
            reason=f"Role '{actor_role}' may not {action} properties",
        )

    if current_status not in rule.from_statuses:
        return Decision.deny(
            action=action,
            current_status=current_status,
            code="INVALID_STATUS",
            reason=f"Property is already {current_status}; {action} requires "
            + " or ".join(sorted(rule.from_statuses)),
        )

    return Decision.allow(
        action=action,
        current_status=current_status,
        next_status=rule.to_status,
        audit_action=rule.audit_action,
    )


def evaluate_booking(property_status: str, actor_role: Optional[str]) -> Decision:
    if not has_permission(actor_role, "booking:create"):
        return Decision.deny(
            action="book",
            current_status=property_status,
            code="INSUFFICIENT_PERMISSIONS",
            reason=f"Role '{actor_role}' may not create bookings",
        )
    if property_status not in BOOKABLE_STATUSES:
        return Decision.deny(
            action="book",
            current_status=property_status,
            code="PROPERTY_NOT_BOOKABLE",
            reason=f"Only active properties can be booked (property is {property_status})",
        )
    return Decision.allow(action="book", current_status=property_status, next_status=property_status, audit_action="BOOK")


def normalize_rejection_reason(reason: Optional[str], *, min_length: int) -> str:
    """Strip and length-check a rejection reason. Raises ValueError when too short."""
    r = (reason or "").strip()
    if len(r) < int(min_length):
        raise ValueError(f"rejection reason must be at least {min_length} characters")
    return r


# -----------------------------------------------------------------------------
# Multi-step workflow (manager -> vp_budget -> director -> manager_publish)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StepSpec:
    step: str
    step_order: int
    required_role: str


def plan_steps(listing_type: str) -> list[StepSpec]:
    """
    Ordered review plan for a listing.

    Only agency-owned listings spend agency budget, so only they get the VP
    budget step; the other steps are renumbered to stay contiguous.
    """
    names: list[tuple[str, str]] = [("manager", ROLE_MANAGER)]
    if listing_type == LISTING_AGENCY_OWNED:
        names.append(("vp_budget", ROLE_VP))
    names.append(("director", ROLE_DIRECTOR))
    names.append(("manager_publish", ROLE_MANAGER))
    return [StepSpec(step=n, step_order=i + 1, required_role=r) for i, (n, r) in enumerate(names)]


def skipped_steps(listing_type: str) -> list[str]:
    return [] if listing_type == LISTING_AGENCY_OWNED else ["vp_budget"]


def evaluate_step(
    *,
    step_status: str,
    required_role: str,
    actor_role: Optional[str],
    action: str,
    is_last_step: bool,
    property_status: str,
) -> Decision:
    """
    Decide an action on the current workflow step.

    next_status is the step's new status. The property transition, if any,
    is reported through audit_action: APPROVE when the final step is approved,
    REJECT on any rejection, STEP_APPROVE otherwise.
    """
    if action not in (ACTION_APPROVE, ACTION_REJECT):
        return Decision.deny(
            action=action,
            current_status=step_status,
            code="UNKNOWN_ACTION",
            reason="Action must be approve or reject",
        )

    if actor_role != ROLE_ADMIN and actor_role != required_role:
        return Decision.deny(
            action=action,
            current_status=step_status,
            code="INSUFFICIENT_PERMISSIONS",
            reason=f"This step requires {required_role} role",
        )

    if step_status != STEP_PENDING or property_status != PROPERTY_PENDING:
        return Decision.deny(
            action=action,
            current_status=step_status,
            code="INVALID_STATUS",
            reason=f"Step is {step_status} and property is {property_status}",
        )

    if action == ACTION_REJECT:
        return Decision.allow(action=action, current_status=step_status, next_status=STEP_REJECTED, audit_action="REJECT")

    return Decision.allow(
        action=action,
        current_status=step_status,
        next_status=STEP_APPROVED,
        audit_action="APPROVE" if is_last_step else "STEP_APPROVE",
    )
