# backend/backoffice/domain/approval_plan.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .approval_errors import InvalidListingType


class Role(str, Enum):
    AGENT = "agent"
    MANAGER = "manager"
    VP = "vp"
    DIRECTOR = "director"
    ADMIN = "admin"


class ListingType(str, Enum):
    AGENCY_OWNED = "agency_owned"
    BRANCH_OWNED = "branch_owned"
    BROKERAGE = "brokerage"


class PropertyStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    ARCHIVED = "archived"
    SOLD = "sold"


class ApprovalStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Who may open a run, and who may use the direct shortcut.
START_ROLES = frozenset({Role.AGENT, Role.MANAGER, Role.DIRECTOR, Role.ADMIN})
APPROVER_ROLES = frozenset({Role.MANAGER, Role.VP, Role.DIRECTOR, Role.ADMIN})

BUDGET_STEP = "vp_budget"


@dataclass(frozen=True)
class PlannedStep:
    step_order: int
    required_role: Role
    step_name: str

    def as_dict(self) -> dict:
        return {
            "step_order": self.step_order,
            "required_role": self.required_role.value,
            "step": self.step_name,
        }


def parse_role(value: object) -> Optional[Role]:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip().lower())
    except ValueError:
        return None


def parse_listing_type(value: object) -> ListingType:
    if isinstance(value, ListingType):
        return value
    try:
        return ListingType(str(value or "").strip().lower())
    except ValueError:
        raise InvalidListingType(f"Unknown listing type: {value!r}") from None


def includes_budget_step(listing_type: ListingType) -> bool:
    return listing_type is ListingType.AGENCY_OWNED


def budget_skip_reason(listing_type: ListingType) -> str:
    return f"SKIPPED_BY_RULE(listing_type={listing_type.value})"


def build_plan(listing_type: object) -> list[PlannedStep]:
    """
    Ordered approval steps for a listing type.

    Every plan opens with a manager review, requires a director, and closes
    with a manager publish step. The VP budget step is added only for
    agency-owned listings.
    """
    lt = parse_listing_type(listing_type)

    roles: list[tuple[Role, str]] = [(Role.MANAGER, "manager")]
    if includes_budget_step(lt):
        roles.append((Role.VP, BUDGET_STEP))
    roles.append((Role.DIRECTOR, "director"))
    roles.append((Role.MANAGER, "manager_publish"))

    return [
        PlannedStep(step_order=i, required_role=role, step_name=name)
        for i, (role, name) in enumerate(roles, start=1)
    ]
