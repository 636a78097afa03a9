from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ListingValidation:
    valid: bool
    message: Optional[str] = None

    def as_dict(self) -> dict:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "message": self.message}


_OWNED_MESSAGES = {
    "agency_owned": "Buy price is required for agency-owned properties",
    "branch_owned": "Buy price is required for branch-owned properties",
}

_BROKERAGE_FIELDS = (
    "owner_first_name",
    "owner_last_name",
    "owner_contact",
    "brokerage_commission_percent",
)


def _filled(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str):
        return bool(v.strip())
    if isinstance(v, (int, float)):
        return v > 0
    return bool(v)


def validate_listing_type_requirements(prop: Any) -> ListingValidation:
    """
    Listing-type specific completeness check. Pure: reads attributes only.

    Works on ORM rows and on plain objects alike.
    """
    listing_type = getattr(prop, "listing_type", None)

    if listing_type in _OWNED_MESSAGES:
        if not _filled(getattr(prop, "buy_price", None)):
            return ListingValidation(valid=False, message=_OWNED_MESSAGES[listing_type])
        return ListingValidation(valid=True)

    if listing_type == "brokerage":
        missing = [f for f in _BROKERAGE_FIELDS if not _filled(getattr(prop, f, None))]
        if missing:
            return ListingValidation(
                valid=False,
                message=(
                    "Brokerage properties require owner data and a commission percent "
                    f"(missing: {', '.join(missing)})"
                ),
            )
        return ListingValidation(valid=True)

    return ListingValidation(valid=False, message="Unknown property type")
