"""Tier derivation rules.

Users climb from bronze to platinum by lending items out; items are banded by
purchase price. A user may borrow an item only when their tier ranks at least
as high as the item's. Everything here is pure and deterministic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from numbers import Real
from typing import Optional, Union

from ..models.entities import ItemTier, UserTier

Number = Union[int, float, Decimal]

USER_TIER_THRESHOLDS: dict[UserTier, int] = {
    UserTier.BRONZE: 0,
    UserTier.SILVER: 5,
    UserTier.GOLD: 20,
    UserTier.PLATINUM: 50,
}

ITEM_TIER_THRESHOLDS: dict[ItemTier, int] = {
    ItemTier.BASIC: 0,
    ItemTier.PREMIUM: 100,
    ItemTier.LUXURY: 500,
    ItemTier.EXCLUSIVE: 2000,
}

USER_TIER_BENEFITS = {
    UserTier.BRONZE: {
        "name": "Bronze",
        "description": "Starting tier for new users",
        "benefits": ["Basic borrowing privileges", "Standard support"],
    },
    UserTier.SILVER: {
        "name": "Silver",
        "description": "Achieved after 5 successful lendings",
        "benefits": ["Access to premium items", "Priority in borrow requests", "Email support"],
    },
    UserTier.GOLD: {
        "name": "Gold",
        "description": "Achieved after 20 successful lendings",
        "benefits": ["Access to luxury items", "Extended borrowing periods", "Phone support"],
    },
    UserTier.PLATINUM: {
        "name": "Platinum",
        "description": "Achieved after 50 successful lendings",
        "benefits": ["Access to exclusive items", "Priority support", "Special recognition"],
    },
}

ITEM_TIER_INFO = {
    ItemTier.BASIC: {"name": "Basic", "description": "Items under $100"},
    ItemTier.PREMIUM: {"name": "Premium", "description": "Items $100 - $499"},
    ItemTier.LUXURY: {"name": "Luxury", "description": "Items $500 - $1,999"},
    ItemTier.EXCLUSIVE: {"name": "Exclusive", "description": "Items $2,000+"},
}


@dataclass(frozen=True)
class TierProgress:
    """How far a user is from their next tier."""

    current_tier: UserTier
    next_tier: Optional[UserTier]
    next_tier_threshold: Optional[int]
    progress_percent: float
    items_lent: int


def _require_non_negative(value: Number, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise ValueError(f"{label} must be a number, got {value!r}.")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"{label} must be finite.")
    elif not math.isfinite(value):
        raise ValueError(f"{label} must be finite.")
    if value < 0:
        raise ValueError(f"{label} cannot be negative.")


def _highest_met(thresholds: dict, value: Number):
    reached = [tier for tier, threshold in thresholds.items() if threshold <= value]
    return reached[-1]


def user_tier_of(items_lent: int) -> UserTier:
    """Return the highest user tier whose threshold ``items_lent`` meets."""

    _require_non_negative(items_lent, "items_lent")
    return _highest_met(USER_TIER_THRESHOLDS, items_lent)


def item_tier_of(purchase_price: Number) -> ItemTier:
    """Return the highest item tier whose threshold ``purchase_price`` meets."""

    _require_non_negative(purchase_price, "purchase_price")
    return _highest_met(ITEM_TIER_THRESHOLDS, purchase_price)


def tier_progress(items_lent: int) -> TierProgress:
    """Describe progress from the current tier towards the next one."""

    current = user_tier_of(items_lent)
    tiers = list(UserTier)
    if current.rank == len(tiers) - 1:
        return TierProgress(current, None, None, 100.0, items_lent)

    next_tier = tiers[current.rank + 1]
    floor = USER_TIER_THRESHOLDS[current]
    ceiling = USER_TIER_THRESHOLDS[next_tier]
    percent = (items_lent - floor) / (ceiling - floor) * 100
    percent = max(0.0, min(100.0, percent))
    return TierProgress(current, next_tier, ceiling, round(percent, 2), items_lent)


def can_borrow(user_tier: UserTier, item_tier: ItemTier) -> bool:
    """Return True when ``user_tier`` is allowed to borrow ``item_tier`` items."""

    return UserTier(user_tier).rank >= ItemTier(item_tier).rank


def required_user_tier(item_tier: ItemTier) -> UserTier:
    """Lowest user tier allowed to borrow ``item_tier`` items."""

    return list(UserTier)[ItemTier(item_tier).rank]


def item_price_band(item_tier: ItemTier) -> tuple[int, Optional[int]]:
    """Return the ``[low, high)`` purchase price band for a tier; high is None for the top tier."""

    tiers = list(ItemTier)
    tier = ItemTier(item_tier)
    low = ITEM_TIER_THRESHOLDS[tier]
    if tier.rank == len(tiers) - 1:
        return low, None
    return low, ITEM_TIER_THRESHOLDS[tiers[tier.rank + 1]]
