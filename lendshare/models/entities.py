"""Dataclass-style entity representations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from flask_login import UserMixin


class UserTier(str, Enum):
    """Reputation rank earned by lending items out."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    @property
    def rank(self) -> int:
        return list(UserTier).index(self)


class ItemTier(str, Enum):
    """Price band of an item, gating which user tiers may borrow it."""

    BASIC = "basic"
    PREMIUM = "premium"
    LUXURY = "luxury"
    EXCLUSIVE = "exclusive"

    @property
    def rank(self) -> int:
        return list(ItemTier).index(self)


class RequestStatus(str, Enum):
    """Lifecycle states of a borrow request.

    ``ACTIVE`` and ``CANCELLED`` exist in the stored data but no transition
    currently leads into or out of them.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.REJECTED, RequestStatus.COMPLETED, RequestStatus.CANCELLED)


OUTSTANDING_STATUSES = (RequestStatus.PENDING, RequestStatus.APPROVED)


class RatingType(str, Enum):
    BORROWER_TO_LENDER = "borrower_to_lender"
    LENDER_TO_BORROWER = "lender_to_borrower"


ITEM_CATEGORIES = (
    "electronics",
    "tools",
    "sports",
    "books",
    "clothing",
    "home",
    "outdoor",
    "other",
)


@dataclass
class User(UserMixin):
    """Marketplace member compatible with Flask-Login."""

    user_id: int
    name: str
    email: str
    password_hash: str
    avatar_url: Optional[str]
    items_lent: int
    reputation_score: int
    average_rating: float
    total_ratings: int
    created_at: datetime
    updated_at: datetime
    is_active: bool = True

    def get_id(self) -> str:
        return str(self.user_id)

    @property
    def tier(self) -> UserTier:
        """Tier derived from the authoritative lending counter."""

        from ..services.tiers import user_tier_of  # pylint: disable=import-outside-toplevel

        return user_tier_of(self.items_lent)


@dataclass
class Item:
    """An item listed for lending."""

    item_id: int
    owner_id: int
    title: str
    description: str
    category: str
    purchase_price: Decimal
    image_url: Optional[str]
    is_available: bool
    location: str
    created_at: datetime
    updated_at: datetime

    @property
    def tier(self) -> ItemTier:
        """Tier derived from the purchase price."""

        from ..services.tiers import item_tier_of  # pylint: disable=import-outside-toplevel

        return item_tier_of(self.purchase_price)


@dataclass
class BorrowRequest:
    """A borrower's request to use an owner's item over a date range."""

    request_id: int
    item_id: int
    borrower_id: int
    owner_id: int
    status: RequestStatus
    start_date: date
    end_date: date
    message: Optional[str]
    created_at: datetime
    updated_at: datetime

    def role_of(self, user_id: int) -> Optional[str]:
        """Return ``"borrower"``, ``"owner"`` or None for a non-party."""

        if user_id == self.borrower_id:
            return "borrower"
        if user_id == self.owner_id:
            return "owner"
        return None

    def counterparty_of(self, user_id: int) -> Optional[int]:
        if user_id == self.borrower_id:
            return self.owner_id
        if user_id == self.owner_id:
            return self.borrower_id
        return None


@dataclass
class Rating:
    """Feedback one party of a completed request leaves for the other."""

    rating_id: int
    request_id: int
    rater_id: int
    rated_user_id: int
    score: int
    review: Optional[str]
    rating_type: RatingType
    created_at: datetime
    updated_at: datetime


@dataclass
class Conversation:
    """Chat between the two parties of a borrow request."""

    conversation_id: int
    participant_1_id: int
    participant_2_id: int
    request_id: Optional[int]
    last_message_at: datetime
    created_at: datetime

    @property
    def participants(self) -> set[int]:
        return {self.participant_1_id, self.participant_2_id}


@dataclass
class Message:
    """A message posted in a conversation."""

    message_id: int
    conversation_id: int
    sender_id: int
    content: str
    is_read: bool
    created_at: datetime
