"""JSON shapes returned by the blueprints."""

from __future__ import annotations

from typing import Optional

from ..models.entities import BorrowRequest, Conversation, Item, Message, Rating, User
from ..services.tiers import TierProgress, can_borrow


def user_public(user: User) -> dict:
    return {
        "user_id": user.user_id,
        "name": user.name,
        "avatar_url": user.avatar_url,
        "tier": user.tier.value,
        "items_lent": user.items_lent,
        "reputation_score": user.reputation_score,
        "average_rating": user.average_rating,
        "total_ratings": user.total_ratings,
    }


def user_private(user: User) -> dict:
    data = user_public(user)
    data["email"] = user.email
    return data


def item(entity: Item, viewer: Optional[User] = None) -> dict:
    data = {
        "item_id": entity.item_id,
        "owner_id": entity.owner_id,
        "title": entity.title,
        "description": entity.description,
        "category": entity.category,
        "purchase_price": str(entity.purchase_price),
        "tier": entity.tier.value,
        "image_url": entity.image_url,
        "is_available": entity.is_available,
        "location": entity.location,
        "created_at": entity.created_at.isoformat(),
    }
    if viewer is not None:
        data["can_borrow"] = viewer.user_id != entity.owner_id and can_borrow(viewer.tier, entity.tier)
    return data


def borrow_request(entity: BorrowRequest, allowed_events: Optional[list] = None) -> dict:
    data = {
        "request_id": entity.request_id,
        "item_id": entity.item_id,
        "borrower_id": entity.borrower_id,
        "owner_id": entity.owner_id,
        "status": entity.status.value,
        "start_date": entity.start_date.isoformat(),
        "end_date": entity.end_date.isoformat(),
        "message": entity.message,
        "created_at": entity.created_at.isoformat(),
        "updated_at": entity.updated_at.isoformat(),
    }
    if allowed_events is not None:
        data["allowed_actions"] = [event.value for event in allowed_events]
    return data


def rating(entity: Rating) -> dict:
    return {
        "rating_id": entity.rating_id,
        "request_id": entity.request_id,
        "rater_id": entity.rater_id,
        "rated_user_id": entity.rated_user_id,
        "score": entity.score,
        "review": entity.review,
        "rating_type": entity.rating_type.value,
        "created_at": entity.created_at.isoformat(),
    }


def tier_progress(progress: TierProgress) -> dict:
    return {
        "current_tier": progress.current_tier.value,
        "next_tier": progress.next_tier.value if progress.next_tier else None,
        "next_tier_threshold": progress.next_tier_threshold,
        "progress_percent": progress.progress_percent,
        "items_lent": progress.items_lent,
    }


def message(entity: Message) -> dict:
    return {
        "message_id": entity.message_id,
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "content": entity.content,
        "is_read": entity.is_read,
        "created_at": entity.created_at.isoformat(),
    }


def conversation(entity: Conversation) -> dict:
    return {
        "conversation_id": entity.conversation_id,
        "participant_ids": sorted(entity.participants),
        "request_id": entity.request_id,
        "last_message_at": entity.last_message_at.isoformat(),
    }


def form_errors(form) -> dict:
    return {
        "error": "validation_error",
        "reason": "invalid_form",
        "message": "Please correct the highlighted fields.",
        "fields": {field: list(errors) for field, errors in form.errors.items()},
    }
