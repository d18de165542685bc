"""Ratings exchanged by the two parties of a completed borrow request."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..data_access import items_dao, ratings_dao, requests_dao, users_dao
from ..data_access.db import atomic, get_db
from ..models.entities import BorrowRequest, Rating, RatingType, RequestStatus
from .errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    wraps_storage_errors,
)


@dataclass(frozen=True)
class RatingStats:
    average_rating: float
    total_ratings: int


@dataclass(frozen=True)
class PendingRating:
    """A completed request the user has not rated yet."""

    request_id: int
    other_user_id: int
    other_user_name: Optional[str]
    item_title: Optional[str]
    completed_at: str


def _validate_feedback(score, review: Optional[str]) -> Optional[str]:
    if isinstance(score, bool) or not isinstance(score, int) or not 1 <= score <= 5:
        raise ValidationError("invalid_score", "Ratings must be a whole number of stars from 1 to 5.")
    if review is not None:
        review = review.strip() or None
    limit = current_app.config.get("RATING_REVIEW_MAX_LENGTH", 500)
    if review and len(review) > limit:
        raise ValidationError("review_too_long", f"Reviews are limited to {limit} characters.")
    return review


def rating_type_for(request: BorrowRequest, rater_id: int) -> RatingType:
    """Direction of a rating follows the rater's role on the request."""

    if rater_id == request.borrower_id:
        return RatingType.BORROWER_TO_LENDER
    return RatingType.LENDER_TO_BORROWER


@wraps_storage_errors
def submit_rating(
    request_id: int,
    rater_id: int,
    rated_user_id: int,
    score: int,
    review: Optional[str] = None,
    rating_type_hint: Optional[str] = None,
) -> Rating:
    """Record the rater's feedback about the other party of a completed request.

    ``rating_type_hint`` is accepted for API compatibility and ignored; the
    direction is always derived from the rater's role on the request.
    """

    review = _validate_feedback(score, review)

    request = requests_dao.get_request_by_id(request_id)
    if request is None:
        raise NotFoundError("request_not_found", "This borrow request does not exist.")

    parties = {request.borrower_id, request.owner_id}
    if rater_id not in parties or rated_user_id not in parties or rater_id == rated_user_id:
        raise AuthorizationError(
            "not_a_party", "Only the borrower and the owner of a request can rate each other."
        )

    if request.status is not RequestStatus.COMPLETED:
        raise StateConflictError(
            "not_completed", "You can rate the other party once the request is completed."
        )

    if ratings_dao.rating_exists(request_id, rater_id):
        raise StateConflictError("already_rated", "You have already rated this request.")

    rating_type = rating_type_for(request, rater_id)
    if rating_type_hint and rating_type_hint != rating_type.value:
        current_app.logger.warning(
            "Ignoring rating_type hint %r from user %s on request %s", rating_type_hint, rater_id, request_id
        )

    try:
        with atomic(get_db()) as db:
            rating_id = ratings_dao.insert_rating(
                db, request_id, rater_id, rated_user_id, score, review, rating_type
            )
            users_dao.refresh_rating_stats(db, rated_user_id)
    except sqlite3.IntegrityError as exc:
        raise StateConflictError("already_rated", "You have already rated this request.") from exc

    current_app.logger.info(
        "User %s rated user %s %s/5 on request %s", rater_id, rated_user_id, score, request_id
    )
    return ratings_dao.get_rating_by_id(rating_id)


@wraps_storage_errors
def update_rating(rating_id: int, actor_id: int, score: int, review: Optional[str] = None) -> Rating:
    """Change the score or review of an existing rating; only its author may."""

    review = _validate_feedback(score, review)
    rating = ratings_dao.get_rating_by_id(rating_id)
    if rating is None:
        raise NotFoundError("rating_not_found", "This rating does not exist.")
    if rating.rater_id != actor_id:
        raise AuthorizationError("not_rater", "Only the author of a rating can change it.")

    with atomic(get_db()) as db:
        ratings_dao.update_rating(db, rating_id, score, review)
        users_dao.refresh_rating_stats(db, rating.rated_user_id)
    return ratings_dao.get_rating_by_id(rating_id)


@wraps_storage_errors
def has_rated(request_id: int, rater_id: int) -> bool:
    return ratings_dao.rating_exists(request_id, rater_id)


@wraps_storage_errors
def both_parties_rated(request_id: int) -> bool:
    return ratings_dao.count_ratings_for_request(request_id) >= 2


@wraps_storage_errors
def rating_stats_of(user_id: int) -> RatingStats:
    """Average and count of the ratings the user has received."""

    stats = ratings_dao.stats_for_user(user_id)
    if stats is None:
        raise NotFoundError("user_not_found", "This user does not exist.")
    return RatingStats(*stats)


@wraps_storage_errors
def list_ratings_received(user_id: int) -> list[Rating]:
    return ratings_dao.list_ratings_received(user_id)


@wraps_storage_errors
def list_ratings_given(user_id: int) -> list[Rating]:
    return ratings_dao.list_ratings_given(user_id)


@wraps_storage_errors
def list_ratings_for_request(request_id: int, actor_id: int) -> list[Rating]:
    request = requests_dao.get_request_by_id(request_id)
    if request is None or request.role_of(actor_id) is None:
        raise NotFoundError("request_not_found", "This borrow request does not exist.")
    return ratings_dao.list_ratings_for_request(request_id)


@wraps_storage_errors
def pending_ratings(user_id: int) -> list[PendingRating]:
    """Completed requests the user took part in but has not rated yet."""

    pending = []
    for request in requests_dao.list_completed_for_party(user_id):
        if ratings_dao.rating_exists(request.request_id, user_id):
            continue
        other_id = request.counterparty_of(user_id)
        other = users_dao.get_user_by_id(other_id)
        item = items_dao.get_item_by_id(request.item_id)
        pending.append(
            PendingRating(
                request_id=request.request_id,
                other_user_id=other_id,
                other_user_name=other.name if other else None,
                item_title=item.title if item else None,
                completed_at=request.updated_at.isoformat(),
            )
        )
    return pending
