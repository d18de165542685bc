"""Rating subsystem tests."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from lendshare.data_access import users_dao
from lendshare.models.entities import RatingType
from lendshare.services import borrowing, ratings
from lendshare.services.errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)


def _completed_request(owner, borrower, item):
    start = date.today() + timedelta(days=1)
    request = borrowing.create_request(borrower.user_id, item.item_id, start, start + timedelta(days=1))
    borrowing.approve_request(request.request_id, owner.user_id)
    borrowing.complete_request(request.request_id, owner.user_id)
    return request


def test_rating_pending_request_fails_not_completed(pending_request):
    with pytest.raises(StateConflictError) as excinfo:
        ratings.submit_rating(
            pending_request.request_id,
            pending_request.borrower_id,
            pending_request.owner_id,
            4,
        )
    assert excinfo.value.reason == "not_completed"


def test_second_rating_by_same_rater_fails(completed_request):
    # The seeded borrower has already rated this request.
    with pytest.raises(StateConflictError) as excinfo:
        ratings.submit_rating(
            completed_request.request_id,
            completed_request.borrower_id,
            completed_request.owner_id,
            3,
        )
    assert excinfo.value.reason == "already_rated"


def test_direction_is_derived_from_role(completed_request):
    rating = ratings.submit_rating(
        completed_request.request_id,
        completed_request.owner_id,
        completed_request.borrower_id,
        4,
        "Returned on time.",
        rating_type_hint="borrower_to_lender",
    )
    assert rating.rating_type is RatingType.LENDER_TO_BORROWER
    assert ratings.both_parties_rated(completed_request.request_id)


def test_borrower_rating_is_borrower_to_lender(owner_user, bronze_user, basic_item):
    request = _completed_request(owner_user, bronze_user, basic_item)
    rating = ratings.submit_rating(
        request.request_id,
        bronze_user.user_id,
        owner_user.user_id,
        5,
        rating_type_hint="lender_to_borrower",
    )
    assert rating.rating_type is RatingType.BORROWER_TO_LENDER
    assert ratings.has_rated(request.request_id, bronze_user.user_id)
    assert not ratings.has_rated(request.request_id, owner_user.user_id)
    assert not ratings.both_parties_rated(request.request_id)


def test_non_party_cannot_rate(completed_request, platinum_user):
    with pytest.raises(AuthorizationError) as excinfo:
        ratings.submit_rating(
            completed_request.request_id,
            platinum_user.user_id,
            completed_request.owner_id,
            1,
        )
    assert excinfo.value.reason == "not_a_party"

    with pytest.raises(AuthorizationError):
        ratings.submit_rating(
            completed_request.request_id,
            completed_request.owner_id,
            completed_request.owner_id,
            5,
        )


@pytest.mark.parametrize("score", [0, 6, 2.5, "5", True])
def test_score_must_be_one_to_five(completed_request, score):
    with pytest.raises(ValidationError) as excinfo:
        ratings.submit_rating(
            completed_request.request_id,
            completed_request.owner_id,
            completed_request.borrower_id,
            score,
        )
    assert excinfo.value.reason == "invalid_score"


def test_review_length_limit(completed_request):
    with pytest.raises(ValidationError) as excinfo:
        ratings.submit_rating(
            completed_request.request_id,
            completed_request.owner_id,
            completed_request.borrower_id,
            4,
            "x" * 501,
        )
    assert excinfo.value.reason == "review_too_long"


def test_unknown_request_is_not_found(owner_user, gold_user):
    with pytest.raises(NotFoundError):
        ratings.submit_rating(424242, owner_user.user_id, gold_user.user_id, 4)


def test_stats_follow_received_ratings(owner_user, bronze_user, basic_item):
    # Seed: Olivia has one 5-star rating.
    assert ratings.rating_stats_of(owner_user.user_id) == ratings.RatingStats(5.0, 1)

    first = _completed_request(owner_user, bronze_user, basic_item)
    ratings.submit_rating(first.request_id, bronze_user.user_id, owner_user.user_id, 2)
    stats = ratings.rating_stats_of(owner_user.user_id)
    assert stats.total_ratings == 2
    assert stats.average_rating == pytest.approx(3.5)

    cached = users_dao.get_user_by_id(owner_user.user_id)
    assert cached.average_rating == pytest.approx(3.5)
    assert cached.total_ratings == 2


def test_update_rating_recomputes_stats(owner_user, bronze_user, basic_item):
    request = _completed_request(owner_user, bronze_user, basic_item)
    rating = ratings.submit_rating(request.request_id, bronze_user.user_id, owner_user.user_id, 1)

    updated = ratings.update_rating(rating.rating_id, bronze_user.user_id, 3, "Changed my mind")
    assert updated.score == 3
    assert updated.review == "Changed my mind"
    assert ratings.rating_stats_of(owner_user.user_id).average_rating == pytest.approx(4.0)

    with pytest.raises(AuthorizationError):
        ratings.update_rating(rating.rating_id, owner_user.user_id, 5)


def test_stats_for_unrated_and_unknown_users(bronze_user):
    assert ratings.rating_stats_of(bronze_user.user_id) == ratings.RatingStats(0.0, 0)
    with pytest.raises(NotFoundError):
        ratings.rating_stats_of(987654)


def test_pending_ratings_lists_unrated_completed_requests(completed_request, owner_user, gold_user):
    owner_pending = ratings.pending_ratings(owner_user.user_id)
    assert [p.request_id for p in owner_pending] == [completed_request.request_id]
    assert owner_pending[0].other_user_id == gold_user.user_id
    assert owner_pending[0].item_title == "Cordless Drill"

    assert ratings.pending_ratings(gold_user.user_id) == []


def test_listings(completed_request, owner_user, gold_user):
    received = ratings.list_ratings_received(owner_user.user_id)
    given = ratings.list_ratings_given(gold_user.user_id)
    assert [r.rating_id for r in received] == [r.rating_id for r in given]
    assert len(ratings.list_ratings_for_request(completed_request.request_id, owner_user.user_id)) == 1
    with pytest.raises(NotFoundError):
        ratings.list_ratings_for_request(completed_request.request_id, 987654)
