"""Borrow request lifecycle tests."""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta

import pytest

from lendshare.data_access import items_dao, requests_dao, users_dao
from lendshare.models.entities import RequestStatus, UserTier
from lendshare.services import borrowing
from lendshare.services.borrowing import RequestEvent
from lendshare.services.errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    TransientInfrastructureError,
    ValidationError,
)

START = date.today() + timedelta(days=5)
END = START + timedelta(days=2)


def _count_requests(db) -> int:
    return db.execute("SELECT COUNT(*) FROM borrow_requests").fetchone()[0]


def test_create_request_starts_pending(bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END, "  For a weekend project  ")
    assert request.status is RequestStatus.PENDING
    assert request.owner_id == basic_item.owner_id
    assert request.message == "For a weekend project"
    assert borrowing.allowed_events(request, basic_item.owner_id) == [RequestEvent.APPROVE, RequestEvent.REJECT]
    assert borrowing.allowed_events(request, bronze_user.user_id) == []


def test_bronze_cannot_request_exclusive_item(ctx, bronze_user, exclusive_item):
    before = _count_requests(ctx)
    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.create_request(bronze_user.user_id, exclusive_item.item_id, START, END)
    assert excinfo.value.reason == "tier_ineligible"
    assert "Platinum" in excinfo.value.message
    assert _count_requests(ctx) == before


def test_platinum_can_request_exclusive_item(platinum_user, gold_user):
    bike = items_dao.create_item(gold_user.user_id, "Road Bike", "sports", "2100", "Hillcrest")
    request = borrowing.create_request(platinum_user.user_id, bike.item_id, START, END)
    assert request.status is RequestStatus.PENDING


def test_validation_order_first_failure_wins(bronze_user, exclusive_item, unavailable_item):
    # Tier is checked before the date range.
    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.create_request(bronze_user.user_id, exclusive_item.item_id, END, START)
    assert excinfo.value.reason == "tier_ineligible"

    # Availability is checked before tier and dates.
    items_dao.update_item(exclusive_item.item_id, is_available=False)
    with pytest.raises(StateConflictError) as excinfo:
        borrowing.create_request(bronze_user.user_id, exclusive_item.item_id, END, START)
    assert excinfo.value.reason == "item_unavailable"

    with pytest.raises(NotFoundError) as excinfo:
        borrowing.create_request(bronze_user.user_id, 99999, START, END)
    assert excinfo.value.reason == "item_not_found"

    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.create_request(None, unavailable_item.item_id, START, END)
    assert excinfo.value.reason == "unauthenticated"


def test_invalid_date_range(bronze_user, basic_item):
    with pytest.raises(ValidationError) as excinfo:
        borrowing.create_request(bronze_user.user_id, basic_item.item_id, END, START)
    assert excinfo.value.reason == "invalid_date_range"

    same_day = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, START)
    assert same_day.start_date == same_day.end_date


def test_cannot_borrow_own_item(owner_user, basic_item):
    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.create_request(owner_user.user_id, basic_item.item_id, START, END)
    assert excinfo.value.reason == "self_borrow"


def test_duplicate_outstanding_request_conflicts(bronze_user, basic_item):
    borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    with pytest.raises(StateConflictError) as excinfo:
        borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    assert excinfo.value.reason == "duplicate_request"


def test_duplicate_check_can_be_disabled(app, bronze_user, basic_item):
    app.config["ENFORCE_SINGLE_OUTSTANDING_REQUEST"] = False
    borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    second = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    assert second.status is RequestStatus.PENDING


def test_new_request_allowed_after_rejection(owner_user, bronze_user, basic_item):
    first = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.reject_request(first.request_id, owner_user.user_id)
    second = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    assert second.request_id != first.request_id


def test_pending_cannot_jump_to_completed(owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    with pytest.raises(StateConflictError) as excinfo:
        borrowing.complete_request(request.request_id, owner_user.user_id)
    assert excinfo.value.reason == "invalid_transition"
    assert requests_dao.get_request_by_id(request.request_id).status is RequestStatus.PENDING


def test_only_owner_approves_or_rejects(bronze_user, silver_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.approve_request(request.request_id, bronze_user.user_id)
    assert excinfo.value.reason == "actor_not_allowed"

    with pytest.raises(AuthorizationError) as excinfo:
        borrowing.reject_request(request.request_id, silver_user.user_id)
    assert excinfo.value.reason == "not_a_party"


def test_rejected_is_terminal(owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    outcome = borrowing.reject_request(request.request_id, owner_user.user_id)
    assert outcome.changed and outcome.request.status is RequestStatus.REJECTED

    with pytest.raises(StateConflictError):
        borrowing.approve_request(request.request_id, owner_user.user_id)
    with pytest.raises(StateConflictError):
        borrowing.complete_request(request.request_id, bronze_user.user_id)


def test_items_lent_increments_on_completion_only(owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)

    borrowing.approve_request(request.request_id, owner_user.user_id)
    assert users_dao.get_user_by_id(owner_user.user_id).items_lent == owner_user.items_lent

    outcome = borrowing.complete_request(request.request_id, bronze_user.user_id)
    assert outcome.changed
    assert outcome.request.status is RequestStatus.COMPLETED
    refreshed = users_dao.get_user_by_id(owner_user.user_id)
    assert refreshed.items_lent == owner_user.items_lent + 1
    assert refreshed.reputation_score == owner_user.reputation_score + 10


def test_complete_twice_counts_once(owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.approve_request(request.request_id, owner_user.user_id)

    first = borrowing.complete_request(request.request_id, owner_user.user_id)
    second = borrowing.complete_request(request.request_id, bronze_user.user_id)

    assert first.changed is True
    assert second.changed is False
    assert second.request.status is RequestStatus.COMPLETED
    assert users_dao.get_user_by_id(owner_user.user_id).items_lent == owner_user.items_lent + 1


def test_duplicate_approve_is_benign(owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    assert borrowing.approve_request(request.request_id, owner_user.user_id).changed
    again = borrowing.approve_request(request.request_id, owner_user.user_id)
    assert again.changed is False
    assert again.request.status is RequestStatus.APPROVED


def test_lost_race_is_reported_as_already_transitioned(monkeypatch, owner_user, bronze_user, basic_item):
    """A completion that loses the conditional update must not credit the owner again."""

    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.approve_request(request.request_id, owner_user.user_id)
    stale = requests_dao.get_request_by_id(request.request_id)
    borrowing.complete_request(request.request_id, owner_user.user_id)

    real_get = requests_dao.get_request_by_id
    calls = {"n": 0}

    def stale_first(request_id, connection=None):
        calls["n"] += 1
        if calls["n"] == 1:
            return stale
        return real_get(request_id, connection=connection)

    monkeypatch.setattr(requests_dao, "get_request_by_id", stale_first)
    outcome = borrowing.complete_request(request.request_id, bronze_user.user_id)

    assert outcome.changed is False
    assert outcome.request.status is RequestStatus.COMPLETED
    assert users_dao.get_user_by_id(owner_user.user_id).items_lent == owner_user.items_lent + 1


def test_fifth_completed_lend_promotes_owner_to_silver(ctx, owner_user, bronze_user, basic_item):
    assert owner_user.items_lent == 4
    assert owner_user.tier is UserTier.BRONZE

    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.approve_request(request.request_id, owner_user.user_id)
    borrowing.complete_request(request.request_id, owner_user.user_id)

    promoted = users_dao.get_user_by_id(owner_user.user_id)
    assert promoted.tier is UserTier.SILVER
    cached = ctx.execute("SELECT tier FROM users WHERE user_id = ?", (owner_user.user_id,)).fetchone()
    assert cached["tier"] == "silver"


def test_transitions_publish_events(app, owner_user, bronze_user, basic_item):
    from lendshare.services.events import get_event_bus

    received = []
    subscription = get_event_bus().subscribe(f"owner:{owner_user.user_id}", received.append)
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.approve_request(request.request_id, owner_user.user_id)
    subscription.cancel()
    borrowing.complete_request(request.request_id, owner_user.user_id)

    assert [event.payload["status"] for event in received] == ["pending", "approved"]
    assert all(event.entity_id == request.request_id for event in received)


def test_transition_table_has_no_reserved_states():
    reachable = {t.target for t in borrowing.TRANSITIONS.values()}
    sources = {status for status, _ in borrowing.TRANSITIONS}
    for reserved in (RequestStatus.ACTIVE, RequestStatus.CANCELLED):
        assert reserved not in reachable
        assert reserved not in sources


def test_incoming_and_outgoing_lists(owner_user, bronze_user, basic_item, luxury_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    outgoing = borrowing.list_outgoing(bronze_user.user_id)
    assert [r.request_id for r in outgoing] == [request.request_id]

    pending = borrowing.list_incoming(owner_user.user_id, RequestStatus.PENDING)
    assert request.request_id in {r.request_id for r in pending}
    assert all(r.status is RequestStatus.PENDING for r in pending)


def test_failed_completion_side_effect_rolls_back(monkeypatch, owner_user, bronze_user, basic_item):
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    borrowing.approve_request(request.request_id, owner_user.user_id)

    def broken(*args, **kwargs):
        raise RuntimeError("counter update failed")

    monkeypatch.setattr(users_dao, "record_completed_lend", broken)
    with pytest.raises(RuntimeError):
        borrowing.complete_request(request.request_id, owner_user.user_id)

    assert requests_dao.get_request_by_id(request.request_id).status is RequestStatus.APPROVED
    owner = users_dao.get_user_by_id(owner_user.user_id)
    assert owner.items_lent == owner_user.items_lent
    assert owner.reputation_score == owner_user.reputation_score


def test_storage_failure_is_transient(monkeypatch, owner_user, pending_request):
    def locked(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(requests_dao, "get_request_by_id", locked)
    with pytest.raises(TransientInfrastructureError) as excinfo:
        borrowing.approve_request(pending_request.request_id, pending_request.owner_id)
    assert excinfo.value.reason == "storage_unavailable"
    assert excinfo.value.status_code == 503


def test_create_request_takes_write_lock(app, ctx, bronze_user, basic_item):
    before = _count_requests(ctx)
    ctx.execute("PRAGMA busy_timeout = 50")
    other = sqlite3.connect(app.config["DATABASE_URL"].replace("sqlite:///", "", 1), isolation_level=None)
    other.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(TransientInfrastructureError):
            borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    finally:
        other.execute("ROLLBACK")
        other.close()

    assert _count_requests(ctx) == before
    request = borrowing.create_request(bronze_user.user_id, basic_item.item_id, START, END)
    assert request.status is RequestStatus.PENDING
    assert not ctx.in_transaction
