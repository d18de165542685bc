"""Conversation and realtime event tests."""

from __future__ import annotations

import pytest

from lendshare.data_access import messages_dao
from lendshare.services import messaging
from lendshare.services.errors import AuthorizationError, ValidationError
from lendshare.services.events import EntityMerger, Event, EventBus, get_event_bus


def test_conversation_is_reused_per_request(pending_request):
    first = messaging.get_or_create_conversation(pending_request.borrower_id, pending_request.request_id)
    second = messaging.get_or_create_conversation(pending_request.owner_id, pending_request.request_id)
    assert first.conversation_id == second.conversation_id
    assert first.participants == {pending_request.borrower_id, pending_request.owner_id}


def test_outsider_cannot_open_or_post(pending_request, bronze_user):
    with pytest.raises(AuthorizationError):
        messaging.get_or_create_conversation(bronze_user.user_id, pending_request.request_id)

    conversation = messaging.get_or_create_conversation(pending_request.owner_id, pending_request.request_id)
    with pytest.raises(AuthorizationError):
        messaging.send_message(conversation.conversation_id, bronze_user.user_id, "Hello?")


def test_send_and_poll_after_id(pending_request):
    conversation = messaging.get_or_create_conversation(pending_request.borrower_id, pending_request.request_id)
    history = messaging.list_messages(conversation.conversation_id, pending_request.borrower_id)
    last_seen = history[-1].message_id

    sent = messaging.send_message(conversation.conversation_id, pending_request.owner_id, "  Pickup at 9?  ")
    assert sent.content == "Pickup at 9?"

    newer = messaging.list_messages(conversation.conversation_id, pending_request.borrower_id, after_id=last_seen)
    assert [m.message_id for m in newer] == [sent.message_id]


def test_empty_message_rejected(pending_request):
    conversation = messaging.get_or_create_conversation(pending_request.borrower_id, pending_request.request_id)
    with pytest.raises(ValidationError):
        messaging.send_message(conversation.conversation_id, pending_request.borrower_id, "   ")


def test_unread_counts_and_mark_read(pending_request):
    borrower, owner = pending_request.borrower_id, pending_request.owner_id
    conversation = messaging.get_or_create_conversation(borrower, pending_request.request_id)
    # Seed: one unread message for each side.
    assert messaging.unread_count(borrower) == 1

    messaging.send_message(conversation.conversation_id, owner, "Still interested?")
    assert messaging.notification_counts(borrower)["unread_messages"] == 2

    assert messaging.mark_read(conversation.conversation_id, borrower) == 2
    assert messaging.unread_count(borrower) == 0
    assert messaging.notification_counts(owner) == {"unread_messages": 1, "pending_requests": 1}


def test_send_publishes_on_conversation_channel(pending_request):
    conversation = messaging.get_or_create_conversation(pending_request.borrower_id, pending_request.request_id)
    received = []
    with get_event_bus().subscribe(f"conversation:{conversation.conversation_id}", received.append):
        message = messaging.send_message(conversation.conversation_id, pending_request.borrower_id, "Thanks!")
    messaging.send_message(conversation.conversation_id, pending_request.borrower_id, "After unsubscribe")

    assert [event.entity_id for event in received] == [message.message_id]
    assert received[0].entity_type == "message"


def test_failing_handler_does_not_block_others():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe("owner:1", broken)
    bus.subscribe("owner:1", seen.append)
    delivered = bus.publish("owner:1", Event("borrow_request", 7, {"status": "approved"}, "a"))

    assert delivered == 1
    assert [event.entity_id for event in seen] == [7]


def test_cancelled_subscription_receives_nothing():
    bus = EventBus()
    seen = []
    subscription = bus.subscribe("request:3", seen.append)
    subscription.cancel()
    subscription.cancel()

    bus.publish("request:3", Event("borrow_request", 3, {"status": "approved"}))
    assert seen == []
    assert bus.subscriber_count("request:3") == 0


def test_merger_ignores_duplicates_and_stale_events():
    merger = EntityMerger()
    approved = Event("borrow_request", 5, {"status": "approved"}, "2026-01-01T10:00:00#1")
    completed = Event("borrow_request", 5, {"status": "completed"}, "2026-01-01T10:05:00#3")

    # Fresh state re-fetched after reconnect.
    assert merger.merge_snapshot(5, {"status": "completed"}, completed.version)
    # Late, out-of-order delivery of older and duplicate events.
    assert not merger.merge(approved)
    assert not merger.merge(completed)

    assert merger.get(5) == {"status": "completed"}
    assert len(merger) == 1


def test_simultaneous_open_reuses_existing_conversation(monkeypatch, pending_request):
    existing = messaging.get_or_create_conversation(pending_request.owner_id, pending_request.request_id)

    real_find = messages_dao.find_conversation
    lookups = []

    def missed_first(*args):
        lookups.append(args)
        return None if len(lookups) == 1 else real_find(*args)

    # The first lookup misses as if the other party had not committed yet.
    monkeypatch.setattr(messages_dao, "find_conversation", missed_first)
    opened = messaging.get_or_create_conversation(pending_request.borrower_id, pending_request.request_id)

    assert opened.conversation_id == existing.conversation_id
    assert len(lookups) == 2
