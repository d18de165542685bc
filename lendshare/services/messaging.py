"""Conversations between the borrower and owner of a request."""

from __future__ import annotations

import sqlite3
from typing import Optional

from flask import current_app

from ..data_access import messages_dao, requests_dao
from ..data_access.db import atomic, get_db
from ..models.entities import Conversation, Message
from . import events
from .errors import AuthorizationError, NotFoundError, ValidationError, wraps_storage_errors


def _conversation_for_participant(conversation_id: int, actor_id: int) -> Conversation:
    conversation = messages_dao.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError("conversation_not_found", "This conversation does not exist.")
    if actor_id not in conversation.participants:
        raise AuthorizationError("not_a_participant", "You are not part of this conversation.")
    return conversation


def message_event(message: Message) -> events.Event:
    return events.Event(
        entity_type="message",
        entity_id=message.message_id,
        payload={
            "message_id": message.message_id,
            "conversation_id": message.conversation_id,
            "sender_id": message.sender_id,
            "content": message.content,
        },
        version=f"{message.message_id:012d}",
    )


@wraps_storage_errors
def get_or_create_conversation(actor_id: int, request_id: int) -> Conversation:
    """Open (or reuse) the chat between the two parties of a request."""

    request = requests_dao.get_request_by_id(request_id)
    if request is None:
        raise NotFoundError("request_not_found", "This borrow request does not exist.")
    other_id = request.counterparty_of(actor_id)
    if other_id is None:
        raise AuthorizationError("not_a_party", "Only the borrower or the owner can chat about this request.")

    existing = messages_dao.find_conversation(actor_id, other_id, request_id)
    if existing:
        return existing
    try:
        return messages_dao.create_conversation(actor_id, other_id, request_id)
    except sqlite3.IntegrityError:
        # The other party opened it in the meantime.
        get_db().rollback()
        existing = messages_dao.find_conversation(actor_id, other_id, request_id)
        if existing is None:
            raise
        return existing


@wraps_storage_errors
def send_message(conversation_id: int, sender_id: int, content: str) -> Message:
    """Post a message and notify the conversation channel."""

    conversation = _conversation_for_participant(conversation_id, sender_id)
    content = (content or "").strip()
    limit = current_app.config.get("MESSAGE_MAX_LENGTH", 2000)
    if not content:
        raise ValidationError("empty_message", "Messages cannot be empty.")
    if len(content) > limit:
        raise ValidationError("message_too_long", f"Messages are limited to {limit} characters.")

    with atomic(get_db()) as db:
        message_id = messages_dao.post_message(db, conversation.conversation_id, sender_id, content)
    message = messages_dao.get_message_by_id(message_id)
    events.publish([f"conversation:{conversation_id}"], message_event(message))
    return message


@wraps_storage_errors
def list_messages(
    conversation_id: int,
    actor_id: int,
    after_id: Optional[int] = None,
    limit: int = 50,
) -> list[Message]:
    """Messages in ascending order; ``after_id`` returns only newer ones."""

    _conversation_for_participant(conversation_id, actor_id)
    return messages_dao.get_messages(conversation_id, after_id=after_id, limit=limit)


@wraps_storage_errors
def mark_read(conversation_id: int, actor_id: int) -> int:
    _conversation_for_participant(conversation_id, actor_id)
    return messages_dao.mark_read(conversation_id, actor_id)


@wraps_storage_errors
def list_conversations(user_id: int) -> list[dict]:
    rows = messages_dao.list_conversations_for_user(user_id)
    for row in rows:
        conversation = row["conversation"]
        row["last_message"] = messages_dao.get_last_message(conversation.conversation_id)
        row["other_user_id"] = (conversation.participants - {user_id}).pop()
    return rows


@wraps_storage_errors
def unread_count(user_id: int) -> int:
    return messages_dao.count_unread_for_user(user_id)


@wraps_storage_errors
def notification_counts(user_id: int) -> dict:
    """Badge counts a client re-fetches on (re)connect."""

    return {
        "unread_messages": messages_dao.count_unread_for_user(user_id),
        "pending_requests": requests_dao.count_pending_for_owner(user_id),
    }
