"""Data access helpers for request conversations and their messages."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models.entities import Conversation, Message
from .db import execute, get_db, query_all, query_one


def _parse(value) -> datetime:
    return datetime.fromisoformat(str(value).replace(" ", "T"))


def _row_to_message(row) -> Message:
    return Message(
        message_id=row["message_id"],
        conversation_id=row["conversation_id"],
        sender_id=row["sender_id"],
        content=row["content"],
        is_read=bool(row["is_read"]),
        created_at=_parse(row["created_at"]),
    )


def _row_to_conversation(row) -> Conversation:
    return Conversation(
        conversation_id=row["conversation_id"],
        participant_1_id=row["participant_1_id"],
        participant_2_id=row["participant_2_id"],
        request_id=row["request_id"],
        last_message_at=_parse(row["last_message_at"]),
        created_at=_parse(row["created_at"]),
    )


def _ordered_pair(user_a: int, user_b: int) -> tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def find_conversation(user_a: int, user_b: int, request_id: Optional[int]) -> Conversation | None:
    """Look up the conversation between two users about a request."""

    first, second = _ordered_pair(user_a, user_b)
    db = get_db()
    row = query_one(
        db,
        """
        SELECT * FROM conversations
        WHERE participant_1_id = ? AND participant_2_id = ? AND request_id IS ?
        """,
        (first, second, request_id),
    )
    return _row_to_conversation(row) if row else None


def create_conversation(user_a: int, user_b: int, request_id: Optional[int]) -> Conversation:
    """Create a new conversation; the store keeps the lower user id first."""

    first, second = _ordered_pair(user_a, user_b)
    db = get_db()
    cursor = execute(
        db,
        """
        INSERT INTO conversations (participant_1_id, participant_2_id, request_id)
        VALUES (?, ?, ?)
        """,
        (first, second, request_id),
    )
    return get_conversation(cursor.lastrowid, connection=db)


def get_conversation(conversation_id: int, connection=None) -> Conversation | None:
    """Fetch a single conversation record."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM conversations WHERE conversation_id = ?",
        (conversation_id,),
    )
    return _row_to_conversation(row) if row else None


def post_message(db, conversation_id: int, sender_id: int, content: str) -> int:
    """Insert a message and bump the conversation activity (no commit)."""

    cursor = db.execute(
        """
        INSERT INTO messages (conversation_id, sender_id, content)
        VALUES (?, ?, ?)
        """,
        (conversation_id, sender_id, content),
    )
    db.execute(
        "UPDATE conversations SET last_message_at = CURRENT_TIMESTAMP WHERE conversation_id = ?",
        (conversation_id,),
    )
    return cursor.lastrowid


def get_message_by_id(message_id: int, connection=None) -> Message | None:
    """Fetch a single message."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM messages WHERE message_id = ?",
        (message_id,),
    )
    return _row_to_message(row) if row else None


def get_messages(conversation_id: int, after_id: Optional[int] = None, limit: int = 50) -> list[Message]:
    """Return messages in ascending order, optionally only those after ``after_id``."""

    db = get_db()
    query = "SELECT * FROM messages WHERE conversation_id = ?"
    params: list = [conversation_id]
    if after_id is not None:
        query += " AND message_id > ?"
        params.append(after_id)
    query += " ORDER BY message_id ASC LIMIT ?"
    params.append(limit)
    rows = query_all(db, query, params)
    return [_row_to_message(row) for row in rows]


def get_last_message(conversation_id: int) -> Message | None:
    """Return the most recent message in a conversation."""

    db = get_db()
    row = query_one(
        db,
        """
        SELECT * FROM messages
        WHERE conversation_id = ?
        ORDER BY message_id DESC
        LIMIT 1
        """,
        (conversation_id,),
    )
    return _row_to_message(row) if row else None


def mark_read(conversation_id: int, reader_id: int) -> int:
    """Mark messages from the other participant as read; returns rows touched."""

    db = get_db()
    cursor = execute(
        db,
        """
        UPDATE messages
        SET is_read = 1
        WHERE conversation_id = ? AND sender_id != ? AND is_read = 0
        """,
        (conversation_id, reader_id),
    )
    return cursor.rowcount


def count_unread_for_user(user_id: int) -> int:
    """Unread messages addressed to the user across all conversations."""

    db = get_db()
    row = query_one(
        db,
        """
        SELECT COUNT(*) AS total
        FROM messages m
        JOIN conversations c ON c.conversation_id = m.conversation_id
        WHERE (c.participant_1_id = ? OR c.participant_2_id = ?)
          AND m.sender_id != ?
          AND m.is_read = 0
        """,
        (user_id, user_id, user_id),
    )
    return row["total"] if row else 0


def list_conversations_for_user(user_id: int) -> list[dict]:
    """Return conversations the user participates in ordered by last activity."""

    db = get_db()
    rows = query_all(
        db,
        """
        SELECT
            c.*,
            COUNT(m.message_id) AS message_count,
            SUM(CASE WHEN m.sender_id != ? AND m.is_read = 0 THEN 1 ELSE 0 END) AS unread_count
        FROM conversations c
        LEFT JOIN messages m ON m.conversation_id = c.conversation_id
        WHERE c.participant_1_id = ? OR c.participant_2_id = ?
        GROUP BY c.conversation_id
        ORDER BY c.last_message_at DESC, c.conversation_id DESC
        """,
        (user_id, user_id, user_id),
    )
    return [
        {
            "conversation": _row_to_conversation(row),
            "message_count": row["message_count"],
            "unread_count": row["unread_count"] or 0,
        }
        for row in rows
    ]
