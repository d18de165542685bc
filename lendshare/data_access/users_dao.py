"""Data access helpers for the users table."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import bcrypt

from ..models.entities import User
from ..services.tiers import user_tier_of
from .db import execute, get_db, query_one


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace(" ", "T"))


def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        avatar_url=row["avatar_url"],
        items_lent=row["items_lent"],
        reputation_score=row["reputation_score"],
        average_rating=float(row["average_rating"] or 0),
        total_ratings=row["total_ratings"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        is_active=bool(row["is_active"]),
    )


def create_user(
    name: str,
    email: str,
    password_hash: str,
    avatar_url: Optional[str] = None,
    items_lent: int = 0,
    reputation_score: int = 0,
) -> User:
    """Insert a new user and return the persisted entity."""

    db = get_db()
    cursor = execute(
        db,
        """
        INSERT INTO users (name, email, password_hash, avatar_url, tier, items_lent, reputation_score)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            name,
            email,
            password_hash,
            avatar_url,
            user_tier_of(items_lent).value,
            items_lent,
            reputation_score,
        ),
    )
    return get_user_by_id(cursor.lastrowid, connection=db)


def get_user_by_id(user_id: int, connection=None) -> User | None:
    """Fetch a user by primary key."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM users WHERE user_id = ?",
        (user_id,),
    )
    return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> User | None:
    """Fetch a user by unique email address."""

    db = get_db()
    row = query_one(
        db,
        "SELECT * FROM users WHERE email = ?",
        (email,),
    )
    return _row_to_user(row) if row else None


def update_profile(user_id: int, name: Optional[str] = None, avatar_url: Optional[str] = None) -> None:
    """Update the editable profile fields."""

    db = get_db()
    execute(
        db,
        """
        UPDATE users
        SET name = COALESCE(?, name),
            avatar_url = COALESCE(?, avatar_url),
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = ?
        """,
        (name, avatar_url, user_id),
    )


def record_completed_lend(db, owner_id: int, reputation_points: int) -> None:
    """Bump the owner's lending counter and refresh the cached tier.

    Runs on the caller's connection without committing so it can share a
    transaction with the status change that triggered it.
    """

    db.execute(
        """
        UPDATE users
        SET items_lent = items_lent + 1,
            reputation_score = reputation_score + ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = ?
        """,
        (reputation_points, owner_id),
    )
    row = db.execute("SELECT items_lent FROM users WHERE user_id = ?", (owner_id,)).fetchone()
    db.execute(
        "UPDATE users SET tier = ? WHERE user_id = ?",
        (user_tier_of(row["items_lent"]).value, owner_id),
    )


def refresh_rating_stats(db, user_id: int) -> None:
    """Recompute the cached rating aggregate from the ratings table (no commit)."""

    db.execute(
        """
        UPDATE users
        SET average_rating = COALESCE(
                (SELECT ROUND(AVG(score), 2) FROM ratings WHERE rated_user_id = ?), 0),
            total_ratings = (SELECT COUNT(*) FROM ratings WHERE rated_user_id = ?),
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = ?
        """,
        (user_id, user_id, user_id),
    )


def deactivate_user(user_id: int) -> None:
    """Soft delete a user record."""

    db = get_db()
    execute(
        db,
        "UPDATE users SET is_active = 0 WHERE user_id = ?",
        (user_id,),
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(stored_hash: str, candidate: str) -> bool:
    """Compare a stored hash against a candidate password."""

    if not stored_hash:
        return False
    return bcrypt.checkpw(candidate.encode("utf-8"), stored_hash.encode("utf-8"))
