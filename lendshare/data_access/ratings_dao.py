"Data access helpers for ratings between request parties."

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models.entities import Rating, RatingType
from .db import get_db, query_all, query_one


def _row_to_rating(row) -> Rating:
    return Rating(
        rating_id=row["rating_id"],
        request_id=row["request_id"],
        rater_id=row["rater_id"],
        rated_user_id=row["rated_user_id"],
        score=row["score"],
        review=row["review"],
        rating_type=RatingType(row["rating_type"]),
        created_at=datetime.fromisoformat(str(row["created_at"]).replace(" ", "T")),
        updated_at=datetime.fromisoformat(str(row["updated_at"]).replace(" ", "T")),
    )


def insert_rating(
    db,
    request_id: int,
    rater_id: int,
    rated_user_id: int,
    score: int,
    review: Optional[str],
    rating_type: RatingType,
) -> int:
    """Insert a rating on the caller's transaction and return its id.

    Raises ``sqlite3.IntegrityError`` when the rater already rated the request.
    """

    cursor = db.execute(
        """
        INSERT INTO ratings (request_id, rater_id, rated_user_id, score, review, rating_type)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (request_id, rater_id, rated_user_id, score, review, rating_type.value),
    )
    return cursor.lastrowid


def update_rating(db, rating_id: int, score: int, review: Optional[str]) -> None:
    db.execute(
        """
        UPDATE ratings
        SET score = ?, review = ?, updated_at = CURRENT_TIMESTAMP
        WHERE rating_id = ?
        """,
        (score, review, rating_id),
    )


def get_rating_by_id(rating_id: int, connection=None) -> Rating | None:
    """Fetch a rating by primary key."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM ratings WHERE rating_id = ?",
        (rating_id,),
    )
    return _row_to_rating(row) if row else None


def rating_exists(request_id: int, rater_id: int) -> bool:
    """Return True when the rater already rated the request."""

    db = get_db()
    row = query_one(
        db,
        "SELECT 1 FROM ratings WHERE request_id = ? AND rater_id = ?",
        (request_id, rater_id),
    )
    return row is not None


def list_ratings_received(user_id: int) -> list[Rating]:
    """Ratings where the user is the rated party, newest first."""

    db = get_db()
    rows = query_all(
        db,
        """
        SELECT * FROM ratings
        WHERE rated_user_id = ?
        ORDER BY created_at DESC, rating_id DESC
        """,
        (user_id,),
    )
    return [_row_to_rating(row) for row in rows]


def list_ratings_given(user_id: int) -> list[Rating]:
    db = get_db()
    rows = query_all(
        db,
        """
        SELECT * FROM ratings
        WHERE rater_id = ?
        ORDER BY created_at DESC, rating_id DESC
        """,
        (user_id,),
    )
    return [_row_to_rating(row) for row in rows]


def list_ratings_for_request(request_id: int) -> list[Rating]:
    db = get_db()
    rows = query_all(
        db,
        "SELECT * FROM ratings WHERE request_id = ? ORDER BY created_at ASC, rating_id ASC",
        (request_id,),
    )
    return [_row_to_rating(row) for row in rows]


def count_ratings_for_request(request_id: int) -> int:
    db = get_db()
    row = query_one(
        db,
        "SELECT COUNT(DISTINCT rater_id) AS total FROM ratings WHERE request_id = ?",
        (request_id,),
    )
    return row["total"] if row else 0


def stats_for_user(user_id: int) -> Optional[tuple[float, int]]:
    """Return the cached ``(average_rating, total_ratings)`` or None for an unknown user."""

    db = get_db()
    row = query_one(
        db,
        "SELECT average_rating, total_ratings FROM users WHERE user_id = ?",
        (user_id,),
    )
    if row is None:
        return None
    return float(row["average_rating"] or 0), int(row["total_ratings"] or 0)
