"""Data access helpers for borrow requests."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from ..models.entities import OUTSTANDING_STATUSES, BorrowRequest, RequestStatus
from .db import execute, get_db, query_all, query_one


def _row_to_request(row) -> BorrowRequest:
    def _parse(dt: str) -> datetime:
        return datetime.fromisoformat(str(dt).replace(" ", "T"))

    return BorrowRequest(
        request_id=row["request_id"],
        item_id=row["item_id"],
        borrower_id=row["borrower_id"],
        owner_id=row["owner_id"],
        status=RequestStatus(row["status"]),
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
        message=row["message"],
        created_at=_parse(row["created_at"]),
        updated_at=_parse(row["updated_at"]),
    )


def _date_value(value: Union[str, date]) -> str:
    return value.isoformat() if isinstance(value, date) else value


def create_request(
    item_id: int,
    borrower_id: int,
    owner_id: int,
    start_date: Union[str, date],
    end_date: Union[str, date],
    message: Optional[str] = None,
    connection=None,
) -> BorrowRequest:
    """Insert a new pending request. Guards live in the borrowing service.

    With ``connection`` the insert joins the caller's transaction and is not
    committed here.
    """

    db = connection or get_db()
    params = (
        item_id,
        borrower_id,
        owner_id,
        RequestStatus.PENDING.value,
        _date_value(start_date),
        _date_value(end_date),
        message,
    )
    sql = """
        INSERT INTO borrow_requests (
            item_id, borrower_id, owner_id, status, start_date, end_date, message
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """
    cursor = db.execute(sql, params) if connection is not None else execute(db, sql, params)
    return get_request_by_id(cursor.lastrowid, connection=db)


def get_request_by_id(request_id: int, connection=None) -> BorrowRequest | None:
    """Fetch a specific request."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM borrow_requests WHERE request_id = ?",
        (request_id,),
    )
    return _row_to_request(row) if row else None


def transition_status(
    db,
    request_id: int,
    expected: RequestStatus,
    target: RequestStatus,
) -> bool:
    """Move a request to ``target`` only if it is still at ``expected``.

    Does not commit. Returns False when another writer changed the status first.
    """

    cursor = db.execute(
        """
        UPDATE borrow_requests
        SET status = ?, updated_at = CURRENT_TIMESTAMP
        WHERE request_id = ? AND status = ?
        """,
        (target.value, request_id, expected.value),
    )
    return cursor.rowcount == 1


def has_outstanding_request(item_id: int, borrower_id: int, connection=None) -> bool:
    """Return True when the borrower already has a pending or approved request for the item."""

    db = connection or get_db()
    placeholders = ", ".join("?" for _ in OUTSTANDING_STATUSES)
    row = query_one(
        db,
        f"""
        SELECT 1 FROM borrow_requests
        WHERE item_id = ? AND borrower_id = ? AND status IN ({placeholders})
        """,
        [item_id, borrower_id, *(status.value for status in OUTSTANDING_STATUSES)],
    )
    return row is not None


def list_requests_for_borrower(borrower_id: int) -> list[BorrowRequest]:
    """Return requests the user sent, newest first."""

    db = get_db()
    rows = query_all(
        db,
        """
        SELECT * FROM borrow_requests
        WHERE borrower_id = ?
        ORDER BY created_at DESC, request_id DESC
        """,
        (borrower_id,),
    )
    return [_row_to_request(row) for row in rows]


def list_requests_for_owner(owner_id: int, status: Optional[RequestStatus] = None) -> list[BorrowRequest]:
    """Requests received on the owner's items, optionally filtered by status."""

    db = get_db()
    query = "SELECT * FROM borrow_requests WHERE owner_id = ?"
    params: list = [owner_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    query += " ORDER BY created_at DESC, request_id DESC"
    rows = query_all(db, query, params)
    return [_row_to_request(row) for row in rows]


def count_pending_for_owner(owner_id: int) -> int:
    db = get_db()
    row = query_one(
        db,
        "SELECT COUNT(*) AS total FROM borrow_requests WHERE owner_id = ? AND status = 'pending'",
        (owner_id,),
    )
    return row["total"] if row else 0


def list_completed_for_party(user_id: int) -> list[BorrowRequest]:
    """Completed requests where the user was borrower or owner."""

    db = get_db()
    rows = query_all(
        db,
        """
        SELECT * FROM borrow_requests
        WHERE status = 'completed' AND (borrower_id = ? OR owner_id = ?)
        ORDER BY updated_at DESC, request_id DESC
        """,
        (user_id, user_id),
    )
    return [_row_to_request(row) for row in rows]
