"""Data access helpers for lendable items."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from ..models.entities import Item, ItemTier
from ..services.errors import StateConflictError, ValidationError
from ..services.tiers import item_price_band, item_tier_of
from .db import execute, get_db, query_all, query_one

Price = Union[Decimal, int, float, str]


def _row_to_item(row) -> Item:
    return Item(
        item_id=row["item_id"],
        owner_id=row["owner_id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        purchase_price=Decimal(str(row["purchase_price"])),
        image_url=row["image_url"],
        is_available=bool(row["is_available"]),
        location=row["location"],
        created_at=datetime.fromisoformat(str(row["created_at"]).replace(" ", "T")),
        updated_at=datetime.fromisoformat(str(row["updated_at"]).replace(" ", "T")),
    )


def _normalize_price(value: Price) -> Decimal:
    price = Decimal(str(value))
    if not price.is_finite():
        raise ValidationError("invalid_price", "The purchase price must be a finite amount.")
    # Rounding could carry a price across a tier threshold.
    if price != price.quantize(Decimal("0.01")):
        raise ValidationError("invalid_price", "The purchase price can have at most two decimal places.")
    return price.quantize(Decimal("0.01"))


def _tier_for(price: Decimal) -> ItemTier:
    try:
        return item_tier_of(price)
    except ValueError as exc:
        raise ValidationError("invalid_price", str(exc)) from exc


def create_item(
    owner_id: int,
    title: str,
    category: str,
    purchase_price: Price,
    location: str,
    description: str = "",
    image_url: Optional[str] = None,
    is_available: bool = True,
) -> Item:
    """Insert a new item; the cached tier column follows the price."""

    price = _normalize_price(purchase_price)
    db = get_db()
    cursor = execute(
        db,
        """
        INSERT INTO items (
            owner_id, title, description, category, purchase_price,
            tier, image_url, is_available, location
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            owner_id,
            title,
            description,
            category,
            str(price),
            _tier_for(price).value,
            image_url,
            int(is_available),
            location,
        ),
    )
    return get_item_by_id(cursor.lastrowid, connection=db)


def update_item(item_id: int, **fields) -> None:
    """Update mutable fields for an item."""

    allowed = {
        "title",
        "description",
        "category",
        "purchase_price",
        "image_url",
        "is_available",
        "location",
    }
    updates = {key: value for key, value in fields.items() if key in allowed}
    if not updates:
        return

    if "purchase_price" in updates:
        price = _normalize_price(updates["purchase_price"])
        updates["purchase_price"] = str(price)
        updates["tier"] = _tier_for(price).value
    if "is_available" in updates:
        updates["is_available"] = int(bool(updates["is_available"]))

    columns = ", ".join(f"{key} = ?" for key in updates.keys())
    params = list(updates.values()) + [item_id]
    db = get_db()
    execute(
        db,
        f"UPDATE items SET {columns}, updated_at = CURRENT_TIMESTAMP WHERE item_id = ?",
        params,
    )


_HAS_REQUESTS_MESSAGE = "This item has borrow requests on record. Mark it unavailable instead of deleting it."


def delete_item(item_id: int) -> None:
    """Remove an item that has never been requested.

    Requests and their ratings are history; owners hide such items instead.
    """

    db = get_db()
    row = query_one(
        db,
        "SELECT COUNT(*) AS total FROM borrow_requests WHERE item_id = ?",
        (item_id,),
    )
    if row["total"]:
        raise StateConflictError("item_has_requests", _HAS_REQUESTS_MESSAGE)
    try:
        execute(db, "DELETE FROM items WHERE item_id = ?", (item_id,))
    except sqlite3.IntegrityError as exc:
        db.rollback()
        raise StateConflictError("item_has_requests", _HAS_REQUESTS_MESSAGE) from exc


def get_item_by_id(item_id: int, connection=None) -> Item | None:
    """Fetch a single item."""

    db = connection or get_db()
    row = query_one(db, "SELECT * FROM items WHERE item_id = ?", (item_id,))
    return _row_to_item(row) if row else None


def list_items_for_owner(owner_id: int) -> list[Item]:
    """Return all items listed by a specific owner."""

    db = get_db()
    rows = query_all(
        db,
        """
        SELECT * FROM items
        WHERE owner_id = ?
        ORDER BY created_at DESC, item_id DESC
        """,
        (owner_id,),
    )
    return [_row_to_item(row) for row in rows]


def search_items(
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    tier: Optional[ItemTier] = None,
    location: Optional[str] = None,
    available_only: bool = True,
    exclude_owner_id: Optional[int] = None,
) -> list[Item]:
    """Filtered catalog search.

    The tier filter works on the price band rather than the cached tier column.
    """

    db = get_db()
    query = "SELECT * FROM items WHERE 1 = 1"
    params: list = []
    if available_only:
        query += " AND is_available = 1"
    if keyword:
        query += " AND (title LIKE ? OR description LIKE ?)"
        like_term = f"%{keyword}%"
        params.extend([like_term, like_term])
    if category:
        query += " AND category = ?"
        params.append(category)
    if tier:
        low, high = item_price_band(tier)
        query += " AND CAST(purchase_price AS REAL) >= ?"
        params.append(low)
        if high is not None:
            query += " AND CAST(purchase_price AS REAL) < ?"
            params.append(high)
    if location:
        query += " AND location LIKE ?"
        params.append(f"%{location}%")
    if exclude_owner_id is not None:
        query += " AND owner_id != ?"
        params.append(exclude_owner_id)
    query += " ORDER BY created_at DESC, item_id DESC"
    rows = query_all(db, query, params)
    return [_row_to_item(row) for row in rows]


def list_distinct_categories() -> list[str]:
    """Return categories that currently have available items."""

    db = get_db()
    rows = query_all(
        db,
        "SELECT DISTINCT category FROM items WHERE is_available = 1 ORDER BY category ASC",
    )
    return [row["category"] for row in rows if row["category"]]
