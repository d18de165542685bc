"""Deterministic seed data for LendShare."""

from __future__ import annotations

from datetime import date, timedelta

from ..services.tiers import item_tier_of, user_tier_of
from .db import execute, get_db, query_one
from .users_dao import hash_password

SEED_PASSWORD = "Password123!"


def seed() -> None:
    """Populate the database with representative demo records."""

    db = get_db()
    password_hash = hash_password(SEED_PASSWORD)

    # (name, email, items_lent, reputation_score)
    users = [
        ("Olivia Owner", "olivia@lendshare.org", 4, 40),
        ("Bob Borrower", "bob@lendshare.org", 0, 0),
        ("Sam Silver", "sam@lendshare.org", 5, 50),
        ("Gina Gold", "gina@lendshare.org", 20, 200),
        ("Paula Platinum", "paula@lendshare.org", 55, 550),
    ]

    for name, email, items_lent, reputation in users:
        execute(
            db,
            """
            INSERT OR IGNORE INTO users (name, email, password_hash, tier, items_lent, reputation_score, is_active)
            VALUES (?, ?, ?, ?, ?, ?, 1)
            """,
            (name, email, password_hash, user_tier_of(items_lent).value, items_lent, reputation),
        )

    def _user_id(email: str) -> int:
        row = query_one(db, "SELECT user_id FROM users WHERE email = ?", (email,))
        if not row:
            raise ValueError(f"Expected seed user {email} to exist.")
        return row["user_id"]

    items = [
        {
            "owner_email": "olivia@lendshare.org",
            "title": "Cordless Drill",
            "description": "18V drill with two batteries and a bit set.",
            "category": "tools",
            "price": "45.00",
            "location": "Riverside",
            "available": True,
        },
        {
            "owner_email": "olivia@lendshare.org",
            "title": "Mirrorless Camera",
            "description": "Full-frame body with a 24-70mm lens.",
            "category": "electronics",
            "price": "650.00",
            "location": "Riverside",
            "available": True,
        },
        {
            "owner_email": "gina@lendshare.org",
            "title": "Four-Person Tent",
            "description": "Waterproof tent, sets up in ten minutes.",
            "category": "outdoor",
            "price": "150.00",
            "location": "Hillcrest",
            "available": True,
        },
        {
            "owner_email": "paula@lendshare.org",
            "title": "Electric Cargo Bike",
            "description": "Long-tail e-bike that carries two kids or a week of groceries.",
            "category": "sports",
            "price": "2500.00",
            "location": "Old Town",
            "available": True,
        },
        {
            "owner_email": "sam@lendshare.org",
            "title": "Stand Mixer",
            "description": "Five-quart mixer, currently out for repair.",
            "category": "home",
            "price": "80.00",
            "location": "Hillcrest",
            "available": False,
        },
    ]

    for item in items:
        execute(
            db,
            """
            INSERT OR IGNORE INTO items (
                owner_id, title, description, category, purchase_price, tier, is_available, location
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _user_id(item["owner_email"]),
                item["title"],
                item["description"],
                item["category"],
                item["price"],
                item_tier_of(float(item["price"])).value,
                int(item["available"]),
                item["location"],
            ),
        )

    def _item(title: str):
        row = query_one(db, "SELECT item_id, owner_id FROM items WHERE title = ?", (title,))
        if not row:
            raise ValueError(f"Expected seed item {title} to exist.")
        return row

    today = date.today()
    request_rows = [
        {
            "item": "Four-Person Tent",
            "borrower": "sam@lendshare.org",
            "start": today + timedelta(days=3),
            "end": today + timedelta(days=6),
            "status": "pending",
            "message": "Planning a weekend at the lake, would love to borrow it.",
        },
        {
            "item": "Cordless Drill",
            "borrower": "gina@lendshare.org",
            "start": today - timedelta(days=10),
            "end": today - timedelta(days=8),
            "status": "completed",
            "message": "Need it to hang some shelves.",
        },
    ]

    for row in request_rows:
        item = _item(row["item"])
        existing = query_one(
            db,
            "SELECT 1 FROM borrow_requests WHERE item_id = ? AND borrower_id = ? AND status = ?",
            (item["item_id"], _user_id(row["borrower"]), row["status"]),
        )
        if existing:
            continue
        execute(
            db,
            """
            INSERT INTO borrow_requests (
                item_id, borrower_id, owner_id, status, start_date, end_date, message
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item["item_id"],
                _user_id(row["borrower"]),
                item["owner_id"],
                row["status"],
                row["start"].isoformat(),
                row["end"].isoformat(),
                row["message"],
            ),
        )

    completed = query_one(
        db,
        """
        SELECT request_id, borrower_id, owner_id
        FROM borrow_requests
        WHERE status = 'completed'
        ORDER BY request_id ASC
        LIMIT 1
        """,
    )
    if completed:
        # Only the borrower has rated so far; the owner's rating is still pending.
        execute(
            db,
            """
            INSERT OR IGNORE INTO ratings (request_id, rater_id, rated_user_id, score, review, rating_type)
            VALUES (?, ?, ?, ?, ?, 'borrower_to_lender')
            """,
            (
                completed["request_id"],
                completed["borrower_id"],
                completed["owner_id"],
                5,
                "Drill was fully charged and Olivia was easy to coordinate with.",
            ),
        )
        execute(
            db,
            """
            UPDATE users
            SET average_rating = COALESCE((SELECT ROUND(AVG(score), 2) FROM ratings WHERE rated_user_id = ?), 0),
                total_ratings = (SELECT COUNT(*) FROM ratings WHERE rated_user_id = ?)
            WHERE user_id = ?
            """,
            (completed["owner_id"], completed["owner_id"], completed["owner_id"]),
        )

    pending = query_one(
        db,
        "SELECT request_id, borrower_id, owner_id FROM borrow_requests WHERE status = 'pending' LIMIT 1",
    )
    if pending:
        first, second = sorted((pending["borrower_id"], pending["owner_id"]))
        conversation = query_one(
            db,
            """
            SELECT conversation_id FROM conversations
            WHERE participant_1_id = ? AND participant_2_id = ? AND request_id = ?
            """,
            (first, second, pending["request_id"]),
        )
        if conversation:
            conversation_id = conversation["conversation_id"]
        else:
            conversation_id = execute(
                db,
                """
                INSERT INTO conversations (participant_1_id, participant_2_id, request_id)
                VALUES (?, ?, ?)
                """,
                (first, second, pending["request_id"]),
            ).lastrowid
            execute(
                db,
                "INSERT INTO messages (conversation_id, sender_id, content) VALUES (?, ?, ?)",
                (conversation_id, pending["borrower_id"], "Hi! Is the tent still waterproof?"),
            )
            execute(
                db,
                "INSERT INTO messages (conversation_id, sender_id, content) VALUES (?, ?, ?)",
                (conversation_id, pending["owner_id"], "Yes, re-proofed it last month."),
            )


if __name__ == "__main__":
    from ..app import create_app

    app = create_app()
    with app.app_context():
        seed()
    print("Seed data applied.")
