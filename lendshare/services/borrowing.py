"""Borrow request lifecycle.

A request is created ``pending`` by a borrower, approved or rejected by the
item owner, and completed by either party once approved. Allowed moves are
listed in :data:`TRANSITIONS`, keyed by ``(current status, event)``; adding a
new move (for example cancelling, or an ``active`` lending period) is a new
table entry.

Every status change is a conditional update that only applies while the row
still holds the status the transition was checked against, and completion
bumps the owner's lending counter in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from flask import current_app

from ..data_access import items_dao, requests_dao, users_dao
from ..data_access.db import atomic, get_db
from ..models.entities import BorrowRequest, RequestStatus, User
from . import events
from .errors import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    wraps_storage_errors,
)
from .tiers import can_borrow, required_user_tier

MESSAGE_MAX_LENGTH = 1000


class RequestEvent(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"


OWNER = "owner"
BORROWER = "borrower"


@dataclass(frozen=True)
class Transition:
    target: RequestStatus
    actors: frozenset[str]


TRANSITIONS: dict[tuple[RequestStatus, RequestEvent], Transition] = {
    (RequestStatus.PENDING, RequestEvent.APPROVE): Transition(RequestStatus.APPROVED, frozenset({OWNER})),
    (RequestStatus.PENDING, RequestEvent.REJECT): Transition(RequestStatus.REJECTED, frozenset({OWNER})),
    (RequestStatus.APPROVED, RequestEvent.COMPLETE): Transition(
        RequestStatus.COMPLETED, frozenset({OWNER, BORROWER})
    ),
}

# Position along the lifecycle, used to order change events for the same request.
_LIFECYCLE_STAGE = {
    RequestStatus.PENDING: 0,
    RequestStatus.APPROVED: 1,
    RequestStatus.ACTIVE: 2,
    RequestStatus.REJECTED: 3,
    RequestStatus.CANCELLED: 3,
    RequestStatus.COMPLETED: 3,
}


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a status change.

    ``changed`` is False when the request was already at the target status,
    for instance when two parties press "complete" at the same moment.
    """

    request: BorrowRequest
    changed: bool


def _target_of(event: RequestEvent) -> RequestStatus:
    for (_, table_event), transition in TRANSITIONS.items():
        if table_event is event:
            return transition.target
    raise ValueError(f"No transition defined for event {event!r}.")


def allowed_events(request: BorrowRequest, actor_id: int) -> list[RequestEvent]:
    """Events the actor may fire on the request right now."""

    role = request.role_of(actor_id)
    return [
        event
        for (status, event), transition in TRANSITIONS.items()
        if status is request.status and role in transition.actors
    ]


def _resolve_actor(actor_id: Optional[int]) -> User:
    if actor_id is None:
        raise AuthorizationError("unauthenticated", "Please sign in to continue.")
    actor = users_dao.get_user_by_id(actor_id)
    if actor is None or not actor.is_active:
        raise NotFoundError("user_not_found", "Your account could not be found.")
    return actor


def _as_date(value, label: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError("invalid_date", f"The {label} must be a date in YYYY-MM-DD format.") from exc


def _event_version(request: BorrowRequest) -> str:
    return f"{request.updated_at.isoformat()}#{_LIFECYCLE_STAGE[request.status]}"


def _publish_change(request: BorrowRequest) -> None:
    events.publish(
        [
            f"owner:{request.owner_id}",
            f"borrower:{request.borrower_id}",
            f"request:{request.request_id}",
        ],
        events.Event(
            entity_type="borrow_request",
            entity_id=request.request_id,
            payload={
                "request_id": request.request_id,
                "item_id": request.item_id,
                "status": request.status.value,
            },
            version=_event_version(request),
        ),
    )


@wraps_storage_errors
def create_request(
    actor_id: Optional[int],
    item_id: int,
    start_date,
    end_date,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Submit a borrow request for an item.

    Checks run in a fixed order and the first failure is raised: actor,
    item existence and availability, tier eligibility, date range, self-borrow,
    then (when enabled) an outstanding request for the same item.
    """

    borrower = _resolve_actor(actor_id)

    item = items_dao.get_item_by_id(item_id)
    if item is None:
        raise NotFoundError("item_not_found", "This item no longer exists.")
    if not item.is_available:
        raise StateConflictError("item_unavailable", "This item is not available for borrowing right now.")

    if not can_borrow(borrower.tier, item.tier):
        needed = required_user_tier(item.tier)
        current_app.logger.info(
            "Blocked request from user %s (%s) for %s item %s",
            borrower.user_id,
            borrower.tier.value,
            item.tier.value,
            item.item_id,
        )
        raise AuthorizationError(
            "tier_ineligible",
            f"{item.tier.value.title()} items require {needed.value.title()} tier or higher; "
            f"you are {borrower.tier.value.title()}.",
        )

    start = _as_date(start_date, "start date")
    end = _as_date(end_date, "end date")
    if start > end:
        raise ValidationError("invalid_date_range", "The end date cannot be before the start date.")

    if item.owner_id == borrower.user_id:
        raise AuthorizationError("self_borrow", "You cannot borrow your own item.")

    if message is not None:
        message = message.strip() or None
    if message and len(message) > MESSAGE_MAX_LENGTH:
        raise ValidationError(
            "message_too_long", f"The message to the owner is limited to {MESSAGE_MAX_LENGTH} characters."
        )

    enforce_single = current_app.config.get("ENFORCE_SINGLE_OUTSTANDING_REQUEST", True)
    with atomic(get_db(), immediate=True) as db:
        if enforce_single and requests_dao.has_outstanding_request(item.item_id, borrower.user_id, connection=db):
            raise StateConflictError(
                "duplicate_request", "You already have an open request for this item."
            )
        request = requests_dao.create_request(
            item_id=item.item_id,
            borrower_id=borrower.user_id,
            owner_id=item.owner_id,
            start_date=start,
            end_date=end,
            message=message,
            connection=db,
        )
    current_app.logger.info(
        "Request %s created by user %s for item %s", request.request_id, borrower.user_id, item.item_id
    )
    _publish_change(request)
    return request


@wraps_storage_errors
def apply_event(request_id: int, actor_id: Optional[int], event: RequestEvent) -> TransitionOutcome:
    """Fire ``event`` on a request on behalf of ``actor_id``."""

    event = RequestEvent(event)
    _resolve_actor(actor_id)
    request = requests_dao.get_request_by_id(request_id)
    if request is None:
        raise NotFoundError("request_not_found", "This borrow request does not exist.")

    role = request.role_of(actor_id)
    if role is None:
        raise AuthorizationError("not_a_party", "Only the borrower or the owner can act on this request.")

    target = _target_of(event)
    transition = TRANSITIONS.get((request.status, event))
    allowed_roles = transition.actors if transition else _roles_for(event)
    if role not in allowed_roles:
        raise AuthorizationError(
            "actor_not_allowed", f"The {role} cannot {event.value} this request."
        )

    if transition is None:
        if request.status is target:
            return TransitionOutcome(request, changed=False)
        raise StateConflictError(
            "invalid_transition",
            f"A {request.status.value} request cannot be {target.value}.",
        )

    changed = _commit_transition(request, transition)
    refreshed = requests_dao.get_request_by_id(request_id)
    if not changed:
        if refreshed.status is transition.target:
            return TransitionOutcome(refreshed, changed=False)
        raise StateConflictError(
            "invalid_transition",
            f"This request changed to {refreshed.status.value} before your action was applied.",
        )

    current_app.logger.info(
        "Request %s moved %s -> %s by user %s",
        request_id,
        request.status.value,
        transition.target.value,
        actor_id,
    )
    _publish_change(refreshed)
    return TransitionOutcome(refreshed, changed=True)


def _roles_for(event: RequestEvent) -> frozenset[str]:
    roles: set[str] = set()
    for (_, table_event), transition in TRANSITIONS.items():
        if table_event is event:
            roles |= transition.actors
    return frozenset(roles)


def _commit_transition(request: BorrowRequest, transition: Transition) -> bool:
    """Apply the conditional status update and its side effects atomically."""

    with atomic(get_db()) as db:
        applied = requests_dao.transition_status(db, request.request_id, request.status, transition.target)
        if applied and transition.target is RequestStatus.COMPLETED:
            users_dao.record_completed_lend(
                db,
                request.owner_id,
                current_app.config.get("REPUTATION_POINTS_PER_LEND", 10),
            )
    return applied


def approve_request(request_id: int, actor_id: Optional[int]) -> TransitionOutcome:
    return apply_event(request_id, actor_id, RequestEvent.APPROVE)


def reject_request(request_id: int, actor_id: Optional[int]) -> TransitionOutcome:
    return apply_event(request_id, actor_id, RequestEvent.REJECT)


def complete_request(request_id: int, actor_id: Optional[int]) -> TransitionOutcome:
    """Mark an approved request as completed; credits the owner exactly once."""

    return apply_event(request_id, actor_id, RequestEvent.COMPLETE)


@wraps_storage_errors
def get_request_for_party(request_id: int, actor_id: int) -> BorrowRequest:
    request = requests_dao.get_request_by_id(request_id)
    if request is None or request.role_of(actor_id) is None:
        raise NotFoundError("request_not_found", "This borrow request does not exist.")
    return request


@wraps_storage_errors
def list_outgoing(borrower_id: int) -> list[BorrowRequest]:
    return requests_dao.list_requests_for_borrower(borrower_id)


@wraps_storage_errors
def list_incoming(owner_id: int, status: Optional[RequestStatus] = None) -> list[BorrowRequest]:
    return requests_dao.list_requests_for_owner(owner_id, status)
