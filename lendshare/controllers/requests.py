"""Borrow request workflow blueprint."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import DateField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length

from ..models.entities import RequestStatus
from ..services import borrowing
from . import serializers

bp = Blueprint("requests", __name__, url_prefix="/requests")


class BorrowRequestForm(FlaskForm):
    """Form to ask an owner for an item."""

    start_date = DateField(
        "Start",
        format="%Y-%m-%d",
        validators=[InputRequired(message="Please provide a start date.")],
    )
    end_date = DateField(
        "End",
        format="%Y-%m-%d",
        validators=[InputRequired(message="Please provide an end date.")],
    )
    message = TextAreaField("Message to the owner", validators=[Length(max=borrowing.MESSAGE_MAX_LENGTH)])
    submit = SubmitField("Request to borrow")


def _request_payload(borrow_request) -> dict:
    return serializers.borrow_request(
        borrow_request, borrowing.allowed_events(borrow_request, current_user.user_id)
    )


def _outcome_response(outcome: borrowing.TransitionOutcome, done: str, already: str):
    return jsonify(
        {
            "message": done if outcome.changed else already,
            "changed": outcome.changed,
            "request": _request_payload(outcome.request),
        }
    )


@bp.route("/create/<int:item_id>", methods=["POST"])
@login_required
def create(item_id: int):
    """Create a borrow request for an item."""

    form = BorrowRequestForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    borrow_request = borrowing.create_request(
        current_user.user_id,
        item_id,
        form.start_date.data,
        form.end_date.data,
        form.message.data,
    )
    return (
        jsonify(
            {
                "message": "Request sent. The owner will review it shortly.",
                "request": _request_payload(borrow_request),
            }
        ),
        201,
    )


@bp.route("/mine")
@login_required
def my_requests():
    """Requests the current user has sent."""

    outgoing = borrowing.list_outgoing(current_user.user_id)
    return jsonify({"requests": [_request_payload(item) for item in outgoing]})


@bp.route("/incoming")
@login_required
def incoming():
    """Requests for the current user's items, optionally filtered by ``status``."""

    raw_status = (request.args.get("status") or "").strip().lower()
    status = RequestStatus(raw_status) if raw_status in {s.value for s in RequestStatus} else None
    received = borrowing.list_incoming(current_user.user_id, status)
    return jsonify({"requests": [_request_payload(item) for item in received]})


@bp.route("/<int:request_id>")
@login_required
def detail(request_id: int):
    borrow_request = borrowing.get_request_for_party(request_id, current_user.user_id)
    return jsonify({"request": _request_payload(borrow_request)})


@bp.route("/<int:request_id>/approve", methods=["POST"])
@login_required
def approve(request_id: int):
    """Approve a pending request."""

    outcome = borrowing.approve_request(request_id, current_user.user_id)
    return _outcome_response(outcome, "Request approved.", "This request was already approved.")


@bp.route("/<int:request_id>/reject", methods=["POST"])
@login_required
def reject(request_id: int):
    """Reject a pending request."""

    outcome = borrowing.reject_request(request_id, current_user.user_id)
    return _outcome_response(outcome, "Request rejected.", "This request was already rejected.")


@bp.route("/<int:request_id>/complete", methods=["POST"])
@login_required
def complete(request_id: int):
    """Mark an approved request as completed."""

    outcome = borrowing.complete_request(request_id, current_user.user_id)
    return _outcome_response(
        outcome,
        "Request marked as completed. You can now rate each other.",
        "This request was already completed.",
    )
