"""Messaging between borrowers and owners."""

from __future__ import annotations

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length

from ..services import messaging
from . import serializers

bp = Blueprint("messaging", __name__, url_prefix="/messages")


class MessageForm(FlaskForm):
    """Form for sending a message."""

    content = TextAreaField("Message", validators=[InputRequired(), Length(max=2000)])
    submit = SubmitField("Send")


@bp.route("/")
@login_required
def inbox():
    """List conversations for the current user."""

    rows = messaging.list_conversations(current_user.user_id)
    return jsonify(
        {
            "conversations": [
                {
                    **serializers.conversation(row["conversation"]),
                    "other_user_id": row["other_user_id"],
                    "message_count": row["message_count"],
                    "unread_count": row["unread_count"],
                    "last_message": serializers.message(row["last_message"]) if row["last_message"] else None,
                }
                for row in rows
            ]
        }
    )


@bp.route("/notifications")
@login_required
def notifications():
    """Badge counts; clients call this after (re)connecting."""

    return jsonify(messaging.notification_counts(current_user.user_id))


@bp.route("/start/<int:request_id>", methods=["POST"])
@login_required
def start(request_id: int):
    """Open the conversation for a borrow request."""

    conversation = messaging.get_or_create_conversation(current_user.user_id, request_id)
    return jsonify({"conversation": serializers.conversation(conversation)})


@bp.route("/<int:conversation_id>", methods=["GET", "POST"])
@login_required
def conversation(conversation_id: int):
    """Return messages (marking them read) or post a reply."""

    if request.method == "POST":
        form = MessageForm()
        if not form.validate_on_submit():
            return jsonify(serializers.form_errors(form)), 400
        message = messaging.send_message(conversation_id, current_user.user_id, form.content.data)
        return jsonify({"message": serializers.message(message)}), 201

    messages = messaging.list_messages(conversation_id, current_user.user_id)
    messaging.mark_read(conversation_id, current_user.user_id)
    return jsonify({"messages": [serializers.message(m) for m in messages]})


@bp.route("/<int:conversation_id>/since")
@login_required
def since(conversation_id: int):
    """Return messages newer than ``after`` for polling clients."""

    after = request.args.get("after", type=int)
    if after is None:
        abort(400)
    messages = messaging.list_messages(conversation_id, current_user.user_id, after_id=after)
    return jsonify({"messages": [serializers.message(m) for m in messages]})
