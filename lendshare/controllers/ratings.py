"""Ratings blueprint for feedback between request parties."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import HiddenField, IntegerField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length, NumberRange

from ..services import ratings
from ..services.borrowing import get_request_for_party
from . import serializers

bp = Blueprint("ratings", __name__, url_prefix="/ratings")


class RatingForm(FlaskForm):
    """Star rating plus an optional short review."""

    score = IntegerField(
        "Rating",
        validators=[InputRequired(), NumberRange(min=1, max=5, message="Choose between 1 and 5 stars.")],
    )
    review = TextAreaField("Review", validators=[Length(max=500)])
    rating_type = HiddenField()
    submit = SubmitField("Submit rating")


@bp.route("/<int:request_id>", methods=["POST"])
@login_required
def submit(request_id: int):
    """Rate the other party of a completed request."""

    form = RatingForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    borrow_request = get_request_for_party(request_id, current_user.user_id)
    rating = ratings.submit_rating(
        request_id=request_id,
        rater_id=current_user.user_id,
        rated_user_id=borrow_request.counterparty_of(current_user.user_id),
        score=form.score.data,
        review=form.review.data,
        rating_type_hint=form.rating_type.data or None,
    )
    return jsonify({"message": "Thank you for your rating!", "rating": serializers.rating(rating)}), 201


@bp.route("/<int:rating_id>/edit", methods=["POST"])
@login_required
def edit(rating_id: int):
    form = RatingForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400
    rating = ratings.update_rating(rating_id, current_user.user_id, form.score.data, form.review.data)
    return jsonify({"message": "Rating updated.", "rating": serializers.rating(rating)})


@bp.route("/users/<int:user_id>")
def received(user_id: int):
    """Ratings a user has received along with their aggregate."""

    stats = ratings.rating_stats_of(user_id)
    return jsonify(
        {
            "average_rating": stats.average_rating,
            "total_ratings": stats.total_ratings,
            "ratings": [serializers.rating(r) for r in ratings.list_ratings_received(user_id)],
        }
    )


@bp.route("/given")
@login_required
def given():
    return jsonify({"ratings": [serializers.rating(r) for r in ratings.list_ratings_given(current_user.user_id)]})


@bp.route("/pending")
@login_required
def pending():
    """Completed requests still waiting for the current user's rating."""

    return jsonify(
        {
            "pending": [
                {
                    "request_id": entry.request_id,
                    "other_user_id": entry.other_user_id,
                    "other_user_name": entry.other_user_name,
                    "item_title": entry.item_title,
                    "completed_at": entry.completed_at,
                }
                for entry in ratings.pending_ratings(current_user.user_id)
            ]
        }
    )


@bp.route("/requests/<int:request_id>")
@login_required
def for_request(request_id: int):
    """Ratings left on a request plus whether the current user may still rate."""

    request_ratings = ratings.list_ratings_for_request(request_id, current_user.user_id)
    return jsonify(
        {
            "ratings": [serializers.rating(r) for r in request_ratings],
            "has_rated": ratings.has_rated(request_id, current_user.user_id),
            "both_parties_rated": ratings.both_parties_rated(request_id),
        }
    )
