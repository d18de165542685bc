"""Profiles and tier standing."""

from __future__ import annotations

from flask import Blueprint, abort, jsonify
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import StringField, SubmitField
from wtforms.validators import Length, Optional, URL

from ..data_access import users_dao
from ..models.entities import ItemTier, UserTier
from ..services.tiers import (
    ITEM_TIER_INFO,
    ITEM_TIER_THRESHOLDS,
    USER_TIER_BENEFITS,
    USER_TIER_THRESHOLDS,
    required_user_tier,
    tier_progress,
)
from . import serializers

bp = Blueprint("users", __name__, url_prefix="/users")


class ProfileForm(FlaskForm):
    name = StringField("Full Name", validators=[Optional(), Length(max=120)])
    avatar_url = StringField("Avatar URL", validators=[Optional(), URL(), Length(max=500)])
    submit = SubmitField("Save profile")


@bp.route("/tiers")
def tiers():
    """Describe every user and item tier."""

    return jsonify(
        {
            "user_tiers": [
                {"tier": tier.value, "threshold": USER_TIER_THRESHOLDS[tier], **USER_TIER_BENEFITS[tier]}
                for tier in UserTier
            ],
            "item_tiers": [
                {
                    "tier": tier.value,
                    "threshold": ITEM_TIER_THRESHOLDS[tier],
                    "required_user_tier": required_user_tier(tier).value,
                    **ITEM_TIER_INFO[tier],
                }
                for tier in ItemTier
            ],
        }
    )


@bp.route("/me/tier")
@login_required
def my_tier():
    return jsonify(serializers.tier_progress(tier_progress(current_user.items_lent)))


@bp.route("/me", methods=["POST"])
@login_required
def edit_profile():
    form = ProfileForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400
    users_dao.update_profile(
        current_user.user_id,
        name=form.name.data or None,
        avatar_url=form.avatar_url.data or None,
    )
    return jsonify({"user": serializers.user_private(users_dao.get_user_by_id(current_user.user_id))})


@bp.route("/<int:user_id>")
def profile(user_id: int):
    """Public profile with tier progress and rating aggregate."""

    user = users_dao.get_user_by_id(user_id)
    if not user or not user.is_active:
        abort(404)
    return jsonify(
        {
            "user": serializers.user_public(user),
            "tier_progress": serializers.tier_progress(tier_progress(user.items_lent)),
        }
    )
