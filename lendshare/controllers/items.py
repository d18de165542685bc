"""Item listing and catalog routes."""

from __future__ import annotations

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from wtforms import BooleanField, DecimalField, SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length, NumberRange, Optional, URL

from ..data_access import items_dao
from ..models.entities import ITEM_CATEGORIES, ItemTier
from . import serializers

bp = Blueprint("items", __name__, url_prefix="/items")


class ItemForm(FlaskForm):
    """Form for listing and editing items."""

    title = StringField("Title", validators=[InputRequired(), Length(max=150)])
    description = TextAreaField("Description", validators=[Length(max=2000)])
    category = SelectField(
        "Category",
        choices=[(category, category.title()) for category in ITEM_CATEGORIES],
        validators=[InputRequired()],
    )
    purchase_price = DecimalField(
        "Purchase price",
        places=2,
        validators=[InputRequired(), NumberRange(min=0, message="Price cannot be negative.")],
    )
    location = StringField("Location", validators=[InputRequired(), Length(max=150)])
    image_url = StringField("Photo URL", validators=[Optional(), URL(), Length(max=500)])
    is_available = BooleanField("Available for borrowing", default=True)
    submit = SubmitField("Save item")


def _extract_search_params() -> dict:
    """Normalize catalog query parameters."""

    raw_tier = (request.args.get("tier") or "").strip().lower()
    tier = ItemTier(raw_tier) if raw_tier in {t.value for t in ItemTier} else None
    return {
        "keyword": (request.args.get("q") or "").strip() or None,
        "category": (request.args.get("category") or "").strip() or None,
        "tier": tier,
        "location": (request.args.get("location") or "").strip() or None,
        "available_only": request.args.get("include_unavailable") not in {"1", "true", "yes"},
    }


def _owned_item_or_abort(item_id: int):
    item = items_dao.get_item_by_id(item_id)
    if not item:
        abort(404)
    if item.owner_id != current_user.user_id:
        abort(403)
    return item


def _viewer():
    return current_user if current_user.is_authenticated else None


@bp.route("/")
def list_items():
    """Browse the catalog."""

    params = _extract_search_params()
    if current_user.is_authenticated:
        params["exclude_owner_id"] = current_user.user_id
    items = items_dao.search_items(**params)
    viewer = _viewer()
    return jsonify(
        {
            "items": [serializers.item(item, viewer) for item in items],
            "categories": items_dao.list_distinct_categories(),
        }
    )


@bp.route("/mine")
@login_required
def my_items():
    """List items owned by the current user."""

    items = items_dao.list_items_for_owner(current_user.user_id)
    return jsonify({"items": [serializers.item(item) for item in items]})


@bp.route("/new", methods=["POST"])
@login_required
def create_item():
    """List a new item for lending."""

    form = ItemForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    item = items_dao.create_item(
        owner_id=current_user.user_id,
        title=form.title.data,
        description=form.description.data or "",
        category=form.category.data,
        purchase_price=form.purchase_price.data,
        location=form.location.data,
        image_url=form.image_url.data or None,
        is_available=form.is_available.data,
    )
    return jsonify({"message": "Item listed.", "item": serializers.item(item)}), 201


@bp.route("/<int:item_id>")
def detail(item_id: int):
    """Show an item along with whether the viewer may borrow it."""

    item = items_dao.get_item_by_id(item_id)
    if not item:
        abort(404)
    return jsonify({"item": serializers.item(item, _viewer())})


@bp.route("/<int:item_id>/edit", methods=["POST"])
@login_required
def edit(item_id: int):
    """Edit an existing item; price changes re-band its tier."""

    item = _owned_item_or_abort(item_id)
    form = ItemForm(obj=item)
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    items_dao.update_item(
        item_id,
        title=form.title.data,
        description=form.description.data or "",
        category=form.category.data,
        purchase_price=form.purchase_price.data,
        location=form.location.data,
        image_url=form.image_url.data or None,
        is_available=form.is_available.data,
    )
    return jsonify({"message": "Item updated.", "item": serializers.item(items_dao.get_item_by_id(item_id))})


@bp.route("/<int:item_id>/delete", methods=["POST"])
@login_required
def delete(item_id: int):
    """Remove an item listing."""

    _owned_item_or_abort(item_id)
    items_dao.delete_item(item_id)
    return jsonify({"message": "Item deleted."})
