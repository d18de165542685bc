"""Authentication blueprint handling registration, login, and logout."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from wtforms import PasswordField, StringField, SubmitField
from wtforms.validators import Email, EqualTo, InputRequired, Length, Optional, URL

from ..data_access import users_dao
from . import serializers

bp = Blueprint("auth", __name__, url_prefix="/auth")


class RegistrationForm(FlaskForm):
    """Registration form for new marketplace members."""

    name = StringField("Full Name", validators=[InputRequired(), Length(max=120)])
    email = StringField("Email", validators=[InputRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[InputRequired(), Length(min=8, max=128)])
    confirm_password = PasswordField(
        "Confirm Password",
        validators=[InputRequired(), EqualTo("password", message="Passwords must match.")],
    )
    avatar_url = StringField("Avatar URL", validators=[Optional(), URL(), Length(max=500)])
    submit = SubmitField("Create account")


class LoginForm(FlaskForm):
    """Basic credential form."""

    email = StringField("Email", validators=[InputRequired(), Email()])
    password = PasswordField("Password", validators=[InputRequired()])
    submit = SubmitField("Sign in")


@bp.route("/register", methods=["POST"])
def register():
    """Handle new user registration."""

    if current_user.is_authenticated:
        return jsonify({"message": "You are already signed in.", "user": serializers.user_private(current_user)})

    form = RegistrationForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    if users_dao.get_user_by_email(form.email.data):
        form.email.errors.append("An account with that email already exists.")
        return jsonify(serializers.form_errors(form)), 400

    user = users_dao.create_user(
        name=form.name.data,
        email=form.email.data,
        password_hash=users_dao.hash_password(form.password.data),
        avatar_url=form.avatar_url.data or None,
    )
    login_user(user)
    return jsonify({"message": "Welcome to LendShare!", "user": serializers.user_private(user)}), 201


@bp.route("/login", methods=["POST"])
def login():
    """Authenticate an existing user."""

    if current_user.is_authenticated:
        return jsonify({"message": "You are already signed in.", "user": serializers.user_private(current_user)})

    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify(serializers.form_errors(form)), 400

    user = users_dao.get_user_by_email(form.email.data)
    if not user or not users_dao.verify_password(user.password_hash, form.password.data):
        form.email.errors.append("Invalid credentials. Please try again.")
        return jsonify(serializers.form_errors(form)), 401
    if not user.is_active:
        form.email.errors.append("This account has been deactivated. Contact support.")
        return jsonify(serializers.form_errors(form)), 403

    login_user(user)
    return jsonify({"message": "Signed in successfully.", "user": serializers.user_private(user)})


@bp.route("/logout")
@login_required
def logout():
    """Log out the current user."""

    logout_user()
    return jsonify({"message": "You have been signed out."})


@bp.route("/me")
@login_required
def me():
    return jsonify({"user": serializers.user_private(current_user)})


@bp.route("/csrf")
def csrf_token():
    """Hand out a CSRF token for clients posting forms."""

    return jsonify({"csrf_token": generate_csrf()})
