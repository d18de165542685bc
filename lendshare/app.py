"""Application factory for LendShare."""

from __future__ import annotations

from flask import Flask, jsonify
from flask_login import LoginManager
from flask_wtf import CSRFProtect
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from .config import BaseConfig, get_config
from .data_access import users_dao
from .data_access.db import init_app as init_db_app
from .models.entities import User
from .services import events
from .services.errors import LendingError

csrf = CSRFProtect()
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    """Look up a user for Flask-Login session handling."""
    if not user_id:
        return None
    return users_dao.get_user_by_id(int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return (
        jsonify(
            {
                "error": "authorization_error",
                "reason": "unauthenticated",
                "message": "Please sign in to continue.",
            }
        ),
        401,
    )


def create_app(config_object: type[BaseConfig] | None = None) -> Flask:
    """Create and configure the Flask application instance."""

    app = Flask(__name__)

    config_cls = config_object or get_config()
    app.config.from_object(config_cls)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    csrf.init_app(app)
    login_manager.init_app(app)
    init_db_app(app)
    events.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    @app.route("/")
    def index():
        """Report service status for health checks."""

        return jsonify({"service": "lendshare", "status": "ok"})

    return app


def register_blueprints(app: Flask) -> None:
    """Import and register application blueprints."""

    from .controllers import (  # pylint: disable=import-outside-toplevel
        auth,
        items,
        messaging,
        ratings,
        requests,
        users,
    )

    app.register_blueprint(auth.bp)
    app.register_blueprint(items.bp)
    app.register_blueprint(requests.bp)
    app.register_blueprint(ratings.bp)
    app.register_blueprint(messaging.bp)
    app.register_blueprint(users.bp)


def register_error_handlers(app: Flask) -> None:
    """Render every failure as a JSON body with an actionable message."""

    @app.errorhandler(LendingError)
    def lending_error(error: LendingError):
        if error.status_code >= 500:
            app.logger.error("%s: %s", error.reason, error.message, exc_info=error.__cause__)
        else:
            app.logger.info("Rejected with %s (%s)", error.kind, error.reason)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(error: CSRFError):
        return (
            jsonify({"error": "validation_error", "reason": "csrf", "message": error.description}),
            400,
        )

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        messages = {
            403: "You do not have permission to do that.",
            404: "We could not locate what you requested.",
        }
        return (
            jsonify(
                {
                    "error": error.name.lower().replace(" ", "_"),
                    "reason": f"http_{error.code}",
                    "message": messages.get(error.code, error.description),
                }
            ),
            error.code,
        )

    @app.errorhandler(500)
    def server_error(error: Exception):
        return (
            jsonify(
                {
                    "error": "server_error",
                    "reason": "http_500",
                    "message": "An unexpected error occurred. The team has been notified.",
                }
            ),
            500,
        )
