"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Generator

import pytest
from flask import Flask

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lendshare.app import create_app
from lendshare.config import TestingConfig
from lendshare.data_access import items_dao, requests_dao, seed, users_dao
from lendshare.data_access.db import get_db, init_db
from lendshare.models.entities import RequestStatus


class _TestConfig(TestingConfig):
    DATABASE_URL: str = ""


@pytest.fixture()
def app(tmp_path: Path) -> Generator[Flask, None, None]:
    """Configure a Flask application for testing with a temp SQLite database."""

    db_path = tmp_path / "test.db"
    _TestConfig.DATABASE_URL = f"sqlite:///{db_path}"
    application = create_app(_TestConfig)
    with application.app_context():
        init_db(application)
        seed.seed()
    yield application


@pytest.fixture()
def client(app: Flask):
    """Flask test client."""

    return app.test_client()


@pytest.fixture()
def runner(app: Flask):
    """Flask CLI runner."""

    return app.test_cli_runner()


@pytest.fixture()
def ctx(app: Flask):
    """Keep an application context open for service-level tests."""

    with app.app_context():
        yield get_db()


def _user(email: str):
    return users_dao.get_user_by_email(email)


@pytest.fixture()
def owner_user(ctx):
    """Bronze owner with four completed lends."""

    return _user("olivia@lendshare.org")


@pytest.fixture()
def bronze_user(ctx):
    return _user("bob@lendshare.org")


@pytest.fixture()
def silver_user(ctx):
    return _user("sam@lendshare.org")


@pytest.fixture()
def gold_user(ctx):
    return _user("gina@lendshare.org")


@pytest.fixture()
def platinum_user(ctx):
    return _user("paula@lendshare.org")


def _item(title: str):
    for item in items_dao.search_items(keyword=title, available_only=False):
        if item.title == title:
            return item
    raise AssertionError(f"Expected seed item {title!r}.")


@pytest.fixture()
def basic_item(ctx):
    return _item("Cordless Drill")


@pytest.fixture()
def luxury_item(ctx):
    return _item("Mirrorless Camera")


@pytest.fixture()
def exclusive_item(ctx):
    return _item("Electric Cargo Bike")


@pytest.fixture()
def unavailable_item(ctx):
    return _item("Stand Mixer")


@pytest.fixture()
def completed_request(ctx, gold_user):
    requests = requests_dao.list_requests_for_borrower(gold_user.user_id)
    return next(r for r in requests if r.status is RequestStatus.COMPLETED)


@pytest.fixture()
def pending_request(ctx, silver_user):
    requests = requests_dao.list_requests_for_borrower(silver_user.user_id)
    return next(r for r in requests if r.status is RequestStatus.PENDING)
