# tests/conftest.py

import pytest

from app import create_app
from extensions import db
import reconcile

from .helpers import ApiClient


@pytest.fixture()
def app():
    """A fresh application on an in-memory database, with its context pushed."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "TASKS_DEFAULT_LIMIT": 100,
        "USERS_DEFAULT_LIMIT": 0,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def api(client):
    return ApiClient(client)


@pytest.fixture()
def consistent(app):
    """Fail the test if tasks and users disagree once it has finished."""
    yield
    db.session.expire_all()
    report = reconcile.audit()
    assert report.clean, report
