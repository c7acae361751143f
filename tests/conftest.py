"""Pytest configuration: a Flask app bound to in-memory SQLite."""

import pytest

from planner import create_app, db


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "MC_BATCH_SIZE": 50,
        "MC_MAX_SIMULATIONS": 2000,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
