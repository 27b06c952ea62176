# stockwatch/account_service/tests/conftest.py
"""
Pytest configuration and shared fixtures for account-service tests.
Every test gets a fresh in-memory SQLite schema.
"""
import os
import tempfile
from typing import Callable, Dict, Tuple

import pytest

# Must be set before the app module is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "stockwatch-test-logs"))
os.environ.setdefault("BCRYPT_ROUNDS", "4")


@pytest.fixture
def db():
    from stockwatch.account_service.database import sql_client
    sql_client.configure("sqlite://")
    sql_client.init_db()
    yield sql_client
    sql_client.drop_all()


@pytest.fixture(scope="session")
def app():
    from stockwatch.account_service.app import app as flask_app
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture
def client(app, db):
    return app.test_client()


@pytest.fixture
def register_and_login(client) -> Callable[..., Tuple[str, Dict]]:
    """Registers a user, logs in and returns (token, user)."""
    def _do(username: str = "alice", password: str = "s3cret-pass"):
        r = client.post("/register", json={"username": username, "password": password})
        assert r.status_code == 201, r.get_json()
        r = client.post("/login", json={"username": username, "password": password})
        assert r.status_code == 200, r.get_json()
        body = r.get_json()
        return body["token"], body["user"]
    return _do


@pytest.fixture
def auth_headers(register_and_login) -> Dict[str, str]:
    token, _ = register_and_login()
    return {"Authorization": f"Bearer {token}"}
