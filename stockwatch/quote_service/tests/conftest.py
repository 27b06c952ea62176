# stockwatch/quote_service/tests/conftest.py
import os
import tempfile

import pytest

# Must be set before the app module is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "stockwatch-test-logs"))
os.environ.setdefault("CACHE_TYPE", "SimpleCache")
os.environ.setdefault("YF_RETRY_DELAY_SECONDS", "0")


@pytest.fixture(scope="session")
def app():
    from stockwatch.quote_service.app import app as flask_app
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture
def client(app):
    from stockwatch.quote_service.app import cache
    with app.app_context():
        cache.clear()
    return app.test_client()
