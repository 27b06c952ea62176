# stockwatch/alert_service/tests/conftest.py
"""
Fakes for the two downstream services the evaluation loop depends on.
"""
import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest

# Must be set before the app module is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "stockwatch-test-logs"))
os.environ.setdefault("ALERT_SCHEDULER_ENABLED", "0")
os.environ.setdefault("BCRYPT_ROUNDS", "4")


class FakeAccountClient:
    def __init__(self, pending: Optional[List[Dict[str, Any]]] = None, fail_pending: bool = False,
                 fail_trigger_ids=()):
        self.pending = pending or []
        self.fail_pending = fail_pending
        self.fail_trigger_ids = set(fail_trigger_ids)
        self.triggered: List[int] = []
        self.trigger_attempts: List[int] = []

    def fetch_pending_alerts(self):
        if self.fail_pending:
            raise ConnectionError("account-service unreachable")
        triggered = set(self.triggered)
        return [a for a in self.pending if a.get("id") not in triggered]

    def trigger_alert(self, alert_id):
        self.trigger_attempts.append(alert_id)
        if alert_id in self.fail_trigger_ids:
            raise RuntimeError(f"trigger {alert_id} failed")
        if alert_id not in self.triggered:
            self.triggered.append(alert_id)


class FakeQuoteClient:
    def __init__(self, prices: Optional[Dict[str, Any]] = None, fail: bool = False):
        self.prices = prices or {}
        self.fail = fail
        self.calls: List[List[str]] = []

    def fetch_prices(self, symbols):
        self.calls.append(list(symbols))
        if self.fail:
            raise TimeoutError("quote-service timed out")
        return [{"symbol": s, "price": self.prices[s], "change": 0, "changePercent": 0}
                for s in symbols if s in self.prices]


def pending_alert(alert_id, symbol="AAPL", target="100.00", condition="below", user_id=1, username="alice"):
    return {
        "id": alert_id,
        "user_id": user_id,
        "symbol": symbol,
        "target_price": target,
        "condition": condition,
        "username": username,
    }


@pytest.fixture
def account_client():
    return FakeAccountClient()


@pytest.fixture
def quote_client():
    return FakeQuoteClient()
