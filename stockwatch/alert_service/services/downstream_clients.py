# stockwatch/alert_service/services/downstream_clients.py
"""
Downstream service clients for the alert evaluation loop.

This module encapsulates HTTP requests to:
- account-service: GET   /internal/alerts/pending
- account-service: PATCH /alerts/<id>/trigger
- quote-service:   POST  /prices

Each client:
- Accepts simple Python types and returns parsed JSON.
- Raises DownstreamError on network errors, non-2xx statuses or unexpected payloads.
"""

import os
import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_URL = os.getenv("ACCOUNT_SERVICE_URL", "http://localhost:3001")
DEFAULT_QUOTE_URL = os.getenv("QUOTE_SERVICE_URL", "http://localhost:3002")

_TIMEOUT = float(os.getenv("DOWNSTREAM_HTTP_TIMEOUT_SECONDS", "10.0"))


class DownstreamError(RuntimeError):
    """A call to account-service or quote-service failed."""


def _check(resp, url: str) -> Any:
    try:
        resp.raise_for_status()
        return resp.json()
    except ValueError as exc:
        raise DownstreamError(f"Non-JSON response from {url}: {exc}") from exc
    except requests.exceptions.RequestException as exc:
        raise DownstreamError(f"Downstream call failed for {url}: {exc}") from exc


class AccountServiceClient:
    """Talks to account-service's internal alert endpoints."""

    def __init__(self, base_url: str = DEFAULT_ACCOUNT_URL, internal_key: Optional[str] = None,
                 timeout: float = _TIMEOUT, http=None):
        self.base_url = base_url.rstrip("/")
        self.internal_key = internal_key if internal_key is not None else os.getenv("INTERNAL_API_KEY", "")
        self.timeout = timeout
        # anything with requests' get/patch signature (requests module, a Session, a test shim)
        self.http = http or requests

    def _headers(self) -> Dict[str, str]:
        return {"X-Internal-Key": self.internal_key} if self.internal_key else {}

    def fetch_pending_alerts(self) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/internal/alerts/pending"
        try:
            resp = self.http.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise DownstreamError(f"Downstream call failed for {url}: {exc}") from exc
        data = _check(resp, url)
        if not isinstance(data, list):
            raise DownstreamError(f"Expected a list of pending alerts from {url}, got {type(data).__name__}")
        return data

    def trigger_alert(self, alert_id: int) -> None:
        url = f"{self.base_url}/alerts/{alert_id}/trigger"
        try:
            resp = self.http.patch(url, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise DownstreamError(f"Downstream call failed for {url}: {exc}") from exc
        _check(resp, url)


class QuoteServiceClient:
    """Talks to quote-service's bulk price endpoint."""

    def __init__(self, base_url: str = DEFAULT_QUOTE_URL, timeout: float = _TIMEOUT, http=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests

    def fetch_prices(self, symbols: List[str]) -> List[Dict[str, Any]]:
        """
        Expected response: [{"symbol": "AAPL", "price": 189.5, "change": ..., "changePercent": ...}, ...]
        Symbols unknown to the provider are simply absent.
        """
        url = f"{self.base_url}/prices"
        try:
            resp = self.http.post(url, json={"symbols": list(symbols)}, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise DownstreamError(f"Downstream call failed for {url}: {exc}") from exc
        data = _check(resp, url)
        if not isinstance(data, list):
            raise DownstreamError(f"Expected a list of quotes from {url}, got {type(data).__name__}")
        return data
