# stockwatch/quote_service/providers/yahoo_client.py
import os
import time
import random
import logging
import threading
from functools import wraps
from typing import Dict, Optional

from curl_cffi import requests as cffi_requests
from curl_cffi.requests import errors as cffi_errors

# Get a child logger
logger = logging.getLogger(__name__)

# Constants
_TIMEOUT = int(os.getenv("YF_REQUEST_TIMEOUT", "12"))
_CRUMB_TTL_SECONDS = int(os.getenv("YF_CRUMB_TTL_SECONDS", "600"))
_CRUMB_URL = "https://query1.finance.yahoo.com/v1/test/getcrumb"

# A list of user-agents to rotate through
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
]

SUPPORTED_IMPERSONATE_PROFILES = ["chrome110", "chrome116", "chrome120", "edge101", "safari153"]

# Proxies are loaded from an environment variable, comma separated
PROXIES = [p.strip() for p in os.getenv("YAHOO_FINANCE_PROXIES", "").split(',') if p.strip()]


class YahooRequestError(Exception):
    """Raised when Yahoo cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _get_random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def _get_random_proxy() -> Optional[Dict[str, str]]:
    """A random configured proxy, or None to use the local IP. None is always one of the choices."""
    chosen = random.choice(PROXIES + [None])
    if chosen is None:
        return None
    return {"http": chosen, "https": chosen}


class _Identity:
    """One impersonated browser session with its cookie jar and Yahoo crumb."""

    def __init__(self):
        self.lock = threading.RLock()
        self.crumb: Optional[str] = None
        self.expiry: float = 0.0
        self._bootstrap()

    def _bootstrap(self):
        self.profile = random.choice(SUPPORTED_IMPERSONATE_PROFILES)
        self.proxy = _get_random_proxy()
        self.session = cffi_requests.Session(impersonate=self.profile)

    def ensure_crumb(self) -> Optional[str]:
        if self.crumb and time.time() < self.expiry:
            return self.crumb
        with self.lock:
            # re-check after acquiring lock
            if self.crumb and time.time() < self.expiry:
                return self.crumb
            return self._refresh_crumb_locked("expired" if self.crumb else "missing")

    def rotate(self, reason: str) -> None:
        with self.lock:
            logger.debug(f"Rotating Yahoo identity ({reason})")
            self._bootstrap()
            self.crumb = None
            self.expiry = 0.0

    def _refresh_crumb_locked(self, reason: str) -> Optional[str]:
        try:
            resp = self.session.get(
                _CRUMB_URL,
                headers={"User-Agent": _get_random_user_agent()},
                proxies=self.proxy,
                timeout=_TIMEOUT,
            )
            resp.raise_for_status()
            self.crumb = (resp.text or "").strip() or None
            self.expiry = time.time() + _CRUMB_TTL_SECONDS if self.crumb else 0.0
            logger.debug(f"Yahoo crumb refreshed ({reason}), profile={self.profile}, proxy={'on' if self.proxy else 'off'}")
            return self.crumb
        except Exception as e:
            logger.warning(f"Failed to refresh Yahoo crumb ({reason}): {e}")
            self.crumb = None
            self.expiry = 0.0
            return None


_IDENTITY_LOCK = threading.Lock()
_IDENTITY: Optional[_Identity] = None


def _get_identity() -> _Identity:
    global _IDENTITY
    with _IDENTITY_LOCK:
        if _IDENTITY is None:
            _IDENTITY = _Identity()
        return _IDENTITY


def retry_on_failure(attempts: int = 3, delay: float = 0.5, backoff: float = 2.0):
    """
    Retries transient failures with exponential backoff, rotating the identity between attempts.
    A 404 is final: it means the symbol does not exist, not that Yahoo is throttling us.
    """
    def deco(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exc = None
            wait = delay
            for i in range(max(1, attempts)):
                try:
                    return func(*args, **kwargs)
                except YahooRequestError as e:
                    if e.status_code == 404:
                        raise
                    last_exc = e
                except cffi_errors.RequestsError as e:
                    last_exc = YahooRequestError(str(e))
                logger.info(f"Yahoo request attempt {i + 1}/{attempts} failed: {last_exc}")
                _get_identity().rotate(reason=f"retry_{i + 1}")
                if i < attempts - 1:
                    time.sleep(wait)
                    wait *= backoff
            raise last_exc
        return wrapper
    return deco


def _execute_json_once(url: str, params: Optional[dict] = None) -> dict:
    """GET a Yahoo JSON endpoint with the current identity's cookies and crumb."""
    ident = _get_identity()
    merged = dict(params or {})
    crumb = ident.ensure_crumb()
    if crumb:
        merged["crumb"] = crumb

    resp = ident.session.get(
        url,
        params=merged,
        headers={"User-Agent": _get_random_user_agent()},
        proxies=ident.proxy,
        timeout=_TIMEOUT,
    )
    if not (200 <= resp.status_code < 300):
        preview = (resp.text or "")[:256]
        logger.warning(f"[yf] {resp.status_code} url={url} params={params} body[:256]={preview}")
        if resp.status_code in (401, 403, 429):
            # crumb or cookie rejected: force a refresh on the next attempt
            ident.crumb = None
        raise YahooRequestError(f"Yahoo returned HTTP {resp.status_code} for {url}", status_code=resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        # 200 with an HTML consent or error page instead of JSON
        preview = (resp.text or "")[:256]
        logger.warning(f"[yf] non-JSON body url={url} body[:256]={preview}")
        raise YahooRequestError(f"Yahoo returned a non-JSON body for {url}: {e}", status_code=resp.status_code) from e


@retry_on_failure(
    attempts=int(os.getenv("YF_RETRY_ATTEMPTS", "3")),
    delay=float(os.getenv("YF_RETRY_DELAY_SECONDS", "0.5")),
)
def execute_request(url: str, params: Optional[dict] = None) -> dict:
    """Unified JSON transport for Yahoo endpoints with rotation and retries."""
    return _execute_json_once(url, params=params)
