# stockwatch/account_service/helper_functions.py
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from stockwatch.shared.contracts import ALERT_CONDITIONS, MAX_TICKER_LEN, MAX_USERNAME_LEN

# Allowed ticker characters: letters, digits, dot, hyphen, caret and equals (indices, FX)
_TICKER_PATTERN = re.compile(r"^[A-Za-z0-9.\-^=]+$")
# DECIMAL(10, 2) leaves 8 digits before the point
_MAX_TARGET_PRICE = Decimal("99999999.99")
_CENTS = Decimal("0.01")


def normalize_and_validate_ticker(raw: Any) -> str:
    """
    Validates and normalizes a ticker coming from a path param or JSON body.
    Returns the upper-cased ticker; raises ValueError with a client-facing message otherwise.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Symbol is required")
    ticker = raw.strip().upper()
    if len(ticker) > MAX_TICKER_LEN:
        raise ValueError(f"Symbol must be at most {MAX_TICKER_LEN} characters")
    if not _TICKER_PATTERN.match(ticker):
        raise ValueError("Symbol contains invalid characters")
    return ticker


def validate_credentials(payload: Any) -> tuple:
    """Extracts (username, password) from a register/login body."""
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    username = payload.get("username")
    password = payload.get("password")
    if not isinstance(username, str) or not username.strip():
        raise ValueError("Username is required")
    if not isinstance(password, str) or not password:
        raise ValueError("Password is required")
    username = username.strip()
    if len(username) > MAX_USERNAME_LEN:
        raise ValueError(f"Username must be at most {MAX_USERNAME_LEN} characters")
    return username, password


def parse_target_price(raw: Any) -> Decimal:
    """Parses a positive price that fits DECIMAL(10, 2), rounded to cents."""
    if isinstance(raw, bool) or raw is None:
        raise ValueError("target_price is required")
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("target_price must be a number")
    if not value.is_finite() or value <= 0:
        raise ValueError("target_price must be a positive number")
    if value > _MAX_TARGET_PRICE:
        raise ValueError("target_price is too large")
    value = value.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise ValueError("target_price must be a positive number")
    if value > _MAX_TARGET_PRICE:
        raise ValueError("target_price is too large")
    return value


def validate_condition(raw: Any) -> str:
    if not isinstance(raw, str) or raw.strip().lower() not in ALERT_CONDITIONS:
        raise ValueError("condition must be 'above' or 'below'")
    return raw.strip().lower()


def extract_bearer_token(header_value: Any) -> str:
    """Returns the token from an 'Authorization: Bearer <token>' header, or '' if absent."""
    if not isinstance(header_value, str):
        return ""
    value = header_value.strip()
    if value.lower().startswith("bearer "):
        value = value[7:]
    return value.strip()
