# stockwatch/quote_service/helper_functions.py
import calendar
import datetime as dt
import re
from typing import Any, List, Optional, Tuple

from stockwatch.shared.contracts import MAX_TICKER_LEN

_TICKER_PATTERN = re.compile(r"^[A-Za-z0-9.\-^=/ ]+$")


def one_month_before(day: dt.date) -> dt.date:
    """Same day of the previous month, clamped to that month's last day (Mar 31 -> Feb 28/29)."""
    year, month = (day.year - 1, 12) if day.month == 1 else (day.year, day.month - 1)
    last_day = calendar.monthrange(year, month)[1]
    return dt.date(year, month, min(day.day, last_day))


def _parse_date(raw: Optional[str], name: str) -> Optional[dt.date]:
    if raw is None or raw == "":
        return None
    try:
        # tolerate full ISO timestamps by keeping the date part
        return dt.date.fromisoformat(raw[:10])
    except ValueError:
        raise ValueError(f"Invalid '{name}' date '{raw}'. Expected YYYY-MM-DD.")


def resolve_date_range(start: Optional[str], end: Optional[str], today: Optional[dt.date] = None) -> Tuple[dt.date, dt.date]:
    """
    Resolves the ?start&end query params of /historical.
    Defaults: end = today, start = one month before today (independent of end).
    """
    today = today or dt.date.today()
    start_date = _parse_date(start, "start") or one_month_before(today)
    end_date = _parse_date(end, "end") or today
    if start_date > end_date:
        raise ValueError("'start' must not be after 'end'.")
    return start_date, end_date


def normalize_symbol(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Symbol is required")
    symbol = raw.strip().upper()
    if len(symbol) > MAX_TICKER_LEN or not _TICKER_PATTERN.match(symbol):
        raise ValueError(f"Invalid symbol '{raw}'")
    return symbol


def validate_symbols_payload(payload: Any) -> List[str]:
    """
    Validates a POST /prices body and returns the requested symbols upper-cased, duplicates removed.
    There is no length limit: the provider chunks upstream requests itself.
    """
    if not isinstance(payload, dict):
        raise ValueError("Invalid symbols array")
    symbols = payload.get("symbols")
    if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
        raise ValueError("Invalid symbols array")
    return list(dict.fromkeys(s.strip().upper() for s in symbols if s.strip()))
