# stockwatch/quote_service/providers/quote_provider.py
import datetime as dt
import logging
import math
from typing import Iterable, List, Optional

from . import yahoo_client  # Use relative import

logger = logging.getLogger(__name__)

QUOTE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
# Yahoo's quote endpoint accepts long lists, but very long URLs get rejected
QUOTE_BATCH_SIZE = 50


class ProviderError(Exception):
    """Raised when the upstream market-data provider fails."""


class SymbolNotFoundError(ProviderError):
    """Raised when the provider reports that a symbol does not exist."""


def _sanitize(symbol: str) -> str:
    # 'BRK/B' -> 'BRK-B', 'ECC ' -> 'ECC'
    return symbol.strip().upper().replace('/', '-')


def _num(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _to_quote(raw: dict) -> dict:
    """Projects one Yahoo quote result onto our Quote contract fields."""
    return {
        "symbol": raw.get("symbol"),
        "price": _num(raw.get("regularMarketPrice")),
        "currency": raw.get("currency"),
        "change": _num(raw.get("regularMarketChange")),
        "changePercent": _num(raw.get("regularMarketChangePercent")),
        "time": raw.get("regularMarketTime"),
    }


def _fetch_quote_results(symbols: List[str]) -> List[dict]:
    try:
        data = yahoo_client.execute_request(QUOTE_URL, params={"symbols": ",".join(symbols)})
    except (yahoo_client.YahooRequestError, ValueError) as e:
        raise ProviderError(f"Quote request failed for {symbols}: {e}") from e
    try:
        results = data["quoteResponse"]["result"]
    except (KeyError, TypeError) as e:
        raise ProviderError(f"Unexpected quote response shape: {e}") from e
    return [r for r in (results or []) if isinstance(r, dict) and r.get("symbol")]


def get_quote(symbol: str) -> Optional[dict]:
    """
    Current quote for one symbol.
    Returns None when the provider does not know the symbol; raises ProviderError on upstream failure.
    """
    sanitized = _sanitize(symbol)
    results = _fetch_quote_results([sanitized])
    for raw in results:
        if str(raw.get("symbol", "")).upper() == sanitized:
            return _to_quote(raw)
    logger.info(f"No quote returned for {sanitized}")
    return None


def get_quotes(symbols: Iterable[str]) -> List[dict]:
    """
    Current quotes for many symbols, best-effort.
    A failing chunk is logged and contributes nothing; symbols the provider does not know are simply absent.
    """
    unique = list(dict.fromkeys(_sanitize(s) for s in symbols if isinstance(s, str) and s.strip()))
    quotes: List[dict] = []
    for start in range(0, len(unique), QUOTE_BATCH_SIZE):
        chunk = unique[start:start + QUOTE_BATCH_SIZE]
        try:
            results = _fetch_quote_results(chunk)
        except ProviderError as e:
            logger.error(f"Error fetching bulk quotes: {e}")
            continue
        for raw in results:
            q = _to_quote(raw)
            quotes.append({
                "symbol": q["symbol"],
                "price": q["price"],
                "change": q["change"],
                "changePercent": q["changePercent"],
            })
    return quotes


def _transform_chart_response(response_json: dict, symbol: str) -> List[dict]:
    """Transforms Yahoo's chart JSON into our list-of-bars format."""
    try:
        result = response_json['chart']['result'][0]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderError(f"Unexpected chart response shape for {symbol}: {e}") from e

    timestamps = result.get('timestamp') or []
    if not timestamps:
        # valid symbol, no trading days in range
        return []
    try:
        ohlc = result['indicators']['quote'][0]
        adj_series = (result['indicators'].get('adjclose') or [{}])[0].get('adjclose')
        volumes = ohlc.get('volume') or [None] * len(timestamps)
        bars = []
        for i, ts in enumerate(timestamps):
            volume = volumes[i]
            bars.append({
                "date": dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc).strftime('%Y-%m-%d'),
                "open": _num(ohlc['open'][i]),
                "high": _num(ohlc['high'][i]),
                "low": _num(ohlc['low'][i]),
                "close": _num(ohlc['close'][i]),
                "volume": int(volume) if volume is not None else None,
                "adjclose": _num(adj_series[i]) if adj_series else None,
            })
        return bars
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderError(f"Error transforming chart data for {symbol}: {e}") from e


def get_historical(symbol: str, start: dt.date, end: dt.date) -> List[dict]:
    """
    Daily bars for the closed range [start, end].
    Raises ProviderError on upstream failure.
    """
    sanitized = _sanitize(symbol)
    period1 = int(dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc).timestamp())
    # period2 is exclusive upstream, so push it to the start of the following day
    period2 = int(dt.datetime.combine(end + dt.timedelta(days=1), dt.time.min, tzinfo=dt.timezone.utc).timestamp())
    params = {"period1": period1, "period2": period2, "interval": "1d", "includePrePost": "false", "events": "div,splits"}
    try:
        resp_json = yahoo_client.execute_request(CHART_URL.format(symbol=sanitized), params=params)
    except yahoo_client.YahooRequestError as e:
        if e.status_code == 404:
            raise SymbolNotFoundError(sanitized) from e
        raise ProviderError(f"Chart request failed for {sanitized}: {e}") from e
    return _transform_chart_response(resp_json, sanitized)
