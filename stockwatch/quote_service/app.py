# stockwatch/quote_service/app.py
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_cors import CORS
from pydantic import TypeAdapter, ValidationError

from stockwatch.shared.logging_setup import setup_logging

# --- 1. Initialize Flask App and Basic Config ---
app = Flask(__name__)
CORS(app)
PORT = int(os.environ.get('PORT', 3002))

# --- 2. Logging ---
setup_logging(
    app,
    "quote-service",
    module_names=[
        "stockwatch.quote_service.providers.yahoo_client",
        "stockwatch.quote_service.providers.quote_provider",
    ],
)

# --- 3. Import Project-Specific Modules ---
from stockwatch.quote_service.providers import quote_provider
from stockwatch.quote_service.helper_functions import normalize_symbol, resolve_date_range, validate_symbols_payload
from stockwatch.shared.contracts import BatchQuoteItem, PriceBar, Quote

# --- Flask-Caching Setup ---
# Historical series only; current quotes must stay fresh for the alert loop.
HISTORICAL_CACHE_TTL = int(os.getenv("HISTORICAL_CACHE_TTL", "300"))
config = {
    "CACHE_TYPE": os.environ.get("CACHE_TYPE", "SimpleCache"),
    "CACHE_REDIS_URL": os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0"),
    "CACHE_DEFAULT_TIMEOUT": HISTORICAL_CACHE_TTL,
    "CACHE_KEY_PREFIX": os.environ.get("CACHE_KEY_PREFIX", "quotesvc:"),
}
app.config.from_mapping(config)
cache = Cache(app)
# --- End of Caching Setup ---

_BATCH_QUOTES = TypeAdapter(list[BatchQuoteItem])
_PRICE_BARS = TypeAdapter(list[PriceBar])


@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({"status": "healthy", "service": "quote-service"}), 200


@app.route('/price/<path:symbol>', methods=['GET'])
def get_price(symbol):
    try:
        normalized = normalize_symbol(symbol)
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        raw = quote_provider.get_quote(normalized)
        if raw is None:
            return jsonify({"error": "Stock not found"}), 404
        quote = Quote.model_validate(raw)
        return jsonify(quote.model_dump(mode="json", by_alias=True)), 200
    except ValidationError as e:
        app.logger.error(f"Quote for {normalized} failed contract validation: {e}")
        return jsonify({"error": "Failed to fetch stock price", "details": "malformed provider data"}), 500
    except Exception as e:
        app.logger.error(f"Error in GET /price/{normalized}: {e}", exc_info=True)
        return jsonify({"error": "Failed to fetch stock price", "details": str(e)}), 500


@app.route('/prices', methods=['POST'])
def get_prices():
    try:
        symbols = validate_symbols_payload(request.get_json(silent=True))
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    if not symbols:
        return jsonify([]), 200
    try:
        # best-effort: provider failures already degrade to an empty list
        quotes = quote_provider.get_quotes(symbols)
        validated = _BATCH_QUOTES.validate_python(quotes)
        app.logger.info(f"Bulk quotes: requested={len(symbols)} returned={len(validated)}")
        return jsonify([q.model_dump(mode="json", by_alias=True) for q in validated]), 200
    except Exception as e:
        app.logger.error(f"Error in POST /prices: {e}", exc_info=True)
        return jsonify({"error": "Failed to fetch multiple stock prices", "details": str(e)}), 500


@app.route('/historical/<path:symbol>', methods=['GET'])
def get_historical(symbol):
    try:
        normalized = normalize_symbol(symbol)
        start, end = resolve_date_range(request.args.get("start"), request.args.get("end"))
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400

    cache_key = f"historical_{normalized}_{start.isoformat()}_{end.isoformat()}"
    cached = cache.get(cache_key)
    if cached is not None:
        app.logger.info(f"Cache HIT for historical: {cache_key}")
        return jsonify(cached), 200

    try:
        bars = quote_provider.get_historical(normalized, start, end)
        payload = [b.model_dump(mode="json") for b in _PRICE_BARS.validate_python(bars)]
    except quote_provider.SymbolNotFoundError:
        return jsonify({"error": "Stock not found"}), 404
    except Exception as e:
        app.logger.error(f"Error in GET /historical/{normalized}: {e}", exc_info=True)
        return jsonify({"error": "Failed to fetch historical data", "details": str(e)}), 500

    cache.set(cache_key, payload, timeout=HISTORICAL_CACHE_TTL)
    return jsonify(payload), 200


def main():
    app.run(host='0.0.0.0', port=PORT)


if __name__ == '__main__':
    main()
