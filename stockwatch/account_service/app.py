# stockwatch/account_service/app.py
import os
import hmac
from functools import wraps

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from stockwatch.shared.logging_setup import setup_logging

# --- 1. Initialize Flask App and Basic Config ---
app = Flask(__name__)
CORS(app)
PORT = int(os.getenv("PORT", 3001))
# Shared credential for the internal endpoints; empty means network-level isolation only
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "").strip()

# --- 2. Logging ---
setup_logging(
    app,
    "account-service",
    module_names=[
        "stockwatch.account_service.database.sql_client",
        "stockwatch.account_service.services.auth_service",
        "stockwatch.account_service.services.watchlist_service",
        "stockwatch.account_service.services.alert_service",
    ],
)

# --- 3. Import Project-Specific Modules ---
from stockwatch.account_service.database import sql_client
from stockwatch.account_service.services import alert_service, auth_service, watchlist_service
from stockwatch.account_service.helper_functions import (
    extract_bearer_token,
    normalize_and_validate_ticker,
    parse_target_price,
    validate_condition,
    validate_credentials,
)


# --- Request guards ---
def authenticate(view):
    """Requires 'Authorization: Bearer <token>'; exposes the token payload as g.user."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        token = extract_bearer_token(request.headers.get("Authorization"))
        if not token:
            return jsonify({"error": "Access denied"}), 401
        try:
            g.user = auth_service.decode_token(token)
        except auth_service.InvalidTokenError:
            return jsonify({"error": "Invalid token"}), 400
        return view(*args, **kwargs)
    return wrapper


def internal_only(view):
    """Checks X-Internal-Key when INTERNAL_API_KEY is configured."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if INTERNAL_API_KEY:
            provided = request.headers.get("X-Internal-Key", "")
            if not hmac.compare_digest(provided.encode("utf-8"), INTERNAL_API_KEY.encode("utf-8")):
                app.logger.warning(f"Rejected internal call to {request.path} with missing or bad key")
                return jsonify({"error": "Invalid internal credentials"}), 401
        return view(*args, **kwargs)
    return wrapper


# --- Health Check ---
@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({"status": "healthy", "service": "account-service"}), 200


# --- Auth Routes ---
@app.route('/register', methods=['POST'])
def register():
    try:
        username, password = validate_credentials(request.get_json(silent=True))
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        with sql_client.session_scope() as session:
            user = auth_service.register_user(session, username, password)
        return jsonify(user), 201
    except auth_service.UserAlreadyExistsError:
        return jsonify({"error": "User registration failed (might already exist)"}), 400
    except SQLAlchemyError as e:
        app.logger.error(f"Error in POST /register: {e}", exc_info=True)
        return jsonify({"error": "User registration failed"}), 500


@app.route('/login', methods=['POST'])
def login():
    try:
        username, password = validate_credentials(request.get_json(silent=True))
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        with sql_client.session_scope() as session:
            token, user = auth_service.login_user(session, username, password)
        return jsonify({"token": token, "user": user}), 200
    except auth_service.UserNotFoundError:
        return jsonify({"error": "User not found"}), 400
    except auth_service.InvalidCredentialsError:
        return jsonify({"error": "Invalid password"}), 400
    except Exception as e:
        app.logger.error(f"Error in POST /login: {e}", exc_info=True)
        return jsonify({"error": "Login failed"}), 500


# --- Tracking Routes ---
@app.route('/tracked', methods=['GET'])
@authenticate
def get_tracked():
    try:
        with sql_client.session_scope() as session:
            symbols = watchlist_service.get_tracked_symbols(session, g.user["id"])
        return jsonify(symbols), 200
    except Exception as e:
        app.logger.error(f"Error in GET /tracked: {e}", exc_info=True)
        return jsonify({"error": "Failed to retrieve tracked stocks"}), 500


@app.route('/track', methods=['POST'])
@authenticate
def track():
    payload = request.get_json(silent=True) or {}
    try:
        symbol = normalize_and_validate_ticker(payload.get("symbol") if isinstance(payload, dict) else None)
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        with sql_client.session_scope() as session:
            watchlist_service.track_symbol(session, g.user["id"], symbol)
        return jsonify({"message": "Stock tracked successfully", "symbol": symbol}), 201
    except watchlist_service.AlreadyTrackedError:
        return jsonify({"error": "Failed to track stock (might already be tracked)"}), 400
    except watchlist_service.OwnerNotFoundError:
        # token still verifies but its user row is gone
        return jsonify({"error": "User not found"}), 404
    except SQLAlchemyError as e:
        app.logger.error(f"Error in POST /track: {e}", exc_info=True)
        return jsonify({"error": "Failed to track stock"}), 400


@app.route('/track/<path:symbol>', methods=['DELETE'])
@authenticate
def untrack(symbol):
    try:
        normalized = normalize_and_validate_ticker(symbol)
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        with sql_client.session_scope() as session:
            watchlist_service.untrack_symbol(session, g.user["id"], normalized)
        return jsonify({"message": "Stock untracked successfully"}), 200
    except Exception as e:
        app.logger.error(f"Error in DELETE /track/{normalized}: {e}", exc_info=True)
        return jsonify({"error": "Failed to untrack stock"}), 500


# --- Alerts Routes ---
@app.route('/alerts', methods=['GET'])
@authenticate
def get_alerts():
    try:
        with sql_client.session_scope() as session:
            alerts = alert_service.list_alerts(session, g.user["id"])
        return jsonify(alerts), 200
    except Exception as e:
        app.logger.error(f"Error in GET /alerts: {e}", exc_info=True)
        return jsonify({"error": "Failed to retrieve alerts"}), 500


@app.route('/alerts', methods=['POST'])
@authenticate
def create_alert():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        symbol = normalize_and_validate_ticker(payload.get("symbol"))
        target_price = parse_target_price(payload.get("target_price"))
        condition = validate_condition(payload.get("condition"))
    except ValueError as ve:
        return jsonify({"error": str(ve)}), 400
    try:
        with sql_client.session_scope() as session:
            alert = alert_service.create_alert(session, g.user["id"], symbol, target_price, condition)
        return jsonify(alert), 201
    except SQLAlchemyError as e:
        app.logger.error(f"Error in POST /alerts: {e}", exc_info=True)
        return jsonify({"error": "Failed to create alert"}), 400


@app.route('/alerts/<int:alert_id>', methods=['DELETE'])
@authenticate
def delete_alert(alert_id):
    try:
        with sql_client.session_scope() as session:
            alert_service.delete_alert(session, g.user["id"], alert_id)
        return jsonify({"message": "Alert deleted successfully"}), 200
    except Exception as e:
        app.logger.error(f"Error in DELETE /alerts/{alert_id}: {e}", exc_info=True)
        return jsonify({"error": "Failed to delete alert"}), 500


# --- Internal Routes (alert-service) ---
@app.route('/alerts/<int:alert_id>/trigger', methods=['PATCH'])
@internal_only
def trigger_alert(alert_id):
    """Idempotent one-way transition; succeeds whether or not a row changed."""
    try:
        with sql_client.session_scope() as session:
            alert_service.mark_alert_triggered(session, alert_id)
        return jsonify({"message": "Alert marked as triggered"}), 200
    except Exception as e:
        app.logger.error(f"Error in PATCH /alerts/{alert_id}/trigger: {e}", exc_info=True)
        return jsonify({"error": "Failed to trigger alert"}), 500


@app.route('/internal/alerts/pending', methods=['GET'])
@internal_only
def get_pending_alerts():
    try:
        with sql_client.session_scope() as session:
            pending = alert_service.list_pending_alerts(session)
        return jsonify(pending), 200
    except OperationalError as oe:
        app.logger.error(f"Database unavailable in GET /internal/alerts/pending: {oe}", exc_info=True)
        return jsonify({"error": "Failed to fetch pending alerts", "details": "database unavailable"}), 500
    except Exception as e:
        app.logger.error(f"Error in GET /internal/alerts/pending: {e}", exc_info=True)
        return jsonify({"error": "Failed to fetch pending alerts"}), 500


def main():
    try:
        sql_client.init_db()
    except SQLAlchemyError as e:
        app.logger.error(f"Error initializing database tables: {e}")
    app.run(host='0.0.0.0', port=PORT)


if __name__ == '__main__':
    main()
