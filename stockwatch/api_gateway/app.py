# stockwatch/api_gateway/app.py
import os

import requests
from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from stockwatch.shared.logging_setup import setup_logging

app = Flask(__name__)
PORT = int(os.getenv("PORT", 3000))

# Permissive CORS: the frontend may be served from any origin
CORS(app)

setup_logging(app, "api-gateway")

# Service URLs are managed via environment variables
SERVICES = {
    "users": os.getenv("ACCOUNT_SERVICE_URL", "http://localhost:3001"),
    "stocks": os.getenv("QUOTE_SERVICE_URL", "http://localhost:3002"),
}
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "20"))

# Hop-by-hop headers (RFC 7230 6.1) plus the ones requests recomputes itself
_EXCLUDED_REQUEST_HEADERS = {
    "host", "content-length", "connection", "keep-alive", "proxy-authenticate",
    "proxy-authorization", "te", "trailers", "transfer-encoding", "upgrade",
}
_EXCLUDED_RESPONSE_HEADERS = _EXCLUDED_REQUEST_HEADERS | {"content-encoding", "access-control-allow-origin"}

_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE']


def _is_internal_path(service: str, path: str) -> bool:
    """account-service endpoints reserved for the alert loop: internal/* and alerts/<id>/trigger."""
    if service != "users":
        return False
    segments = [s.lower() for s in path.split('/') if s]
    if not segments:
        return False
    if segments[0] == "internal":
        return True
    return len(segments) >= 3 and segments[0] == "alerts" and segments[2] == "trigger"


@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({"status": "healthy", "service": "api-gateway"}), 200


@app.route('/api/<service>', methods=_METHODS)
@app.route('/api/<service>/<path:path>', methods=_METHODS)
def gateway(service, path=""):
    """
    Forwards /api/users/* to account-service and /api/stocks/* to quote-service.
    The mount prefix is stripped; method, query, body and headers pass through unchanged.
    account-service's internal endpoints are not reachable through the gateway.
    """
    if service not in SERVICES:
        return jsonify({"error": "Service not found"}), 404

    # Security check to prevent path traversal
    if '..' in path:
        return jsonify({"error": "Malicious path detected"}), 400

    # Internal endpoints are never published, whether or not INTERNAL_API_KEY is set
    if _is_internal_path(service, path):
        app.logger.warning(f"Blocked public {request.method} to internal path '{path}'")
        return jsonify({"error": "Not found"}), 404

    target_url = f"{SERVICES[service].rstrip('/')}/{path}"
    headers = {k: v for k, v in request.headers.items() if k.lower() not in _EXCLUDED_REQUEST_HEADERS}

    try:
        resp = requests.request(
            request.method,
            target_url,
            params=list(request.args.items(multi=True)),
            data=request.get_data(),
            headers=headers,
            timeout=GATEWAY_TIMEOUT_SECONDS,
        )
    except requests.exceptions.Timeout:
        app.logger.error(f"Timeout connecting to {service} ({target_url})")
        return jsonify({"error": f"Timeout connecting to {service}"}), 504
    except requests.exceptions.ConnectionError as e:
        app.logger.error(f"Connection error to {service}: {e}")
        return jsonify({"error": f"Service unavailable: {service}", "details": str(e)}), 503
    except requests.exceptions.RequestException as e:
        app.logger.error(f"Error forwarding request to {service}: {e}")
        return jsonify({"error": f"Error in {service} communication", "details": str(e)}), 502

    response_headers = [
        (k, v) for k, v in resp.headers.items() if k.lower() not in _EXCLUDED_RESPONSE_HEADERS
    ]
    return Response(resp.content, status=resp.status_code, headers=response_headers)


def main():
    app.run(host='0.0.0.0', port=PORT)


if __name__ == '__main__':
    main()
