# stockwatch/api_gateway/tests/test_gateway.py
import os
import json
import tempfile
import unittest
from unittest.mock import patch

import requests

# Set environment variables before importing the app
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "stockwatch-test-logs"))

from stockwatch.api_gateway import app as gateway_module
from stockwatch.api_gateway.app import app


def _fake_response(status_code: int, payload, headers=None):
    """Helper to construct a fake requests.Response-like object."""
    class _R:
        def __init__(self, sc, body, hdrs):
            self.status_code = sc
            self.content = json.dumps(body).encode("utf-8")
            self.headers = {"Content-Type": "application/json", **(hdrs or {})}
    return _R(status_code, payload, headers)


class TestGateway(unittest.TestCase):

    def setUp(self):
        self.app = app.test_client()
        self.app.testing = True
        services = patch.dict(gateway_module.SERVICES, {
            "users": "http://account-service:3001",
            "stocks": "http://quote-service:3002",
        })
        services.start()
        self.addCleanup(services.stop)

    @patch('requests.request')
    def test_routes_users_prefix_to_account_service(self, mock_request):
        """A request to /api/users/* reaches account-service with the prefix stripped."""
        mock_request.return_value = _fake_response(200, {"token": "t", "user": {"id": 1, "username": "amy"}})

        response = self.app.post('/api/users/login', json={"username": "amy", "password": "pw"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json["token"], "t")
        args, kwargs = mock_request.call_args
        self.assertEqual(args, ("POST", "http://account-service:3001/login"))
        self.assertEqual(json.loads(kwargs["data"]), {"username": "amy", "password": "pw"})
        self.assertEqual(kwargs["timeout"], gateway_module.GATEWAY_TIMEOUT_SECONDS)

    @patch('requests.request')
    def test_routes_stocks_prefix_with_query_params(self, mock_request):
        mock_request.return_value = _fake_response(200, [])

        response = self.app.get('/api/stocks/historical/AAPL?start=2024-01-01&end=2024-01-31')

        self.assertEqual(response.status_code, 200)
        args, kwargs = mock_request.call_args
        self.assertEqual(args, ("GET", "http://quote-service:3002/historical/AAPL"))
        self.assertEqual(kwargs["params"], [("start", "2024-01-01"), ("end", "2024-01-31")])

    @patch('requests.request')
    def test_authorization_header_is_forwarded(self, mock_request):
        mock_request.return_value = _fake_response(200, ["AAPL"])

        self.app.get('/api/users/tracked', headers={"Authorization": "Bearer abc"})

        forwarded = mock_request.call_args.kwargs["headers"]
        self.assertEqual(forwarded.get("Authorization"), "Bearer abc")
        self.assertNotIn("Host", forwarded)

    @patch('requests.request')
    def test_downstream_status_and_body_pass_through(self, mock_request):
        mock_request.return_value = _fake_response(404, {"error": "Stock not found"})

        response = self.app.get('/api/stocks/price/ZZZZ')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json, {"error": "Stock not found"})

    @patch('requests.request')
    def test_mount_root_is_forwarded(self, mock_request):
        mock_request.return_value = _fake_response(200, {"status": "healthy"})
        self.app.get('/api/users')
        self.assertEqual(mock_request.call_args.args, ("GET", "http://account-service:3001/"))

    def test_unknown_service_returns_404(self):
        response = self.app.get('/api/unknown/thing')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json, {"error": "Service not found"})

    @patch('requests.request')
    def test_path_traversal_is_rejected(self, mock_request):
        response = self.app.get('/api/users/foo/..%2F..%2Fetc/passwd')
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.json)
        mock_request.assert_not_called()

    @patch('requests.request')
    def test_internal_account_endpoints_are_not_exposed(self, mock_request):
        """The pending-alert listing and the trigger transition stay off the public surface."""
        blocked = [
            ("get", '/api/users/internal/alerts/pending'),
            ("patch", '/api/users/alerts/7/trigger'),
            ("patch", '/api/users/alerts/7/trigger/'),
        ]
        for method, url in blocked:
            response = getattr(self.app, method)(url)
            self.assertEqual(response.status_code, 404, url)
        mock_request.assert_not_called()

    @patch('requests.request')
    def test_public_alert_routes_still_forwarded(self, mock_request):
        mock_request.return_value = _fake_response(200, {"message": "Alert deleted"})

        response = self.app.delete('/api/users/alerts/7', headers={"Authorization": "Bearer abc"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(mock_request.call_args.args, ("DELETE", "http://account-service:3001/alerts/7"))

    @patch('requests.request', side_effect=requests.exceptions.Timeout)
    def test_downstream_timeout_returns_504(self, _mock):
        response = self.app.get('/api/stocks/price/AAPL')
        self.assertEqual(response.status_code, 504)

    @patch('requests.request', side_effect=requests.exceptions.ConnectionError("refused"))
    def test_downstream_connection_error_returns_503(self, _mock):
        response = self.app.get('/api/users/tracked')
        self.assertEqual(response.status_code, 503)
        self.assertIn("users", response.json["error"])

    @patch('requests.request')
    def test_cors_allows_any_origin(self, mock_request):
        mock_request.return_value = _fake_response(200, [], headers={"Access-Control-Allow-Origin": "http://internal"})

        response = self.app.get('/api/users/tracked', headers={"Origin": "http://example.com"})

        self.assertEqual(response.headers.get("Access-Control-Allow-Origin"), "*")

    def test_health(self):
        response = self.app.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json["service"], "api-gateway")


if __name__ == '__main__':
    unittest.main()
