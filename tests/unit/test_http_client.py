"""
ResilientClient retry policy tests.

HTTP is faked with httpx.MockTransport and sleeps are recorded instead of
slept, so the backoff schedule can be asserted exactly.

Run with: pytest tests/unit/test_http_client.py -v
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def _client(handler, session=None, **kwargs):
    from utils.http_client import ResilientClient

    sleeps = []
    client = ResilientClient(
        base_url="http://crm.test",
        session=session,
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
        **kwargs,
    )
    return client, sleeps


def _session(token="tok-1", refresh_result=True):
    session = MagicMock()
    session.access_token.return_value = token
    session.refresh.return_value = refresh_result
    return session


class TestTransportRetries:
    """Connection failures back off exponentially."""

    def test_backoff_doubles_between_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": True})

        client, sleeps = _client(handler, session=_session())
        response = client.request("/api/accounts")

        assert response.status_code == 200
        assert len(calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_raise_network_error(self):
        from utils.error_handling import ErrorKind, NetworkError

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client, sleeps = _client(handler, session=_session(), retries=2, backoff_ms=100)
        with pytest.raises(NetworkError) as exc_info:
            client.request("/api/accounts")

        assert exc_info.value.kind is ErrorKind.FRONTEND_NETWORK
        assert sleeps == [0.1, 0.2]

    def test_timeouts_raise_request_timeout(self):
        from utils.error_handling import ErrorKind, RequestTimeoutError

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client, sleeps = _client(handler, session=_session(), retries=1)
        with pytest.raises(RequestTimeoutError) as exc_info:
            client.request("/api/accounts")

        assert exc_info.value.kind is ErrorKind.BACKEND_TIMEOUT
        assert sleeps == [1.0]

    def test_protocol_errors_are_not_retried(self):
        from utils.error_handling import NetworkError

        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.UnsupportedProtocol("unknown scheme", request=request)

        client, sleeps = _client(handler, session=_session())
        with pytest.raises(NetworkError):
            client.request("/api/accounts")

        assert len(calls) == 1
        assert sleeps == []


class TestAuthRefresh:
    """401 refreshes the session and retries without backoff growth."""

    def test_refresh_then_retry(self):
        session = _session()
        statuses = iter([401, 200])

        def handler(request):
            return httpx.Response(next(statuses), json={})

        client, sleeps = _client(handler, session=session)
        response = client.request("/api/accounts")

        assert response.status_code == 200
        session.refresh.assert_called_once()
        assert sleeps == []

    def test_refresh_does_not_grow_transport_backoff(self):
        session = _session()
        outcomes = iter(["401", "error", "200"])

        def handler(request):
            outcome = next(outcomes)
            if outcome == "error":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(int(outcome), json={})

        client, sleeps = _client(handler, session=session)
        client.request("/api/accounts")

        assert sleeps == [1.0]

    def test_failed_refresh_raises_auth_error(self):
        from utils.error_handling import AuthError, ErrorKind

        session = _session(refresh_result=False)
        client, _ = _client(lambda request: httpx.Response(401), session=session)

        with pytest.raises(AuthError) as exc_info:
            client.request("/api/accounts")
        assert exc_info.value.kind is ErrorKind.BACKEND_AUTH

    def test_persistent_401_stops_when_retries_run_out(self):
        from utils.error_handling import AuthError

        session = _session()
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        client, _ = _client(handler, session=session, retries=2)
        with pytest.raises(AuthError):
            client.request("/api/accounts")

        assert len(calls) == 3
        assert session.refresh.call_count == 2


class TestServerErrors:
    """5xx responses are raised immediately."""

    def test_500_is_not_retried(self):
        from utils.error_handling import ErrorKind, InternalServerError

        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"message": "database down"})

        client, sleeps = _client(handler, session=_session())
        with pytest.raises(InternalServerError) as exc_info:
            client.request("/api/accounts")

        assert len(calls) == 1
        assert sleeps == []
        assert str(exc_info.value) == "database down"
        assert exc_info.value.kind is ErrorKind.BACKEND_INTERNAL
        assert exc_info.value.status_code == 500

    def test_error_field_and_fallback_message(self):
        from utils.error_handling import InternalServerError

        client, _ = _client(lambda request: httpx.Response(502, json={"error": "bad gateway"}))
        with pytest.raises(InternalServerError, match="bad gateway"):
            client.request("/x")

        client, _ = _client(lambda request: httpx.Response(503, text="<html>"))
        with pytest.raises(InternalServerError, match=r"Server error \(503\)"):
            client.request("/x")

    def test_4xx_is_returned(self):
        client, _ = _client(lambda request: httpx.Response(404, json={"message": "nope"}))
        assert client.request("/x").status_code == 404


class TestHeaders:
    """Bearer token and JSON content type."""

    def test_token_and_content_type(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["type"] = request.headers.get("content-type")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "a1"})

        client, _ = _client(handler, session=_session("abc"))
        client.request("/api/accounts", "POST", json_body={"name": "Acme"})

        assert seen == {"auth": "Bearer abc", "type": "application/json", "body": {"name": "Acme"}}

    def test_missing_token_is_not_fatal(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=[])

        client, _ = _client(handler, session=_session(token=None))
        assert client.request("/api/accounts").status_code == 200
        assert seen["auth"] is None


class TestParseJson:
    """Response classification for JSON bodies."""

    def test_success(self):
        from utils.http_client import parse_json

        assert parse_json(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_401(self):
        from utils.error_handling import AuthError
        from utils.http_client import parse_json

        with pytest.raises(AuthError):
            parse_json(httpx.Response(401))

    def test_other_failure(self):
        from utils.error_handling import InternalServerError
        from utils.http_client import parse_json

        with pytest.raises(InternalServerError) as exc_info:
            parse_json(httpx.Response(404, json={"message": "missing"}))
        assert exc_info.value.status_code == 404

    def test_invalid_json(self):
        from utils.error_handling import AppError, ErrorKind
        from utils.http_client import parse_json

        with pytest.raises(AppError) as exc_info:
            parse_json(httpx.Response(200, text="not json"))
        assert exc_info.value.kind is ErrorKind.FRONTEND_RENDER


class TestFromSettings:
    def test_settings_drive_policy(self):
        from utils.http_client import ResilientClient
        from utils.settings import Settings

        settings = Settings(api_base_url="http://crm.test", request_retries=5, request_backoff_ms=250)
        client = ResilientClient.from_settings(settings, retries=0)

        assert client.retries == 0
        assert client.backoff_ms == 250
        client.close()
