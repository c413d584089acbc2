"""End-to-end tests for rate limited routes.

Each test builds its own app around a fresh counter store so counters never
leak between tests.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from ratelimit_guard.adapters.counter_store.in_memory import InMemoryCounterStore
from ratelimit_guard.core.app_factory import create_app
from ratelimit_guard.core.config import AppSettings, Settings
from ratelimit_guard.core.errors import ConfigurationAppError, StoreUnavailableError
from ratelimit_guard.core.rate_limit import RateLimit


def _client(store=None, **app_overrides) -> TestClient:
    cfg = Settings(app=AppSettings(**app_overrides)) if app_overrides else None
    return TestClient(create_app(
        store=store if store is not None else InMemoryCounterStore(), app_settings=cfg
    ))


def _failing_store() -> Mock:
    error = StoreUnavailableError(code="counter_store_unavailable", message="down")
    store = Mock()
    store.try_increment.side_effect = error
    store.peek.side_effect = error
    return store


@pytest.fixture
def client() -> TestClient:
    return _client()


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}


class TestLogin:
    def test_admits_up_to_limit_then_429(self, client: TestClient) -> None:
        for attempt in range(5):
            resp = client.post("/v1/account/login")
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Limit"] == "5"
            assert resp.headers["X-RateLimit-Remaining"] == str(4 - attempt)

        resp = client.post("/v1/account/login", headers={"X-Request-ID": "req-429"})

        assert resp.status_code == 429
        error = resp.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert error["message"] == (
            "You are allowed to make 5 request(s) every 1 minute(s). Please try again later."
        )
        assert error["request_id"] == "req-429"
        assert error["details"]["identity_mode"] == "by_origin"
        assert error["details"]["retry_after"] == int(resp.headers["Retry-After"])
        assert 1 <= int(resp.headers["Retry-After"]) <= 60
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_response_names_operation(self, client: TestClient) -> None:
        body = client.post("/v1/account/login").json()

        assert body["status"] == "accepted"
        assert body["operation"] == "ratelimit_guard.api.routes.account.login"

    def test_origins_counted_separately_behind_trusted_proxy(self) -> None:
        client = _client(trust_forwarded_for=True)

        for _ in range(5):
            assert client.post(
                "/v1/account/login", headers={"X-Forwarded-For": "203.0.113.1"}
            ).status_code == 200
        assert client.post(
            "/v1/account/login", headers={"X-Forwarded-For": "203.0.113.1"}
        ).status_code == 429

        assert client.post(
            "/v1/account/login", headers={"X-Forwarded-For": "203.0.113.2"}
        ).status_code == 200

    def test_headers_can_be_disabled(self) -> None:
        client = _client(rate_limit_include_headers=False)

        ok = client.post("/v1/account/login")
        for _ in range(5):
            resp = client.post("/v1/account/login")

        assert "X-RateLimit-Limit" not in ok.headers
        assert resp.status_code == 429
        assert "X-RateLimit-Limit" not in resp.headers
        assert "Retry-After" in resp.headers

    def test_disabled_rate_limiting_admits_everything(self) -> None:
        client = _client(rate_limit_enabled=False)

        statuses = {client.post("/v1/account/login").status_code for _ in range(10)}

        assert statuses == {200}


class TestPasswordReset:
    def test_anonymous_caller_is_401_and_not_counted(
        self, client: TestClient, valid_api_key_headers: dict[str, str]
    ) -> None:
        for _ in range(3):
            resp = client.post("/v1/account/password-reset")
            assert resp.status_code == 401
            assert resp.headers["WWW-Authenticate"] == "ApiKey"
            error = resp.json()["error"]
            assert error["code"] == "not_authenticated"
            assert error["message"] == "You are not authenticated"

        resp = client.post("/v1/account/password-reset", headers=valid_api_key_headers)
        assert resp.status_code == 200

    def test_invalid_key_is_403(self, client: TestClient) -> None:
        resp = client.post("/v1/account/password-reset", headers={"X-API-Key": "nope"})
        assert resp.status_code == 403

    def test_one_per_subject(
        self, client: TestClient, valid_api_key_headers: dict[str, str]
    ) -> None:
        assert client.post(
            "/v1/account/password-reset", headers=valid_api_key_headers
        ).status_code == 200

        resp = client.post("/v1/account/password-reset", headers=valid_api_key_headers)
        assert resp.status_code == 429
        assert "every 60 minute(s)" in resp.json()["error"]["message"]
        assert resp.json()["error"]["details"]["identity_mode"] == "by_subject"

        other = client.post(
            "/v1/account/password-reset", headers={"X-API-Key": "test-api-key-456"}
        )
        assert other.status_code == 200

    def test_operations_do_not_share_counters(
        self, client: TestClient, valid_api_key_headers: dict[str, str]
    ) -> None:
        for _ in range(5):
            client.post("/v1/account/login", headers=valid_api_key_headers)
        assert client.post("/v1/account/login").status_code == 429

        resp = client.post("/v1/account/password-reset", headers=valid_api_key_headers)
        assert resp.status_code == 200


class TestStoreFailure:
    def test_fail_closed_returns_503(self) -> None:
        client = _client(store=_failing_store(), rate_limit_failure_policy="closed")

        resp = client.post("/v1/account/login")

        assert resp.status_code == 503
        error = resp.json()["error"]
        assert error["code"] == "counter_store_unavailable"
        assert "temporarily unavailable" in error["message"]
        assert "details" not in error

    def test_fail_open_admits(self) -> None:
        client = _client(store=_failing_store(), rate_limit_failure_policy="open")

        assert client.post("/v1/account/login").status_code == 200


class TestLoginLimitStatus:
    def test_reports_without_consuming(self, client: TestClient) -> None:
        empty = client.get("/v1/account/login/limit").json()
        assert empty["count"] == 0
        assert empty["remaining"] == 5
        assert empty["reset_at"] is None

        client.post("/v1/account/login")
        client.post("/v1/account/login")
        status = client.get("/v1/account/login/limit").json()
        client.get("/v1/account/login/limit")

        assert status["count"] == 2
        assert status["remaining"] == 3
        assert status["limit"] == 5
        assert status["window_seconds"] == 60
        assert isinstance(status["reset_at"], int)
        assert client.get("/v1/account/login/limit").json()["count"] == 2

    def test_store_down_maps_to_503_error_payload(self) -> None:
        client = _client(store=_failing_store())

        resp = client.get("/v1/account/login/limit")

        assert resp.status_code == 503
        error = resp.json()["error"]
        assert error["code"] == "counter_store_unavailable"
        assert "details" not in error


def test_health_reports_store(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "counter_store": "InMemoryCounterStore"}


def test_invalid_route_limit_fails_at_declaration() -> None:
    with pytest.raises(ConfigurationAppError):
        RateLimit(max_attempts=0, window_minutes=1)

    with pytest.raises(ConfigurationAppError):
        RateLimit(max_attempts=1)
