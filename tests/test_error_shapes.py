"""
Every failure leaves the stack as ``{"error": ...}`` with the right status.
"""
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import auth_headers
from main import create_app
from utils.exceptions import ErrorCategory, InternalError, RateExceededError


def test_unknown_route(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}


def test_method_not_allowed(client):
    response = client.patch("/health")
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_missing_token(client):
    response = client.get("/api/tasks")
    assert response.status_code == 401
    assert response.json() == {"error": "Access token required"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_garbage_token(client):
    response = client.get("/api/tasks", headers=auth_headers("not-a-jwt"))
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token format"}


def test_forbidden_role(client, user_account):
    response = client.get("/api/users", headers=auth_headers(user_account["token"]))
    assert response.status_code == 403
    assert response.json() == {"error": "Insufficient permissions"}


def test_validation_error_is_400(client, user_account):
    response = client.post("/api/tasks", json={"title": "ab"}, headers=auth_headers(user_account["token"]))
    assert response.status_code == 400
    body = response.json()
    assert body["error"].startswith("Invalid value for 'title'")
    assert body["details"][0]["field"] == "title"


def test_malformed_json(client):
    response = client.post(
        "/api/auth/login",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Malformed request body"}


def test_security_headers_and_request_id(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Content-Security-Policy" in response.headers
    assert "Strict-Transport-Security" not in response.headers


def test_request_id_is_generated(client):
    assert client.get("/health").headers["X-Request-ID"]


def test_guard_rejections_carry_security_headers(client):
    response = client.get("/api/tasks")
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_unhandled_exception_is_generic_500(app):
    async def explode():
        raise RuntimeError("database password is hunter2")

    app.add_api_route("/api/explode", explode, methods=["GET"])
    with TestClient(app) as client:
        response = client.get("/api/explode")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "hunter2" not in response.text
    assert response.headers["X-Request-ID"]


@pytest.fixture
def small_body_app(settings, clock):
    settings.max_body_size = 1024

    async def no_sleep(seconds):
        return None

    return create_app(settings, clock=clock, sleep=no_sleep)


def test_oversized_body(small_body_app):
    with TestClient(small_body_app) as client:
        response = client.post("/api/auth/login", json={"email": "a@b.io", "password": "x" * 2048})
    assert response.status_code == 413
    assert response.json() == {"error": "Request body too large"}


class TestOriginPolicy:
    def test_foreign_origin_is_rejected(self, client, audit_events):
        response = client.get("/health", headers={"Origin": "https://evil.example.net"})
        assert response.status_code == 403
        assert response.json() == {"error": "Origin not allowed"}
        assert [e.kind.value for e in audit_events] == ["ORIGIN_REJECTED"]

    def test_local_origin_is_allowed(self, client):
        response = client.get("/health", headers={"Origin": "http://localhost:3000"})
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_no_origin_is_allowed(self, client):
        assert client.get("/health").status_code == 200


def test_production_adds_hsts(settings, clock):
    settings.environment = "production"

    async def no_sleep(seconds):
        return None

    with TestClient(create_app(settings, clock=clock, sleep=no_sleep)) as client:
        response = client.get("/health")
    assert response.headers["Strict-Transport-Security"].startswith("max-age=")


class TestClientShapedErrors:
    def test_unexpected_field_name_is_not_echoed(self, client):
        hostile_key = "<img src=x onerror=alert(1)>"
        response = client.post(
            "/api/auth/login",
            json={"email": "maria.ivanova@bureau-mail.com", "password": "x", hostile_key: 1},
        )
        assert response.status_code == 400
        assert hostile_key not in response.text
        assert "onerror" not in response.text
        assert response.json()["error"] == "Invalid value for 'unknown': Unexpected field"

    def test_plain_unexpected_field_is_named(self, client, boss_account):
        response = client.post(
            "/api/tasks",
            json={"title": "Prepare budget report", "priority_boost": 3},
            headers=auth_headers(boss_account["token"]),
        )
        assert response.status_code == 400
        assert response.json()["details"] == [{"field": "priority_boost", "message": "Unexpected field"}]


class TestMalformedBodiesAreCounted:
    def test_general_limiter_sees_malformed_bodies(self, client):
        remote = {"X-Forwarded-For": "203.0.113.77", "Content-Type": "application/json"}
        statuses = {client.put("/api/tasks/some-task", content=b"{not json", headers=remote).status_code for _ in range(100)}
        assert statuses == {400}

        response = client.put("/api/tasks/some-task", content=b"{not json", headers=remote)
        assert response.status_code == 429
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_auth_limiter_sees_malformed_bodies(self, client):
        remote = {"X-Forwarded-For": "203.0.113.78", "Content-Type": "application/json"}
        for _ in range(5):
            assert client.post("/api/tasks", content=b"{not json", headers=remote).status_code == 400

        response = client.post("/api/tasks", content=b"{not json", headers=remote)
        assert response.status_code == 429
        assert response.json()["error"] == "Too many authentication attempts, please try again later"

    def test_malformed_body_carries_rate_headers(self, client):
        response = client.put(
            "/api/tasks/some-task",
            content=b"{not json",
            headers={"X-Forwarded-For": "203.0.113.79", "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.headers["X-RateLimit-Remaining"] == "99"


def test_oversized_bodies_are_counted(small_body_app):
    with TestClient(small_body_app) as client:
        payload = {"email": "a@b.io", "password": "x" * 2048}
        for _ in range(5):
            assert client.post("/api/auth/login", json=payload).status_code == 413
        response = client.post("/api/auth/login", json=payload)
    assert response.status_code == 429


class TestErrorTaxonomy:
    def test_internal_error_never_shows_its_message(self):
        assert InternalError("connection pool exhausted").to_dict() == {"error": "Internal server error"}

    def test_rate_exceeded_carries_retry_hint(self):
        error = RateExceededError("Slow down", retry_after=30)
        assert error.status_code == 429
        assert error.category is ErrorCategory.RATE_LIMIT
        assert error.headers == {"Retry-After": "30"}
        assert error.to_dict() == {"error": "Slow down", "retry_after": 30}

    def test_handled_errors_are_logged_with_category(self, client, user_account, caplog):
        with caplog.at_level(logging.INFO, logger="middleware.global_error_handler"):
            response = client.put(
                "/api/users/no-such-user",
                json={"first_name": "Maria"},
                headers=auth_headers(user_account["token"]),
            )
        assert response.status_code == 403
        assert "403 authorization: You can only edit your own profile" in caplog.text
