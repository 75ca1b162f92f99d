"""
Registration, login and brute-force behaviour through the HTTP stack.
"""
from conftest import STRONG_PASSWORD, auth_headers, register_user

from security.security_audit_logger import SuspiciousEventKind

LOGIN = "/api/auth/login"
BRUTE_FORCE_MESSAGE = "Too many failed attempts. Please try again in 15 minutes."


def login(client, email, password, **kwargs):
    return client.post(LOGIN, json={"email": email, "password": password}, **kwargs)


class TestRegistration:
    def test_register_returns_token_and_user(self, client):
        body = register_user(client)
        assert body["token"]
        assert body["user"]["email"] == "maria.ivanova@bureau-mail.com"
        assert body["user"]["role"] == "USER"
        assert "password_hash" not in body["user"]

    def test_role_cannot_be_chosen(self, client):
        response = client.post("/api/auth/register", json={
            "email": "ivan.sidorov@bureau-mail.com",
            "password": STRONG_PASSWORD,
            "first_name": "Ivan",
            "last_name": "Sidorov",
            "role": "ADMIN",
        })
        assert response.status_code == 400

    def test_duplicate_email(self, client):
        register_user(client)
        response = client.post("/api/auth/register", json={
            "email": "MARIA.IVANOVA@bureau-mail.com",
            "password": STRONG_PASSWORD,
            "first_name": "Maria",
            "last_name": "Ivanova",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "A user with this email already exists"}

    def test_weak_password(self, client):
        response = client.post("/api/auth/register", json={
            "email": "ivan.sidorov@bureau-mail.com",
            "password": "weakpass",
            "first_name": "Ivan",
            "last_name": "Sidorov",
        })
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid value for 'password'")

    def test_password_is_not_scanned_or_rewritten(self, client):
        password = "It's&<Str0ng>!"
        register_user(client, email="quote.user@bureau-mail.com", password=password)
        response = login(client, "quote.user@bureau-mail.com", password)
        assert response.status_code == 200


class TestLogin:
    def test_login_and_me(self, client, user_account):
        response = login(client, "maria.ivanova@bureau-mail.com", STRONG_PASSWORD)
        assert response.status_code == 200
        token = response.json()["token"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json()["id"] == user_account["user"]["id"]

    def test_wrong_password_and_unknown_user_look_the_same(self, client, user_account):
        wrong = login(client, "maria.ivanova@bureau-mail.com", "Wr0ng!Pass")
        unknown = login(client, "nobody@bureau-mail.com", "Wr0ng!Pass")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"error": "Invalid email or password"}

    def test_sixth_failure_is_blocked(self, client, audit_events):
        for _ in range(5):
            assert login(client, "nobody@bureau-mail.com", "Wr0ng!Pass").status_code == 401

        response = login(client, "nobody@bureau-mail.com", "Wr0ng!Pass")
        assert response.status_code == 429
        assert response.json() == {"error": BRUTE_FORCE_MESSAGE, "retry_after": 900}
        assert int(response.headers["Retry-After"]) > 0
        assert SuspiciousEventKind.BRUTE_FORCE_BLOCKED in [e.kind for e in audit_events]

    def test_block_applies_even_with_correct_password(self, client, user_account):
        for _ in range(5):
            login(client, "maria.ivanova@bureau-mail.com", "Wr0ng!Pass")
        response = login(client, "maria.ivanova@bureau-mail.com", STRONG_PASSWORD)
        assert response.status_code == 429
        assert response.json()["error"] == BRUTE_FORCE_MESSAGE

    def test_block_lifts_after_window(self, client, clock, user_account):
        for _ in range(5):
            login(client, "maria.ivanova@bureau-mail.com", "Wr0ng!Pass")
        assert login(client, "maria.ivanova@bureau-mail.com", STRONG_PASSWORD).status_code == 429

        clock.advance(901)
        assert login(client, "maria.ivanova@bureau-mail.com", STRONG_PASSWORD).status_code == 200

    def test_success_resets_failure_count(self, client, user_account):
        for _ in range(4):
            login(client, "maria.ivanova@bureau-mail.com", "Wr0ng!Pass")
        assert login(client, "maria.ivanova@bureau-mail.com", STRONG_PASSWORD).status_code == 200

        response = login(client, "maria.ivanova@bureau-mail.com", "Wr0ng!Pass")
        assert response.status_code == 401

    def test_counters_are_per_address(self, client):
        for _ in range(5):
            login(client, "nobody@bureau-mail.com", "Wr0ng!Pass", headers={"X-Forwarded-For": "198.51.100.1"})

        blocked = login(client, "nobody@bureau-mail.com", "Wr0ng!Pass", headers={"X-Forwarded-For": "198.51.100.1"})
        other = login(client, "nobody@bureau-mail.com", "Wr0ng!Pass", headers={"X-Forwarded-For": "198.51.100.2"})
        assert blocked.status_code == 429
        assert other.status_code == 401

    def test_auth_limiter_is_shared_across_credential_routes(self, client):
        for _ in range(5):
            login(client, "nobody@bureau-mail.com", "Wr0ng!Pass")

        # Registration has its own brute-force counter but shares the auth limiter.
        response = client.post("/api/auth/register", json={
            "email": "new.person@bureau-mail.com",
            "password": STRONG_PASSWORD,
            "first_name": "Anna",
            "last_name": "Orlova",
        })
        assert response.status_code == 429
        assert response.json()["error"] == "Too many authentication attempts, please try again later"

    def test_injection_in_email_is_rejected(self, client, audit_events):
        response = login(client, "x' OR 1=1 --", "anything")
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid input detected in field 'body.email'", "field": "body.email"}
        assert SuspiciousEventKind.INJECTION_ATTEMPT in [e.kind for e in audit_events]

    def test_audit_log_never_contains_password(self, client, audit_events):
        login(client, "x' OR 1=1 --", "TopSecret!1")
        event = next(e for e in audit_events if e.kind is SuspiciousEventKind.INJECTION_ATTEMPT)
        assert event.details["body"]["password"] == "***"
