"""
Pytest configuration and fixtures for the Bureau task manager API.

Every app-level test gets a fresh app (fresh counter tables, fresh in-memory
repositories) driven by a fake clock, with the soft-limit delay recorded
instead of slept.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

# Set testing environment variables before importing the app
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret-key-for-testing-only-0123456789"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="bureau-uploads-"))

from config import Settings
from main import create_app

TEST_SECRET = os.environ["JWT_SECRET"]
STRONG_PASSWORD = "Str0ng!Pass"


class FakeClock:
    """Manually advanced time source in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        jwt_secret=TEST_SECRET,
        password_hash_rounds=4,
        trust_forwarded_for=True,
        upload_dir=str(tmp_path / "uploads"),
        redis_url=None,
    )


@pytest.fixture
def app(settings, clock, sleeps):
    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return create_app(settings, clock=clock, sleep=record_sleep)


@pytest.fixture
def client(app):
    """Test client for FastAPI app with lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def audit_events(app) -> List[Any]:
    """Every suspicious-activity event emitted by the app under test."""
    events: List[Any] = []
    app.state.guard_services.audit.add_sink(events.append)
    return events


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def future_deadline(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def register_user(
    client: TestClient,
    email: str = "maria.ivanova@bureau-mail.com",
    password: str = STRONG_PASSWORD,
    first_name: str = "Maria",
    last_name: str = "Ivanova"
) -> Dict[str, Any]:
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
    })
    assert response.status_code == 200, response.text
    return response.json()


def create_staff_user(app, role: str, email: str) -> Dict[str, Any]:
    """Seed a manager directly in the repository and sign a token for it."""
    users = app.state.auth_service.users
    user = users.create_user({
        "email": email,
        "password_hash": "",
        "first_name": "Olga",
        "last_name": "Petrova",
        "patronymic": None,
        "role": role,
    })
    token = app.state.guard_services.credentials.issue_token(user["id"], user["email"], role)
    return {"user": user, "token": token}


@pytest.fixture
def user_account(client):
    return register_user(client)


@pytest.fixture
def boss_account(app):
    return create_staff_user(app, "BOSS", "olga.petrova@bureau-mail.com")


@pytest.fixture
def admin_account(app):
    return create_staff_user(app, "ADMIN", "chief.office@bureau-mail.com")
