"""
End-to-end tests for login throttling through the full application.
"""

import importlib
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from admissions.core.database import get_db
from admissions.core.security import hash_password
from admissions.main import app
from admissions.modules.users.models import User

LOGIN_URL = "/api/v1/auth/login"
GET_BY_EMAIL = "admissions.modules.users.repository.UserRepository.get_by_email"
GET_ACTIVE_ROLES = "admissions.modules.users.repository.UserRepository.get_active_roles"

# The package re-exports ``router``; fetch the module itself for patching
auth_router_module = importlib.import_module("admissions.modules.auth.router")


@pytest.fixture
def client():
    async def _fake_db():
        yield MagicMock()

    app.dependency_overrides[get_db] = _fake_db
    # Not used as a context manager: the lifespan (Redis, DB, scheduler) never starts
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login_limit(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_AUTH_LOGIN_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS", str(15 * 60))


def _login(client, email="nobody@example.com", password="wrong-password"):
    return client.post(LOGIN_URL, json={"email": email, "password": password})


class TestLoginRateLimit:
    def test_fourth_attempt_is_throttled(self, client, login_limit):
        with patch(GET_BY_EMAIL, new=AsyncMock(return_value=None)) as get_by_email:
            responses = [_login(client) for _ in range(4)]

        assert [r.status_code for r in responses] == [401, 401, 401, 429]
        # The limited request never reaches the credential check
        assert get_by_email.await_count == 3

        limited = responses[3]
        assert limited.headers["X-RateLimit-Remaining"] == "0"
        assert limited.headers["X-RateLimit-Limit"] == "3"
        assert int(limited.headers["Retry-After"]) > 0
        assert limited.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"

    def test_limit_is_per_client_ip(self, client, login_limit):
        with patch(GET_BY_EMAIL, new=AsyncMock(return_value=None)):
            for _ in range(3):
                _login(client)
            other = client.post(
                LOGIN_URL,
                json={"email": "nobody@example.com", "password": "wrong-password"},
                headers={"X-Forwarded-For": "203.0.113.9"},
            )

        assert other.status_code == 401

    def test_successful_login_returns_tokens_with_roles(self, client):
        now = datetime.now(UTC)
        user = User(
            id=uuid4(),
            email="officer@example.edu",
            password_hash=hash_password("correct-horse"),
            full_name="Chanda Phiri",
            is_active=True,
            is_verified=True,
            created_at=now,
            updated_at=now,
        )

        with (
            patch(GET_BY_EMAIL, new=AsyncMock(return_value=user)),
            patch(GET_ACTIVE_ROLES, new=AsyncMock(return_value=["admissions_officer"])),
            patch.object(auth_router_module, "log_audit_event", new=AsyncMock()),
        ):
            response = _login(client, "officer@example.edu", "correct-horse")

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["roles"] == ["admissions_officer"]
        assert body["access_token"]
        assert body["token_type"] == "bearer"
