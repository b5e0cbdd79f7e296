"""
Health check tests. The lifespan is not run, so no backing service is needed.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from admissions.main import app


@pytest.fixture
def client():
    return TestClient(app)


def _session_maker(session):
    maker = MagicMock()
    maker.return_value.__aenter__ = AsyncMock(return_value=session)
    maker.return_value.__aexit__ = AsyncMock(return_value=False)
    return maker


def test_health_needs_nothing(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_ready_when_database_answers(client):
    session = MagicMock()
    session.execute = AsyncMock()

    with patch("admissions.main.async_session_maker", _session_maker(session)):
        response = client.get("/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"]["database"] == "ok"
    assert body["checks"]["rate_limit_store"] == "MemoryRateLimitStore"


def test_not_ready_without_database(client):
    session = MagicMock()
    session.execute = AsyncMock(side_effect=ConnectionRefusedError("db down"))

    with patch("admissions.main.async_session_maker", _session_maker(session)):
        response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["database"] == "unavailable"
