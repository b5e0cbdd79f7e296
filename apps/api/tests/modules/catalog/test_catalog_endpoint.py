"""
HTTP tests for the catalog endpoints.
"""

import importlib
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from admissions.core.database import get_db
from admissions.core.security import create_access_token
from admissions.modules.applications.models import Institution

REPO = "admissions.modules.catalog.repository"
catalog_module = importlib.import_module("admissions.modules.catalog.router")

PROGRAM = {
    "name": "Diploma in Clinical Medicine",
    "code": "DCM",
    "institution": "MIHAS",
    "duration_years": 3,
}
INTAKE = {
    "name": "January 2026",
    "year": 2026,
    "start_date": "2026-01-12",
    "application_deadline": "2025-12-15",
    "total_capacity": 120,
}


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(catalog_module.router, prefix="/catalog")

    async def _fake_db():
        yield MagicMock()

    app.dependency_overrides[get_db] = _fake_db
    return TestClient(app)


@pytest.fixture
def audit():
    with patch.object(catalog_module, "log_audit_event", new=AsyncMock()) as mock:
        yield mock


def _headers(*roles: str) -> dict[str, str]:
    token = create_access_token(str(uuid4()), {"roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


def _program(**overrides):
    fields = {"id": uuid4(), "description": None, "is_active": True, **PROGRAM}
    fields["institution"] = Institution(fields["institution"])
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _intake(**overrides):
    fields = {
        "id": uuid4(),
        "name": "January 2026",
        "year": 2026,
        "start_date": date(2026, 1, 12),
        "application_deadline": date(2025, 12, 15),
        "total_capacity": 120,
        "is_active": True,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestPrograms:
    def test_any_signed_in_user_can_list(self, client):
        with patch(f"{REPO}.list_programs", new=AsyncMock(return_value=[_program()])) as listing:
            response = client.get("/catalog/programs?institution=MIHAS", headers=_headers("student"))

        assert response.status_code == 200
        assert [p["code"] for p in response.json()["programs"]] == ["DCM"]
        assert listing.await_args.args[1] == Institution.MIHAS

    def test_listing_requires_a_token(self, client):
        assert client.get("/catalog/programs").status_code == 401

    def test_admin_creates_program(self, client, audit):
        with (
            patch(f"{REPO}.get_program_by_code", new=AsyncMock(return_value=None)),
            patch(f"{REPO}.create_program", new=AsyncMock(return_value=_program())),
        ):
            response = client.post("/catalog/programs", json=PROGRAM, headers=_headers("admin"))

        assert response.status_code == 201
        assert response.json()["code"] == "DCM"
        assert audit.call_args.kwargs["action"] == "catalog.program.create"

    def test_duplicate_code_is_409(self, client, audit):
        with patch(f"{REPO}.get_program_by_code", new=AsyncMock(return_value=_program())):
            response = client.post("/catalog/programs", json=PROGRAM, headers=_headers("admin"))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "DUPLICATE_PROGRAM"
        audit.assert_not_awaited()

    @pytest.mark.parametrize("role", ["student", "admissions_officer"])
    def test_non_admins_cannot_create(self, client, role):
        response = client.post("/catalog/programs", json=PROGRAM, headers=_headers(role))

        assert response.status_code == 403


class TestIntakes:
    def test_open_only_is_passed_through(self, client):
        with patch(f"{REPO}.list_intakes", new=AsyncMock(return_value=[_intake()])) as listing:
            response = client.get("/catalog/intakes?open_only=true", headers=_headers("student"))

        assert response.status_code == 200
        assert response.json()["intakes"][0]["name"] == "January 2026"
        assert listing.await_args.kwargs["open_only"] is True

    def test_admin_creates_intake(self, client, audit):
        with patch(f"{REPO}.create_intake", new=AsyncMock(return_value=_intake())):
            response = client.post("/catalog/intakes", json=INTAKE, headers=_headers("admin"))

        assert response.status_code == 201
        assert audit.call_args.kwargs["action"] == "catalog.intake.create"

    def test_deadline_after_start_is_rejected(self, client):
        body = {**INTAKE, "application_deadline": "2026-02-01"}

        response = client.post("/catalog/intakes", json=body, headers=_headers("admin"))

        assert response.status_code == 422

    def test_students_cannot_create(self, client):
        response = client.post("/catalog/intakes", json=INTAKE, headers=_headers("student"))

        assert response.status_code == 403
