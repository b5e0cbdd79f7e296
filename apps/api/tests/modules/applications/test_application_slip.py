"""
Tests for the application slip: building, rendering, emailing and the HTTP routes.
"""

import importlib
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from admissions.core.database import get_db
from admissions.core.security import create_access_token
from admissions.modules.applications import router as applications_router
from admissions.modules.applications.models import ApplicationStatus, Institution
from admissions.modules.applications.schemas import ApplicationSlip
from admissions.modules.applications.service import (
    ApplicationNotFoundError,
    SlipEmailError,
    SlipNotAvailableError,
    email_application_slip,
    get_application_slip,
)
from admissions.modules.applications.slip import render_slip_html, slip_filename

SERVICE = "admissions.modules.applications.service"
router_module = importlib.import_module("admissions.modules.applications.router")


def _slip(**overrides) -> ApplicationSlip:
    fields = {
        "application_id": uuid4(),
        "application_number": "MIHAS202512345",
        "status": ApplicationStatus.SUBMITTED,
        "status_label": "Submitted",
        "institution": Institution.MIHAS,
        "full_name": "Mwila Banda",
        "email": "mwila@example.com",
        "phone": "+260971234567",
        "program_name": "Diploma in Clinical Medicine",
        "intake_name": "January 2026",
        "submitted_at": datetime(2026, 1, 5, 10, 0, tzinfo=UTC),
        "generated_at": datetime(2026, 1, 6, 8, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return ApplicationSlip(**fields)


class TestSlipService:
    @pytest.mark.asyncio
    async def test_owner_gets_slip_with_catalog_names(
        self, mock_db, mock_repo, student, make_application
    ):
        application = make_application(ApplicationStatus.SUBMITTED)
        application.program_id = uuid4()
        mock_repo.get_by_id.return_value = application

        catalog = MagicMock()
        catalog.get_program = AsyncMock(return_value=SimpleNamespace(name="Diploma in Nursing"))
        catalog.get_intake = AsyncMock()

        with (
            patch(f"{SERVICE}.repository", mock_repo),
            patch("admissions.modules.applications.slip.catalog_repository", catalog),
        ):
            _, slip = await get_application_slip(mock_db, application.id, student)

        assert slip.application_number == "MIHAS202512345"
        assert slip.status_label == "Submitted"
        assert slip.program_name == "Diploma in Nursing"
        assert slip.intake_name is None
        catalog.get_intake.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reviewer_gets_any_slip(self, mock_db, mock_repo, officer, make_application):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.UNDER_REVIEW)

        with patch(f"{SERVICE}.repository", mock_repo):
            _, slip = await get_application_slip(mock_db, uuid4(), officer)

        assert slip.status == ApplicationStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_draft_has_no_slip(self, mock_db, mock_repo, student, make_application):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.DRAFT)

        with patch(f"{SERVICE}.repository", mock_repo):
            with pytest.raises(SlipNotAvailableError) as exc_info:
                await get_application_slip(mock_db, uuid4(), student)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_other_students_get_not_found(
        self, mock_db, mock_repo, user_factory, make_application
    ):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.SUBMITTED)

        with patch(f"{SERVICE}.repository", mock_repo):
            with pytest.raises(ApplicationNotFoundError):
                await get_application_slip(mock_db, uuid4(), user_factory("student"))

    @pytest.mark.asyncio
    async def test_email_goes_to_application_address(
        self, mock_db, mock_repo, student, make_application
    ):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.ACCEPTED)

        with (
            patch(f"{SERVICE}.repository", mock_repo),
            patch(f"{SERVICE}.send_application_slip", new=AsyncMock(return_value=True)) as send,
        ):
            await email_application_slip(mock_db, uuid4(), student)

        kwargs = send.await_args.kwargs
        assert kwargs["to_email"] == "mwila@example.com"
        assert kwargs["application_number"] == "MIHAS202512345"
        assert "MIHAS202512345" in kwargs["slip_html"]

    @pytest.mark.asyncio
    async def test_failed_delivery_is_reported(self, mock_db, mock_repo, student, make_application):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.SUBMITTED)

        with (
            patch(f"{SERVICE}.repository", mock_repo),
            patch(f"{SERVICE}.send_application_slip", new=AsyncMock(return_value=False)),
        ):
            with pytest.raises(SlipEmailError) as exc_info:
                await email_application_slip(mock_db, uuid4(), student)

        assert exc_info.value.status_code == 502
        assert exc_info.value.error_code == "EMAIL_FAILED"


class TestRenderSlip:
    def test_contains_applicant_and_institution(self):
        html = render_slip_html(_slip())

        assert "MIHAS202512345" in html
        assert "Mukuba Institute of Health and Applied Sciences" in html
        assert "Diploma in Clinical Medicine" in html
        assert "5 January 2026" in html

    def test_applicant_values_are_escaped(self):
        html = render_slip_html(_slip(full_name="<script>alert(1)</script>"))

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_missing_values_show_placeholder(self):
        html = render_slip_html(_slip(program_name=None, submitted_at=None))

        assert "<th>Program</th><td>N/A</td>" in html
        assert "<th>Submitted</th><td>N/A</td>" in html

    def test_filename(self):
        assert slip_filename(_slip()) == "application-slip-MIHAS202512345.html"


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(applications_router, prefix="/applications")

    async def _fake_db():
        yield MagicMock()

    app.dependency_overrides[get_db] = _fake_db
    return TestClient(app)


def _headers(*roles: str) -> dict[str, str]:
    token = create_access_token(str(uuid4()), {"roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


class TestSlipEndpoints:
    def test_json_slip_is_audited(self, client, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)

        with (
            patch(
                f"{SERVICE}.get_application_slip",
                new=AsyncMock(return_value=(application, _slip())),
            ),
            patch.object(router_module, "log_audit_event", new=AsyncMock()) as audit,
        ):
            response = client.get(f"/applications/{application.id}/slip", headers=_headers("student"))

        assert response.status_code == 200
        assert response.json()["application_number"] == "MIHAS202512345"
        assert audit.call_args.kwargs["action"] == "application.slip.generate"
        assert audit.call_args.kwargs["metadata"] == {"format": "json"}

    def test_html_slip_is_an_attachment(self, client, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)

        with (
            patch(
                f"{SERVICE}.get_application_slip",
                new=AsyncMock(return_value=(application, _slip())),
            ),
            patch.object(router_module, "log_audit_event", new=AsyncMock()),
        ):
            response = client.get(
                f"/applications/{application.id}/slip?format=html", headers=_headers("student")
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert (
            response.headers["content-disposition"]
            == 'attachment; filename="application-slip-MIHAS202512345.html"'
        )
        assert response.text.startswith("<!DOCTYPE html>")

    def test_draft_is_409(self, client):
        with patch(
            f"{SERVICE}.get_application_slip", new=AsyncMock(side_effect=SlipNotAvailableError())
        ):
            response = client.get(f"/applications/{uuid4()}/slip", headers=_headers("student"))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "SLIP_NOT_AVAILABLE"

    def test_unknown_format_is_422(self, client):
        response = client.get(f"/applications/{uuid4()}/slip?format=pdf", headers=_headers("student"))

        assert response.status_code == 422

    def test_email_slip(self, client, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)

        with (
            patch(
                f"{SERVICE}.email_application_slip",
                new=AsyncMock(return_value=(application, _slip())),
            ),
            patch.object(router_module, "log_audit_event", new=AsyncMock()) as audit,
        ):
            response = client.post(f"/applications/{application.id}/slip", headers=_headers("student"))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "The application slip has been sent to your email.",
            "recipient": "mwila@example.com",
        }
        assert audit.call_args.kwargs["action"] == "application.slip.email"

    def test_failed_email_is_502(self, client):
        with (
            patch(f"{SERVICE}.email_application_slip", new=AsyncMock(side_effect=SlipEmailError())),
            patch.object(router_module, "log_audit_event", new=AsyncMock()) as audit,
        ):
            response = client.post(f"/applications/{uuid4()}/slip", headers=_headers("student"))

        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "EMAIL_FAILED"
        audit.assert_not_awaited()

    def test_requires_a_token(self, client):
        assert client.get(f"/applications/{uuid4()}/slip").status_code == 401
