"""
Unit tests for the applications service layer.

These tests cover:
- Draft creation and application number collisions
- Visibility (owner vs reviewer)
- Editing rules
- Submission, withdrawal and admin status changes
- Bulk status updates
"""

from contextlib import contextmanager
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from admissions.modules.applications.models import ApplicationStatus
from admissions.modules.applications.schemas import ApplicationFilters, ApplicationUpdate
from admissions.modules.applications.service import (
    MAX_NUMBER_ATTEMPTS,
    ApplicationNotEditableError,
    ApplicationNotFoundError,
    ApplicationNumberError,
    InvalidTransitionError,
    admin_bulk_update_status,
    admin_update_status,
    create_application,
    get_application,
    get_dashboard_stats,
    list_applications,
    submit_application,
    update_application,
    withdraw_application,
)
from admissions.modules.applications.transitions import InvalidStatusTransitionError

SERVICE = "admissions.modules.applications.service"


@contextmanager
def patched_service(mock_repo):
    with (
        patch(f"{SERVICE}.repository", mock_repo),
        patch(f"{SERVICE}.notify_user", new=AsyncMock(return_value=True)) as notify,
        patch(f"{SERVICE}.send_application_submitted", new=AsyncMock(return_value=True)) as sub,
        patch(
            f"{SERVICE}.send_application_status_changed", new=AsyncMock(return_value=True)
        ) as changed,
    ):
        yield {"notify": notify, "submitted_email": sub, "status_email": changed}


def _apply_status(application, new_status, **_kwargs):
    application.status = new_status
    return application


class TestCreateApplication:
    @pytest.mark.asyncio
    async def test_creates_draft_with_number(self, mock_db, mock_repo, student, sample_create, make_application):
        draft = make_application()
        mock_repo.create.return_value = draft

        with patched_service(mock_repo):
            result = await create_application(mock_db, student, sample_create)

        assert result is draft
        args = mock_repo.create.call_args.args
        assert args[1] == student.id
        assert args[3].startswith("MIHAS")

    @pytest.mark.asyncio
    async def test_retries_number_on_collision(self, mock_db, mock_repo, student, sample_create, make_application):
        mock_repo.number_exists.side_effect = [True, True, False]
        mock_repo.create.return_value = make_application()

        with patched_service(mock_repo):
            await create_application(mock_db, student, sample_create)

        assert mock_repo.number_exists.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, mock_db, mock_repo, student, sample_create):
        mock_repo.number_exists.return_value = True

        with patched_service(mock_repo), pytest.raises(ApplicationNumberError) as exc_info:
            await create_application(mock_db, student, sample_create)

        assert exc_info.value.status_code == 503
        assert mock_repo.number_exists.await_count == MAX_NUMBER_ATTEMPTS
        mock_repo.create.assert_not_awaited()


class TestVisibility:
    @pytest.mark.asyncio
    async def test_owner_can_view(self, mock_db, mock_repo, student, make_application):
        application = make_application()
        mock_repo.get_by_id.return_value = application

        with patched_service(mock_repo):
            assert await get_application(mock_db, application.id, student) is application

    @pytest.mark.asyncio
    async def test_other_student_gets_not_found(self, mock_db, mock_repo, user_factory, make_application):
        mock_repo.get_by_id.return_value = make_application()

        with patched_service(mock_repo), pytest.raises(ApplicationNotFoundError):
            await get_application(mock_db, uuid4(), user_factory("student"))

    @pytest.mark.asyncio
    async def test_reviewer_can_view_any(self, mock_db, mock_repo, officer, make_application):
        application = make_application()
        mock_repo.get_by_id.return_value = application

        with patched_service(mock_repo):
            assert await get_application(mock_db, application.id, officer) is application

    @pytest.mark.asyncio
    async def test_student_listing_is_scoped_to_owner(self, mock_db, mock_repo, student):
        with patched_service(mock_repo):
            result = await list_applications(mock_db, student, ApplicationFilters())

        assert mock_repo.list_applications.call_args.kwargs["user_id"] == student.id
        assert result["stats"] is None

    @pytest.mark.asyncio
    async def test_reviewer_listing_is_unscoped_with_stats(self, mock_db, mock_repo, officer):
        mock_repo.count_by_status.return_value = {"draft": 2}

        with patched_service(mock_repo):
            result = await list_applications(
                mock_db, officer, ApplicationFilters(), include_stats=True
            )

        assert mock_repo.list_applications.call_args.kwargs["user_id"] is None
        assert result["stats"] == {"draft": 2}


class TestUpdateApplication:
    @pytest.mark.asyncio
    async def test_edit_draft(self, mock_db, mock_repo, student, make_application):
        application = make_application()
        mock_repo.get_by_id.return_value = application
        mock_repo.update_fields.return_value = application

        with patched_service(mock_repo):
            await update_application(
                mock_db, application.id, student, ApplicationUpdate(email="NEW@Example.com")
            )

        fields = mock_repo.update_fields.call_args.args[2]
        assert fields == {"email": "new@example.com"}

    @pytest.mark.asyncio
    async def test_submitted_application_is_locked(self, mock_db, mock_repo, student, make_application):
        mock_repo.get_by_id.return_value = make_application(ApplicationStatus.SUBMITTED)

        with patched_service(mock_repo), pytest.raises(ApplicationNotEditableError) as exc_info:
            await update_application(mock_db, uuid4(), student, ApplicationUpdate(phone="1"))

        assert exc_info.value.status_code == 409
        mock_repo.update_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reviewer_cannot_edit_answers(self, mock_db, mock_repo, officer, make_application):
        mock_repo.get_by_id.return_value = make_application()

        with patched_service(mock_repo), pytest.raises(ApplicationNotFoundError):
            await update_application(mock_db, uuid4(), officer, ApplicationUpdate(phone="1"))


class TestSubmitAndWithdraw:
    @pytest.mark.asyncio
    async def test_submit_notifies_and_emails(self, mock_db, mock_repo, student, make_application):
        application = make_application()
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo) as side_effects:
            result = await submit_application(mock_db, application.id, student)

        assert result.status == ApplicationStatus.SUBMITTED
        kwargs = mock_repo.update_status.call_args.kwargs
        assert kwargs["changed_by"] == student.id
        assert kwargs["submitted_at"] is not None
        side_effects["notify"].assert_awaited_once()
        side_effects["submitted_email"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resubmission_after_more_info(self, mock_db, mock_repo, student, make_application):
        application = make_application(ApplicationStatus.NEEDS_MORE_INFO)
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo):
            await submit_application(mock_db, application.id, student)

        assert mock_repo.update_status.call_args.kwargs["notes"] == "Resubmitted by applicant"

    @pytest.mark.asyncio
    async def test_invalid_transition_maps_to_409(self, mock_db, mock_repo, student, make_application):
        application = make_application(ApplicationStatus.REJECTED)
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = InvalidStatusTransitionError(
            ApplicationStatus.REJECTED, ApplicationStatus.SUBMITTED
        )

        with patched_service(mock_repo) as side_effects, pytest.raises(
            InvalidTransitionError
        ) as exc_info:
            await submit_application(mock_db, application.id, student)

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"
        side_effects["notify"].assert_not_awaited()
        side_effects["submitted_email"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_uses_reason_as_note(self, mock_db, mock_repo, student, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo):
            result = await withdraw_application(mock_db, application.id, student, "Got a place elsewhere")

        assert result.status == ApplicationStatus.WITHDRAWN
        assert mock_repo.update_status.call_args.kwargs["notes"] == "Got a place elsewhere"


class TestAdminStatus:
    @pytest.mark.asyncio
    async def test_start_review_sets_reviewer_and_timestamp(self, mock_db, mock_repo, officer, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo) as side_effects:
            await admin_update_status(
                mock_db, application.id, officer, ApplicationStatus.UNDER_REVIEW
            )

        kwargs = mock_repo.update_status.call_args.kwargs
        assert kwargs["reviewed_by"] == officer.id
        assert "review_started_at" in kwargs
        assert "decision_date" not in kwargs
        side_effects["status_email"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_decision_records_date_and_feedback(self, mock_db, mock_repo, officer, make_application):
        application = make_application(ApplicationStatus.UNDER_REVIEW)
        mock_repo.get_by_id.return_value = application
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo) as side_effects:
            await admin_update_status(
                mock_db,
                application.id,
                officer,
                ApplicationStatus.REJECTED,
                feedback="Missing grade 12 results",
            )

        kwargs = mock_repo.update_status.call_args.kwargs
        assert "decision_date" in kwargs
        assert kwargs["admin_feedback"] == "Missing grade 12 results"
        assert side_effects["status_email"].call_args.kwargs["feedback"] == "Missing grade 12 results"

    @pytest.mark.asyncio
    async def test_bulk_reports_each_item(self, mock_db, mock_repo, officer, make_application):
        good = make_application(ApplicationStatus.SUBMITTED)
        missing_id = uuid4()

        async def _get(db, application_id):
            return good if application_id == good.id else None

        mock_repo.get_by_id.side_effect = _get
        mock_repo.update_status.side_effect = lambda db, app, status, **kw: _apply_status(app, status)

        with patched_service(mock_repo):
            results = await admin_bulk_update_status(
                mock_db, [good.id, missing_id], officer, ApplicationStatus.UNDER_REVIEW
            )

        assert [r.success for r in results] == [True, False]
        assert results[1].error == "APPLICATION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_dashboard_stats_total(self, mock_db, mock_repo):
        mock_repo.count_by_status.return_value = {"draft": 3, "submitted": 2}
        mock_repo.count_by_institution.return_value = {"MIHAS": 4, "KATC": 1}
        mock_repo.count_submitted_since.return_value = 2

        with patched_service(mock_repo):
            stats = await get_dashboard_stats(mock_db)

        assert stats["total"] == 5
        assert stats["submitted_last_7_days"] == 2
