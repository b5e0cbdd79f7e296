"""
Unit tests for the applications repository status writes.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from admissions.modules.applications import repository
from admissions.modules.applications.models import ApplicationStatus, ApplicationStatusHistory
from admissions.modules.applications.transitions import InvalidStatusTransitionError


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_valid_change_writes_history(self, mock_db, make_application):
        application = make_application(ApplicationStatus.SUBMITTED)
        reviewer = uuid4()

        await repository.update_status(
            mock_db,
            application,
            ApplicationStatus.UNDER_REVIEW,
            changed_by=reviewer,
            notes="Picked up",
            reviewed_by=reviewer,
        )

        assert application.status == ApplicationStatus.UNDER_REVIEW
        assert application.reviewed_by == reviewer
        history = mock_db.add.call_args.args[0]
        assert isinstance(history, ApplicationStatusHistory)
        assert history.from_status == ApplicationStatus.SUBMITTED
        assert history.status == ApplicationStatus.UNDER_REVIEW
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_change_writes_nothing(self, mock_db, make_application):
        application = make_application(ApplicationStatus.REJECTED)

        with pytest.raises(InvalidStatusTransitionError):
            await repository.update_status(
                mock_db, application, ApplicationStatus.ACCEPTED, changed_by=uuid4()
            )

        assert application.status == ApplicationStatus.REJECTED
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()


class TestUpdateFields:
    @pytest.mark.asyncio
    async def test_status_cannot_be_set_directly(self, mock_db, make_application):
        with pytest.raises(ValueError):
            await repository.update_fields(
                mock_db, make_application(), {"status": ApplicationStatus.ACCEPTED}
            )


class TestCountByStatus:
    @pytest.mark.asyncio
    async def test_every_status_reported(self, mock_db):
        result = MagicMock()
        result.all.return_value = [(ApplicationStatus.DRAFT, 4), (ApplicationStatus.ACCEPTED, 1)]
        mock_db.execute.return_value = result

        counts = await repository.count_by_status(mock_db)

        assert counts["draft"] == 4
        assert counts["accepted"] == 1
        assert counts["matriculated"] == 0
        assert len(counts) == len(ApplicationStatus)
