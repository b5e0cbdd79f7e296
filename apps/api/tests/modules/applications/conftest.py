"""
Fixtures for applications tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from admissions.core.auth import CurrentUser, permissions_for
from admissions.modules.applications.models import Application, ApplicationStatus, Institution
from admissions.modules.applications.schemas import ApplicationCreate


def make_user(*roles: str) -> CurrentUser:
    roles = roles or ("student",)
    return CurrentUser(
        id=uuid4(),
        email=f"{roles[0]}@example.edu",
        roles=tuple(roles),
        permissions=permissions_for(roles),
        name="Test User",
    )


@pytest.fixture
def student():
    return make_user("student")


@pytest.fixture
def officer():
    return make_user("admissions_officer")


@pytest.fixture
def make_application(student):
    """Factory for application models owned by ``student`` by default."""

    def _make(status: ApplicationStatus = ApplicationStatus.DRAFT, owner=None) -> Application:
        now = datetime.now(UTC)
        return Application(
            id=uuid4(),
            application_number="MIHAS202512345",
            user_id=(owner or student).id,
            institution=Institution.MIHAS,
            full_name="Mwila Banda",
            email="mwila@example.com",
            phone="+260971234567",
            status=status,
            created_at=now,
            updated_at=now,
        )

    return _make


@pytest.fixture
def sample_create():
    return ApplicationCreate(
        institution=Institution.MIHAS,
        full_name="Mwila Banda",
        email="mwila@example.com",
        phone="+260971234567",
    )


@pytest.fixture
def mock_repo():
    """Repository module stand-in with every function awaitable."""
    repo = MagicMock()
    repo.create = AsyncMock()
    repo.get_by_id = AsyncMock()
    repo.number_exists = AsyncMock(return_value=False)
    repo.list_applications = AsyncMock(return_value=([], 0))
    repo.count_by_status = AsyncMock(return_value={})
    repo.count_by_institution = AsyncMock(return_value={})
    repo.count_submitted_since = AsyncMock(return_value=0)
    repo.update_fields = AsyncMock()
    repo.update_status = AsyncMock()
    repo.get_history = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def user_factory():
    return make_user
