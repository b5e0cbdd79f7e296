"""
Tests for notifications and outreach consent.
"""

import importlib
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from admissions.core.database import get_db
from admissions.core.security import create_access_token
from admissions.modules.notifications import router as notifications_router
from admissions.modules.notifications.models import OUTREACH_CONSENT, Notification, UserConsent
from admissions.modules.notifications.service import (
    ConsentRequiredError,
    NotificationNotFoundError,
    RecipientNotFoundError,
    grant_consent,
    mark_read,
    notify_user,
    revoke_consent,
    send_admin_notification,
)

SERVICE = "admissions.modules.notifications.service"

# The package re-exports ``router``; fetch the module itself for patching
router_module = importlib.import_module("admissions.modules.notifications.router")


def _consent(user_id, consent_type=OUTREACH_CONSENT):
    return UserConsent(
        id=uuid4(),
        user_id=user_id,
        consent_type=consent_type,
        granted_at=datetime.now(UTC),
    )


def _notification(user_id):
    now = datetime.now(UTC)
    return Notification(
        id=uuid4(),
        user_id=user_id,
        type="info",
        title="Hello",
        message="Orientation starts Monday",
        is_read=False,
        created_at=now,
        updated_at=now,
    )


class TestSendAdminNotification:
    @pytest.mark.asyncio
    async def test_blocked_without_consent(self, mock_db):
        user_id = uuid4()

        with (
            patch(f"{SERVICE}.UserRepository.get_by_id", new=AsyncMock(return_value=MagicMock())),
            patch(f"{SERVICE}.repository") as mock_repo,
        ):
            mock_repo.get_active_consent = AsyncMock(return_value=None)
            mock_repo.create_notification = AsyncMock()

            with pytest.raises(ConsentRequiredError) as exc_info:
                await send_admin_notification(mock_db, user_id=user_id, title="t", message="m")

        assert exc_info.value.status_code == 412
        assert exc_info.value.error_code == "CONSENT_REQUIRED"
        mock_repo.create_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, mock_db):
        with patch(f"{SERVICE}.UserRepository.get_by_id", new=AsyncMock(return_value=None)):
            with pytest.raises(RecipientNotFoundError):
                await send_admin_notification(mock_db, user_id=uuid4(), title="t", message="m")

    @pytest.mark.asyncio
    async def test_sent_with_consent_and_email(self, mock_db):
        user_id = uuid4()
        recipient = MagicMock(email="student@example.com")
        created = _notification(user_id)

        with (
            patch(f"{SERVICE}.UserRepository.get_by_id", new=AsyncMock(return_value=recipient)),
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.send_notification_email", new=AsyncMock(return_value=True)) as email,
        ):
            mock_repo.get_active_consent = AsyncMock(return_value=_consent(user_id))
            mock_repo.create_notification = AsyncMock(return_value=created)

            result = await send_admin_notification(
                mock_db, user_id=user_id, title="Hello", message="Hi", send_email=True
            )

        assert result is created
        email.assert_awaited_once_with("student@example.com", "Hello", "Hi")


class TestConsents:
    @pytest.mark.asyncio
    async def test_grant_is_idempotent(self, mock_db):
        user_id = uuid4()
        existing = _consent(user_id)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_active_consent = AsyncMock(return_value=existing)
            mock_repo.create_consent = AsyncMock()

            result = await grant_consent(mock_db, user_id, OUTREACH_CONSENT, actor_id=user_id)

        assert result is existing
        mock_repo.create_consent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_grant_creates_when_none_active(self, mock_db):
        user_id = uuid4()
        created = _consent(user_id)

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_active_consent = AsyncMock(return_value=None)
            mock_repo.create_consent = AsyncMock(return_value=created)

            result = await grant_consent(
                mock_db, user_id, OUTREACH_CONSENT, actor_id=user_id, source="settings"
            )

        assert result is created
        assert mock_repo.create_consent.call_args.kwargs["source"] == "settings"

    @pytest.mark.asyncio
    async def test_revoke_returns_count(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.revoke_active_consents = AsyncMock(return_value=1)

            assert await revoke_consent(mock_db, uuid4(), OUTREACH_CONSENT, uuid4()) == 1

    def test_active_property(self):
        consent = _consent(uuid4())
        assert consent.active is True
        consent.revoked_at = datetime.now(UTC)
        assert consent.active is False


class TestNotifications:
    @pytest.mark.asyncio
    async def test_notify_user_swallows_failures(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.create_notification = AsyncMock(side_effect=RuntimeError("db down"))

            result = await notify_user(mock_db, uuid4(), "t", "m")

        assert result is None
        mock_db.begin_nested.assert_called_once()
        mock_db.commit.assert_not_awaited()
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cannot_mark_someone_elses_notification(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=_notification(uuid4()))
            mock_repo.mark_read = AsyncMock()

            with pytest.raises(NotificationNotFoundError):
                await mark_read(mock_db, uuid4(), uuid4())

        mock_repo.mark_read.assert_not_awaited()


class TestSendEndpoint:
    def _client(self) -> TestClient:
        app = FastAPI()
        app.include_router(notifications_router, prefix="/notifications")

        async def _fake_db():
            yield MagicMock()

        app.dependency_overrides[get_db] = _fake_db
        return TestClient(app)

    def _headers(self, *roles: str) -> dict[str, str]:
        token = create_access_token(str(uuid4()), {"roles": list(roles)})
        return {"Authorization": f"Bearer {token}"}

    def test_missing_consent_returns_412_and_is_audited(self):
        body = {"user_id": str(uuid4()), "title": "Hello", "message": "Hi"}

        with (
            patch(
                f"{SERVICE}.send_admin_notification",
                new=AsyncMock(side_effect=ConsentRequiredError()),
            ),
            patch.object(router_module, "log_audit_event", new=AsyncMock()) as audit,
        ):
            response = self._client().post(
                "/notifications/send", json=body, headers=self._headers("admin")
            )

        assert response.status_code == 412
        assert response.json()["detail"]["error"] == "CONSENT_REQUIRED"
        assert audit.call_args.kwargs["action"] == "notifications.send.blocked"

    def test_students_cannot_send(self):
        body = {"user_id": str(uuid4()), "title": "Hello", "message": "Hi"}

        response = self._client().post(
            "/notifications/send", json=body, headers=self._headers("student")
        )

        assert response.status_code == 403
