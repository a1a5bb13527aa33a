# tests/unit/services/test_notification_service.py
import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from marketsync.models.user import UserNotification
from marketsync.services.notification_service import NotificationService


@pytest.mark.asyncio
async def test_alert_error_stores_danger_notification(db_session, user):
    assert await NotificationService(db_session).alert_error(user.id, "Export failed", "Token rejected") is True

    notification = (await db_session.execute(select(UserNotification))).scalars().one()
    assert notification.level == "danger"
    assert notification.title == "Export failed"
    assert notification.is_read is False


@pytest.mark.asyncio
async def test_storage_failure_is_not_propagated(db_session, user, mocker):
    mocker.patch.object(db_session, "flush", side_effect=SQLAlchemyError("db down"))

    assert await NotificationService(db_session).notify(user.id, "Hello") is False
