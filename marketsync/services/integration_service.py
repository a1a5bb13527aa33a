import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import LogLevel, PublishStatus
from marketsync.models.integration import Integration, IntegrationLog
from marketsync.schemas.marketplace import UserCredentials
from marketsync.schemas.settings import IntegrationSettings

logger = logging.getLogger(__name__)


class IntegrationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self, user_id: int, marketplace: str) -> Integration:
        """Integrations are created lazily, one per user/marketplace pair."""
        integration = await self.get_for_user(user_id, marketplace)
        if integration:
            return integration

        integration = Integration(
            user_id=user_id,
            type=marketplace,
            name=marketplace.capitalize(),
            settings={},
            status=PublishStatus.UNPUBLISHED.value,
        )
        self.db.add(integration)
        await self.db.flush()
        logger.info(f"Created {marketplace} integration for user {user_id}")
        return integration

    async def get_for_user(self, user_id: int, marketplace: str, active_only: bool = False) -> Optional[Integration]:
        stmt = select(Integration).where(
            Integration.user_id == user_id,
            Integration.type == marketplace,
        )
        if active_only:
            stmt = stmt.where(Integration.status == PublishStatus.PUBLISHED.value)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def active_integrations(self, marketplace: Optional[str] = None, user_id: Optional[int] = None) -> List[Integration]:
        stmt = select(Integration).where(Integration.status == PublishStatus.PUBLISHED.value)
        if marketplace:
            stmt = stmt.where(Integration.type == marketplace)
        if user_id is not None:
            stmt = stmt.where(Integration.user_id == user_id)
        result = await self.db.execute(stmt.order_by(Integration.user_id, Integration.id))
        return list(result.scalars().all())

    @staticmethod
    def settings(integration: Integration) -> IntegrationSettings:
        return IntegrationSettings.from_raw(integration.settings)

    def credentials(self, integration: Integration) -> Optional[UserCredentials]:
        return self.settings(integration).credentials_for(integration.user_id, integration.type)

    async def update_settings(self, integration: Integration, values: Dict[str, Any]) -> Integration:
        """Merge new values into the settings blob after validating the result."""
        merged = {**(integration.settings or {}), **values}
        IntegrationSettings.from_raw(merged)
        integration.settings = merged
        await self.db.flush()
        return integration

    async def add_log(self, integration: Integration, level: str, message: str, data: Optional[Dict[str, Any]] = None) -> IntegrationLog:
        entry = IntegrationLog(
            integration_id=integration.id,
            user_id=integration.user_id,
            marketplace=integration.type,
            level=level,
            message=message,
            data=data,
        )
        self.db.add(entry)
        await self.db.flush()
        if level == LogLevel.ERROR.value:
            logger.warning(f"[{integration.type}] user {integration.user_id}: {message}")
        else:
            logger.info(f"[{integration.type}] user {integration.user_id}: {message}")
        return entry
