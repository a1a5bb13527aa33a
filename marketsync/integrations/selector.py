from typing import Dict, Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace
from marketsync.integrations.base import MarketplaceProvider
from marketsync.integrations.default import DefaultMarketplaceProvider
from marketsync.integrations.platforms.ozon import OzonProvider
from marketsync.integrations.platforms.wildberries import WildberriesProvider

PROVIDERS: Dict[str, Type[MarketplaceProvider]] = {
    Marketplace.WILDBERRIES.value: WildberriesProvider,
    Marketplace.OZON.value: OzonProvider,
}


def get_provider(marketplace: Optional[str], db: AsyncSession) -> MarketplaceProvider:
    """Provider for a marketplace key; unknown or empty keys get the neutral default."""
    provider_class = PROVIDERS.get((marketplace or "").strip().lower(), DefaultMarketplaceProvider)
    return provider_class(db)
