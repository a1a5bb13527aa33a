# tests/unit/integrations/test_provider_selector.py
import pytest

from marketsync.core.enums import ImportStatus
from marketsync.integrations.default import DefaultMarketplaceProvider
from marketsync.integrations.platforms.ozon import OzonProvider
from marketsync.integrations.platforms.wildberries import WildberriesProvider
from marketsync.integrations.selector import get_provider
from marketsync.schemas.marketplace import UserCredentials


@pytest.mark.parametrize("key, provider_class", [
    ("wildberries", WildberriesProvider),
    ("ozon", OzonProvider),
    (" Ozon ", OzonProvider),
    ("api", DefaultMarketplaceProvider),
    ("", DefaultMarketplaceProvider),
    (None, DefaultMarketplaceProvider),
    ("yandex", DefaultMarketplaceProvider),
])
def test_get_provider(db_session, key, provider_class):
    provider = get_provider(key, db_session)
    assert type(provider) is provider_class
    assert provider.db is db_session


@pytest.mark.asyncio
async def test_default_provider_is_neutral(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    provider = get_provider("unknown", db_session)
    credentials = UserCredentials(user_id=user.id, marketplace="unknown", api_token="x")

    assert await provider.check_connection(integration) == 0
    assert await provider.get_last_orders(credentials) == {"created": 0, "updated": 0}
    assert await provider.update_order_statuses(credentials) == 0
    assert await provider.open_supply(user.id) is None
    assert await provider.get_warehouses(integration) == []
    assert (await provider.export_products([1, 2], integration)).failed == 0


@pytest.mark.asyncio
async def test_default_provider_import_finishes_immediately(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    provider = get_provider(None, db_session)

    task = await provider.import_products(integration)

    assert task.id is not None
    assert task.status == ImportStatus.SUCCESS.value
