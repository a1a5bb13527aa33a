# tests/unit/schemas/test_integration_settings.py
import pytest

from marketsync.core.enums import Marketplace
from marketsync.schemas.settings import IntegrationSettings


def test_empty_settings_have_defaults():
    settings = IntegrationSettings.from_raw(None)

    assert settings.api_token is None
    assert settings.import_.update_exists_products is False
    assert settings.import_.orders.import_status is False
    assert settings.export.warehouses == []


def test_form_flags_are_coerced():
    settings = IntegrationSettings.from_raw({
        "import": {"update_prices": "1", "update_stocks": "", "orders": {"import_status": "on"}},
        "export": {"export_status": "0", "update_stocks": True},
    })

    assert settings.import_.update_prices is True
    assert settings.import_.update_stocks is False
    assert settings.import_.orders.import_status is True
    assert settings.export.export_status is False
    assert settings.export.update_stocks is True


def test_empty_sections_are_tolerated():
    # the old settings form stored empty lists for untouched sections
    settings = IntegrationSettings.from_raw({"import": [], "export": None})

    assert settings.import_.update_prices is False
    assert settings.export.export_status is False


@pytest.mark.parametrize("raw, expected", [
    ("507", ["507"]),
    (507, ["507"]),
    (["1", 2, " "], ["1", "2"]),
    (None, []),
])
def test_export_warehouses_normalized(raw, expected):
    settings = IntegrationSettings.from_raw({"export": {"warehouses": raw}})
    assert settings.export.warehouses == expected


def test_credentials_are_stripped():
    settings = IntegrationSettings.from_raw({"api_token": "  abc  ", "client_id": "   "})

    assert settings.api_token == "abc"
    assert settings.client_id is None


def test_wildberries_credentials_need_token_only():
    settings = IntegrationSettings.from_raw({"api_token": "wb-token", "client_id": "ignored"})

    credentials = settings.credentials_for(7, Marketplace.WILDBERRIES.value)

    assert credentials.user_id == 7
    assert credentials.api_token == "wb-token"
    assert credentials.client_id is None


def test_ozon_credentials_need_client_id():
    assert IntegrationSettings.from_raw({"api_token": "key"}).credentials_for(1, Marketplace.OZON.value) is None

    credentials = IntegrationSettings.from_raw({"api_token": "key", "client_id": 42}).credentials_for(1, Marketplace.OZON.value)
    assert credentials.client_id == "42"
    assert credentials.marketplace == "ozon"


def test_no_credentials_for_api_integration():
    settings = IntegrationSettings.from_raw({"api_token": "x"})
    assert settings.credentials_for(1, Marketplace.API.value) is None
