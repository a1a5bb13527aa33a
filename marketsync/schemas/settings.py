"""
Typed views over the integration `settings` JSON column.

The blob is parsed once here; services read named fields instead of probing
nested keys.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketsync.core.enums import Marketplace, PublishStatus
from marketsync.schemas.marketplace import UserCredentials


def _coerce_flag(value: Any) -> Any:
    # settings forms submit "", "0", "1" or "on"
    if value in (None, "", [], {}):
        return False
    return value


class SettingsSection(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OrdersImportSettings(SettingsSection):
    import_status: bool = False

    @field_validator("import_status", mode="before")
    @classmethod
    def coerce_flags(cls, value):
        return _coerce_flag(value)


class ImportSettings(SettingsSection):
    orders: OrdersImportSettings = Field(default_factory=OrdersImportSettings)
    update_exists_products: bool = False
    update_prices: bool = False
    update_stocks: bool = False

    @field_validator("update_exists_products", "update_prices", "update_stocks", mode="before")
    @classmethod
    def coerce_flags(cls, value):
        return _coerce_flag(value)

    @field_validator("orders", mode="before")
    @classmethod
    def empty_orders(cls, value):
        return value or {}


class ExportSettings(SettingsSection):
    export_status: bool = False
    update_prices: bool = False
    update_stocks: bool = False
    products_group_active: bool = False
    warehouses: List[str] = Field(default_factory=list)  # marketplace warehouse ids stocks are pushed to

    @field_validator("export_status", "update_prices", "update_stocks", "products_group_active", mode="before")
    @classmethod
    def coerce_flags(cls, value):
        return _coerce_flag(value)

    @field_validator("warehouses", mode="before")
    @classmethod
    def normalize_warehouses(cls, value):
        if not value:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        return [str(item) for item in value if str(item).strip()]


class IntegrationSettings(SettingsSection):
    api_token: Optional[str] = None
    client_id: Optional[str] = None
    import_: ImportSettings = Field(default_factory=ImportSettings, alias="import")
    export: ExportSettings = Field(default_factory=ExportSettings)

    @field_validator("api_token", "client_id", mode="before")
    @classmethod
    def strip_credentials(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("import_", "export", mode="before")
    @classmethod
    def empty_section(cls, value):
        return value or {}

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "IntegrationSettings":
        return cls.model_validate(raw or {})

    def credentials_for(self, user_id: int, marketplace: str) -> Optional[UserCredentials]:
        """
        Extract only the credential fields a marketplace needs.

        Returns None when a required field is missing.
        """
        if marketplace == Marketplace.OZON.value:
            if not self.client_id or not self.api_token:
                return None
            return UserCredentials(
                user_id=user_id,
                marketplace=marketplace,
                api_token=self.api_token,
                client_id=self.client_id,
            )
        if marketplace == Marketplace.WILDBERRIES.value:
            if not self.api_token:
                return None
            return UserCredentials(user_id=user_id, marketplace=marketplace, api_token=self.api_token)
        return None


class IntegrationUpdate(BaseModel):
    """Settings values to merge into the integration, and optionally its new status"""
    settings: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[PublishStatus] = None


class ExportRequest(BaseModel):
    product_ids: List[int] = Field(min_length=1)
    with_images: bool = True
