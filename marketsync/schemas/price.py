"""
Schemas for the batch price/stock update endpoint.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketsync.core.enums import DEFAULT_PRICE_TYPE, Marketplace

PRICE_TYPES = frozenset(
    [DEFAULT_PRICE_TYPE] + [marketplace.value for marketplace in Marketplace if marketplace.is_remote]
)


class PriceValues(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base: Optional[float] = Field(default=None, ge=0)
    purchase: Optional[float] = Field(default=None, ge=0)
    presale: Optional[float] = Field(default=None, ge=0)


class PriceTargetPayload(BaseModel):
    """Prices keyed by price type and stocks keyed by warehouse id"""
    model_config = ConfigDict(extra="ignore")

    prices: Dict[str, PriceValues] = Field(default_factory=dict)
    stocks: Dict[int, int] = Field(default_factory=dict)

    @field_validator('prices')
    @classmethod
    def validate_price_types(cls, v):
        unknown = sorted(set(v) - PRICE_TYPES)
        if unknown:
            raise ValueError(f'Unknown price types: {", ".join(unknown)}')
        return v

    @field_validator('stocks')
    @classmethod
    def validate_quantities(cls, v):
        if any(quantity < 0 for quantity in v.values()):
            raise ValueError('Stock quantity must not be negative')
        return v


class ItemPricePayload(PriceTargetPayload):
    uuid: str


class VariationPricePayload(PriceTargetPayload):
    uuid: str
    items: List[ItemPricePayload] = Field(default_factory=list)


class ProductPricePayload(PriceTargetPayload):
    product_id: Optional[int] = None
    external_id: Optional[str] = None
    variations: List[VariationPricePayload] = Field(default_factory=list)

    @field_validator('external_id', mode='before')
    @classmethod
    def stringify_identifier(cls, v):
        if v is None or v == '':
            return None
        return str(v)

    @model_validator(mode='after')
    def require_identifier(self):
        if self.product_id is None and not self.external_id:
            raise ValueError('product_id or external_id is required')
        return self
