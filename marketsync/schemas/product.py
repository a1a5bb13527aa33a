"""
Schemas for inbound catalog batches (products, categories, deletions).
"""

import uuid as uuid_lib
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketsync.core.enums import PublishStatus
from marketsync.schemas.base import BaseSchema


def is_uuid(value: str) -> bool:
    try:
        uuid_lib.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return False
    return True


def is_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


class PayloadValidationMixin(BaseModel):
    """
    Shared validation for catalog payloads.
    Empty strings from form-like clients are treated as missing values.
    """
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True
    )

    @field_validator('weight', 'length', 'width', 'height', mode='before', check_fields=False)
    @classmethod
    def validate_dimension(cls, v):
        if v is None or v == '':
            return None
        try:
            value = float(v)
        except (ValueError, TypeError):
            raise ValueError('Value must be a valid number')
        if value < 0:
            raise ValueError('Value must not be negative')
        return value

    @field_validator('primary_image', mode='before', check_fields=False)
    @classmethod
    def validate_image_reference(cls, v):
        if v is None or v == '':
            return None
        if is_uuid(v) or is_url(v):
            return v
        raise ValueError('Image must be an upload uuid or an http(s) url')

    @field_validator('images', mode='before', check_fields=False)
    @classmethod
    def validate_image_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        invalid = [item for item in v if not (is_uuid(item) or is_url(item))]
        if invalid:
            raise ValueError(f'Invalid image references: {", ".join(map(str, invalid))}')
        return list(v)


class VariationItemPayload(PayloadValidationMixin):
    uuid: Optional[str] = None
    barcode: Optional[str] = None
    title: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class VariationPayload(PayloadValidationMixin):
    uuid: Optional[str] = None
    vendor_code: Optional[str] = None
    title: Optional[str] = None
    barcode: Optional[str] = None
    status: PublishStatus = PublishStatus.PUBLISHED
    is_main: bool = False
    images: List[str] = Field(default_factory=list)
    items: List[VariationItemPayload] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class ProductPayload(PayloadValidationMixin):
    product_id: Optional[int] = None
    external_id: Optional[str] = None
    sku: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    category_id: Optional[str] = None  # category external id
    primary_image: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    status: PublishStatus = PublishStatus.PUBLISHED
    barcode: Optional[str] = None
    country: Optional[str] = None
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    attributes: Optional[Dict[str, Any]] = None
    variations: List[VariationPayload] = Field(default_factory=list)

    @field_validator('external_id', 'category_id', mode='before')
    @classmethod
    def stringify_identifiers(cls, v):
        if v is None or v == '':
            return None
        return str(v)

    @model_validator(mode='after')
    def require_identifier(self):
        if self.product_id is None and not self.external_id:
            raise ValueError('product_id or external_id is required')
        return self


class CategoryPayload(PayloadValidationMixin):
    external_id: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=255)
    parent_id: Optional[str] = None  # parent external id
    status: PublishStatus = PublishStatus.PUBLISHED
    system_category_id: Optional[int] = None

    @field_validator('external_id', 'parent_id', mode='before')
    @classmethod
    def stringify_identifiers(cls, v):
        if v is None or v == '':
            return None
        return str(v)


class DeletePayload(PayloadValidationMixin):
    id: Optional[int] = None
    external_id: Optional[str] = None

    @field_validator('external_id', mode='before')
    @classmethod
    def stringify_identifier(cls, v):
        if v is None or v == '':
            return None
        return str(v)

    @model_validator(mode='after')
    def require_identifier(self):
        if self.id is None and not self.external_id:
            raise ValueError('id or external_id is required')
        return self


class ExternalIdPayload(PayloadValidationMixin):
    """Assigns an external id to an existing product"""
    product_id: int
    external_id: str = Field(min_length=1, max_length=255)


class ProductStatusPayload(BaseModel):
    product_ids: List[int] = Field(min_length=1)
    status: PublishStatus


class ProductRead(BaseSchema):
    id: int
    external_id: Optional[str] = None
    sku: str
    title: str
    status: str
    category_id: Optional[int] = None
    barcode: Optional[str] = None
