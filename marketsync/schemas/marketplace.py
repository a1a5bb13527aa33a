"""
Data transfer objects exchanged between providers and the rest of the core.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserCredentials(BaseModel):
    """Per-user credential record carried in orchestrator job payloads"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    marketplace: str
    api_token: str
    client_id: Optional[str] = None


class AttributeSchema(BaseModel):
    id: int
    external_id: Optional[str] = None
    title: str
    required: bool = False
    type: Optional[str] = None
    unit: Optional[str] = None
    max_count: Optional[int] = None
    dictionary: Optional[str] = None  # key for get_dictionary_values when the attribute is enumerable


class DictValue(BaseModel):
    id: Optional[int] = None
    external_id: Optional[str] = None
    value: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WarehouseDTO(BaseModel):
    external_id: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ExportInfoDTO(BaseModel):
    has_error: bool = False
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    log: List[Any] = Field(default_factory=list)
    result: List[Any] = Field(default_factory=list)
    marketplace: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ExportBatchResult(BaseModel):
    """Outcome of pushing a set of products to a marketplace"""
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class OrderLineData(BaseModel):
    sku: Optional[str] = None
    barcode: Optional[str] = None
    name: Optional[str] = None
    quantity: int = 1
    price: float = 0


class OrderData(BaseModel):
    """Marketplace order normalized for OrderService.save_orders"""
    external_id: str
    status: str
    marketplace_status: Optional[str] = None
    order_type: str = "fbs"
    total: float = 0
    order_created: Optional[datetime] = None
    shipment_date: Optional[datetime] = None
    delivery: Optional[Dict[str, Any]] = None
    additional_data: Dict[str, Any] = Field(default_factory=dict)
    products: List[OrderLineData] = Field(default_factory=list)


class SupplyData(BaseModel):
    external_id: str
    name: Optional[str] = None
    closed: bool = False
    created_at: Optional[datetime] = None
    order_type: str = "fbs"
    order_ids: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
