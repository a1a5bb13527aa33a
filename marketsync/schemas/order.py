from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from marketsync.core.enums import OrderType
from marketsync.schemas.base import BaseSchema


class OrderFilter(BaseModel):
    marketplace: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    status: Optional[str] = None
    order_type: Optional[str] = None
    shipment_date: Optional[date] = None


class OrderStatusChange(BaseModel):
    status: str = Field(min_length=1)
    posting_number: Optional[str] = None


class OrderRead(BaseSchema):
    id: int
    marketplace: str
    external_id: str
    status: str
    marketplace_status: Optional[str] = None
    order_type: str
    total: float
    order_created: Optional[datetime] = None
    shipment_date: Optional[datetime] = None
    supply_id: Optional[int] = None
    additional_data: Optional[Dict[str, Any]] = None


class SupplyOpenRequest(BaseModel):
    marketplace: str
    order_type: OrderType = OrderType.FBS


class SupplyAttachRequest(BaseModel):
    order_ids: List[int] = Field(min_length=1)


class SupplyRead(BaseSchema):
    id: int
    marketplace: str
    order_type: str
    external_id: Optional[str] = None
    name: Optional[str] = None
    status: str
    closed_at: Optional[datetime] = None
