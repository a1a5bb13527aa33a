import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.models.user import User
from marketsync.schemas.base import success_response
from marketsync.schemas.order import OrderFilter, OrderRead, OrderStatusChange
from marketsync.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("")
async def list_orders(
    filters: OrderFilter = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders = await OrderService(db).list_orders(user.id, filters)
    return success_response([OrderRead.from_orm_model(order).model_dump(mode="json") for order in orders])


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    cancel_reason: Optional[str] = Body(None, embed=True),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel on the marketplace first; the local status is kept only if it accepts."""
    service = OrderService(db)
    order = await service.get_owned(user.id, order_id)
    order = await service.cancel(order, cancel_reason)
    await db.commit()
    return success_response(OrderRead.from_orm_model(order).model_dump(mode="json"), message="Order canceled")


@router.post("/{order_id}/status")
async def change_order_status(
    order_id: int,
    payload: OrderStatusChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = OrderService(db)
    order = await service.get_owned(user.id, order_id)
    order = await service.change_status(order, payload.status, payload.posting_number)
    await db.commit()
    return success_response(OrderRead.from_orm_model(order).model_dump(mode="json"), message=f"Order status is {order.status}")
