from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import SupplyStatus
from marketsync.core.security import get_current_user
from marketsync.dependencies import get_db
from marketsync.models.order import Supply
from marketsync.models.user import User
from marketsync.schemas.base import success_response
from marketsync.schemas.order import OrderRead, SupplyAttachRequest, SupplyOpenRequest, SupplyRead
from marketsync.services.supply_service import SupplyService

router = APIRouter(prefix="/api/supplies", tags=["supplies"])


def _supply(supply: Supply) -> dict:
    return SupplyRead.from_orm_model(supply).model_dump(mode="json")


@router.get("")
async def list_open_supplies(
    marketplace: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Supply).where(Supply.user_id == user.id, Supply.status == SupplyStatus.OPEN.value)
    if marketplace:
        stmt = stmt.where(Supply.marketplace == marketplace)
    result = await db.execute(stmt.order_by(Supply.id))
    return success_response([_supply(supply) for supply in result.scalars().all()])


@router.post("")
async def open_supply(
    payload: SupplyOpenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a supply, or return the one already open for this marketplace and order type."""
    supply = await SupplyService(db).open_supply(user.id, payload.marketplace, payload.order_type.value)
    await db.commit()
    return success_response(_supply(supply))


@router.post("/{supply_id}/orders")
async def attach_orders(
    supply_id: int,
    payload: SupplyAttachRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SupplyService(db)
    supply = await service.get_owned(user.id, supply_id)
    attached = await service.attach_orders(supply, payload.order_ids)
    await db.commit()
    return success_response(
        [OrderRead.from_orm_model(order).model_dump(mode="json") for order in attached],
        message=f"{len(attached)} orders added to the supply",
    )


@router.post("/{supply_id}/close")
async def close_supply(
    supply_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SupplyService(db)
    supply = await service.close_supply(await service.get_owned(user.id, supply_id))
    await db.commit()
    return success_response(_supply(supply), message="Supply closed")
