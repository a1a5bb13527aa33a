"""
Purpose: Local mirror of marketplace orders.

Marketplace truth is authoritative: orders are upserted from polling jobs.
Seller-initiated changes (cancel, status change) are propagated to the
marketplace first and the local change is reverted when that call fails.
"""

import logging
from datetime import datetime, time, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace, OrderStatus, TERMINAL_ORDER_STATUSES
from marketsync.core.exceptions import ApiError, BusinessError, ResponseError
from marketsync.models.order import Order, OrderHistory, OrderProduct
from marketsync.models.product import Product, ProductVariation, ProductVariationItem
from marketsync.schemas.marketplace import OrderData, OrderLineData
from marketsync.schemas.order import OrderFilter
from marketsync.services.integration_service import IntegrationService

logger = logging.getLogger(__name__)


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_ORDER_STATUSES


class OrderService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_history(self, order: Order, data: Optional[Dict] = None) -> OrderHistory:
        history = OrderHistory(
            order_id=order.id,
            status=order.status,
            marketplace_status=order.marketplace_status,
            data=data,
        )
        self.db.add(history)
        await self.db.flush()
        return history

    async def get_by_external_id(self, user_id: int, marketplace: str, external_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.user_id == user_id,
                Order.marketplace == marketplace,
                Order.external_id == str(external_id),
            )
        )
        return result.scalars().first()

    async def get_owned(self, user_id: int, order_id: int) -> Order:
        """
        Raises:
            ApiError: If the order does not exist or belongs to another user
        """
        order = await self.db.get(Order, order_id)
        if not order or order.user_id != user_id:
            raise ApiError(f"Order {order_id} is not available")
        return order

    async def save_orders(self, user_id: int, marketplace: str, orders: Iterable[OrderData]) -> Dict[str, int]:
        """
        Upsert orders by (user, marketplace, external id).

        A history row is written for new orders and for status changes.

        Returns:
            {"created": n, "updated": n}
        """
        counts = {"created": 0, "updated": 0}
        for data in orders:
            order = await self.get_by_external_id(user_id, marketplace, data.external_id)
            if not order:
                order = Order(
                    user_id=user_id,
                    marketplace=marketplace,
                    external_id=data.external_id,
                    status=data.status,
                    marketplace_status=data.marketplace_status,
                    order_type=data.order_type,
                    total=data.total,
                    order_created=data.order_created,
                    shipment_date=data.shipment_date,
                    delivery=data.delivery,
                    additional_data=data.additional_data,
                )
                self.db.add(order)
                await self.db.flush()
                await self.add_history(order)
                await self._save_products(order, data.products)
                counts["created"] += 1
                continue

            changed = False
            if data.status != order.status or data.marketplace_status != order.marketplace_status:
                order.status = data.status
                order.marketplace_status = data.marketplace_status
                order.additional_data = {**(order.additional_data or {}), **data.additional_data}
                await self.db.flush()
                await self.add_history(order)
                changed = True

            if order.total != data.total:
                order.total = data.total
                changed = True

            if data.shipment_date and order.shipment_date is None:
                order.shipment_date = data.shipment_date
                changed = True

            await self._save_products(order, data.products)
            if changed:
                counts["updated"] += 1

        await self.db.flush()
        return counts

    async def _match_line(self, order: Order, line: OrderLineData) -> Tuple[Optional[int], Optional[int]]:
        """Find the local (product_id, variation_id) behind an order line."""
        if line.barcode:
            result = await self.db.execute(
                select(ProductVariation.product_id, ProductVariation.id)
                .join(ProductVariationItem, ProductVariationItem.variation_id == ProductVariation.id)
                .join(Product, Product.id == ProductVariation.product_id)
                .where(Product.user_id == order.user_id, ProductVariationItem.barcode == line.barcode)
                .limit(1)
            )
            row = result.first()
            if row:
                return row[0], row[1]

        if line.sku:
            result = await self.db.execute(
                select(ProductVariation.product_id, ProductVariation.id)
                .join(Product, Product.id == ProductVariation.product_id)
                .where(Product.user_id == order.user_id, ProductVariation.vendor_code == line.sku)
                .limit(1)
            )
            row = result.first()
            if row:
                return row[0], row[1]

            result = await self.db.execute(
                select(Product.id).where(Product.user_id == order.user_id, Product.sku == line.sku).limit(1)
            )
            product_id = result.scalar()
            if product_id:
                return product_id, None
        return None, None

    async def _save_products(self, order: Order, lines: List[OrderLineData]) -> None:
        result = await self.db.execute(select(OrderProduct).where(OrderProduct.order_id == order.id))
        existing = list(result.scalars().all())

        if not existing:
            for line in lines:
                product_id, variation_id = await self._match_line(order, line)
                self.db.add(OrderProduct(
                    order_id=order.id,
                    product_id=product_id,
                    variation_id=variation_id,
                    sku=line.sku,
                    barcode=line.barcode,
                    name=line.name or line.sku,
                    quantity=line.quantity,
                    price=line.price,
                ))
            await self.db.flush()
            return

        # lines arrive before the catalog sometimes; bind them once it exists
        for order_product in existing:
            if order_product.product_id:
                continue
            product_id, variation_id = await self._match_line(
                order, OrderLineData(sku=order_product.sku, barcode=order_product.barcode)
            )
            if product_id:
                order_product.product_id = product_id
                order_product.variation_id = variation_id
        await self.db.flush()

    async def open_orders(self, user_id: int, marketplace: str) -> List[Order]:
        """Orders whose status can still change on the marketplace."""
        result = await self.db.execute(
            select(Order).where(
                Order.user_id == user_id,
                Order.marketplace == marketplace,
                Order.status.notin_(TERMINAL_ORDER_STATUSES),
                func.coalesce(Order.marketplace_status, "").notin_(TERMINAL_ORDER_STATUSES),
            ).order_by(Order.id)
        )
        return list(result.scalars().all())

    async def apply_statuses(self, user_id: int, marketplace: str, statuses: Dict[str, Tuple[str, Optional[str]]]) -> int:
        """
        Args:
            statuses: external id -> (status, marketplace status)

        Returns:
            Number of orders whose status changed
        """
        changed = 0
        for external_id, (status, marketplace_status) in statuses.items():
            if not status:
                continue
            order = await self.get_by_external_id(user_id, marketplace, external_id)
            if not order:
                continue
            if order.status == status and order.marketplace_status == marketplace_status:
                continue

            order.status = status
            order.marketplace_status = marketplace_status
            await self.db.flush()
            await self.add_history(order)
            changed += 1
        return changed

    async def list_orders(self, user_id: int, filters: OrderFilter) -> List[Order]:
        stmt = select(Order).where(Order.user_id == user_id)
        if filters.marketplace:
            stmt = stmt.where(Order.marketplace == filters.marketplace)
        if filters.status:
            stmt = stmt.where(Order.status == filters.status)
        if filters.order_type:
            stmt = stmt.where(Order.order_type == filters.order_type)
        if filters.date_from:
            stmt = stmt.where(Order.order_created >= datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc))
        if filters.date_to:
            stmt = stmt.where(Order.order_created <= datetime.combine(filters.date_to, time.max, tzinfo=timezone.utc))
        if filters.shipment_date:
            stmt = stmt.where(
                Order.shipment_date >= datetime.combine(filters.shipment_date, time.min, tzinfo=timezone.utc),
                Order.shipment_date <= datetime.combine(filters.shipment_date, time.max, tzinfo=timezone.utc),
            )
        result = await self.db.execute(stmt.order_by(Order.id))
        return list(result.scalars().all())

    async def _provider_and_integration(self, order: Order):
        from marketsync.integrations.selector import get_provider

        integration = await IntegrationService(self.db).get_for_user(order.user_id, order.marketplace, active_only=True)
        if not integration:
            raise BusinessError(f"{order.marketplace.capitalize()} integration is not active")
        return get_provider(order.marketplace, self.db), integration

    async def _propagate(self, order: Order, new_status: str, call) -> Order:
        previous = order.status
        order.status = new_status
        await self.db.flush()
        try:
            accepted = await call()
            if not accepted:
                raise ResponseError(f"{order.marketplace.capitalize()} did not accept the change for order {order.external_id}")
        except Exception:
            order.status = previous
            await self.db.flush()
            raise

        await self.add_history(order)
        logger.info(f"Order {order.id} ({order.marketplace}) moved {previous} -> {new_status}")
        return order

    async def cancel(self, order: Order, reason: Optional[str] = None) -> Order:
        """
        Raises:
            BusinessError: For terminal orders, or Ozon orders without a posting number
        """
        if is_terminal(order.status):
            raise BusinessError(f"Order {order.external_id} is already {order.status} and cannot be canceled")
        if order.marketplace == Marketplace.OZON.value and not order.posting_number:
            raise BusinessError("Posting number is required to cancel an Ozon order")

        provider, integration = await self._provider_and_integration(order)
        return await self._propagate(
            order, OrderStatus.CANCEL.value, lambda: provider.cancel_order(order, integration, reason)
        )

    async def change_status(self, order: Order, status: str, posting_number: Optional[str] = None) -> Order:
        """
        Raises:
            BusinessError: For terminal orders, or Ozon orders without a posting number
        """
        if order.marketplace == Marketplace.OZON.value:
            if not posting_number:
                raise BusinessError("Posting number is required for Ozon orders")
            if posting_number != order.posting_number:
                raise ApiError(f"Posting {posting_number} does not belong to order {order.id}")
        if is_terminal(order.status):
            raise BusinessError(f"Order {order.external_id} is already {order.status}")
        if status == order.status:
            return order

        provider, integration = await self._provider_and_integration(order)
        return await self._propagate(
            order, status, lambda: provider.change_order_status(order, status, integration)
        )


