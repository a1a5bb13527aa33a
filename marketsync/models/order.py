# marketsync/models/order.py
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from marketsync.core.enums import OrderStatus, OrderType, SupplyStatus
from marketsync.database import Base, JSONType, utcnow


class Supply(Base):
    """Shipment container; open until closed, then immutable."""

    __tablename__ = "supplies"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    marketplace = Column(String(32), nullable=False)
    order_type = Column(String(16), nullable=False, default=OrderType.FBS.value)
    external_id = Column(String(64), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=SupplyStatus.OPEN.value, index=True)
    data = Column(JSONType, nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_open(self) -> bool:
        return self.status == SupplyStatus.OPEN.value


class Order(Base):
    """
    Local mirror of a marketplace order.

    `status` is the seller-side state and `marketplace_status` the marketplace's
    own view (wbStatus for Wildberries). Marketplace-specific fields such as the
    Ozon posting number live in `additional_data`.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("user_id", "marketplace", "external_id", name="orders_unique_external"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    marketplace = Column(String(32), nullable=False, index=True)
    external_id = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default=OrderStatus.NEW.value, index=True)
    marketplace_status = Column(String(32), nullable=True)
    order_type = Column(String(16), nullable=False, default=OrderType.FBS.value)
    total = Column(Float, nullable=False, default=0)
    order_created = Column(DateTime(timezone=True), nullable=True)
    shipment_date = Column(DateTime(timezone=True), nullable=True)
    delivery = Column(JSONType, nullable=True)
    additional_data = Column(JSONType, nullable=True)
    supply_id = Column(Integer, ForeignKey("supplies.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def posting_number(self):
        return (self.additional_data or {}).get("posting_number")

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, marketplace={self.marketplace}, external_id={self.external_id}, status={self.status})>"


class OrderProduct(Base):
    __tablename__ = "order_products"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    variation_id = Column(Integer, ForeignKey("product_variations.id", ondelete="SET NULL"), nullable=True)
    sku = Column(String(255), nullable=True)
    barcode = Column(String(64), nullable=True)
    name = Column(String(500), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0)


class OrderHistory(Base):
    __tablename__ = "order_histories"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    marketplace_status = Column(String(32), nullable=True)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
