# marketsync/models/price.py
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Table, UniqueConstraint

from marketsync.database import Base, utcnow


price_list_products = Table(
    "price_list_products",
    Base.metadata,
    Column("price_list_id", Integer, ForeignKey("price_lists.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class PriceList(Base):
    __tablename__ = "price_lists"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Price(Base):
    """
    Price of one hierarchy object inside a price list.

    `price_type` is a marketplace key or "default".
    """

    __tablename__ = "prices"
    __table_args__ = (
        UniqueConstraint("price_list_id", "item_type", "item_id", "price_type", name="prices_unique_target"),
    )

    id = Column(Integer, primary_key=True)
    price_list_id = Column(Integer, ForeignKey("price_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    item_type = Column(String(32), nullable=False)
    item_id = Column(Integer, nullable=False)
    price_type = Column(String(32), nullable=False)
    base = Column(Float, nullable=True)
    purchase = Column(Float, nullable=True)
    presale = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Stock(Base):
    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint("price_list_id", "item_type", "item_id", "warehouse_id", name="stocks_unique_target"),
    )

    id = Column(Integer, primary_key=True)
    price_list_id = Column(Integer, ForeignKey("price_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    item_type = Column(String(32), nullable=False)
    item_id = Column(Integer, nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
