# marketsync/models/marketplace_product.py
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from marketsync.core.enums import MarketplaceProductStatus
from marketsync.database import Base, JSONType, utcnow


class MarketplaceProduct(Base):
    """
    Publication state of a product, variation or item on one marketplace.

    No foreign key: rows are removed explicitly by CatalogService when the
    owning object is deleted.
    """

    __tablename__ = "marketplace_products"
    __table_args__ = (
        UniqueConstraint("item_type", "item_id", "marketplace", "user_id", name="marketplace_products_unique"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    marketplace = Column(String(32), nullable=False)
    item_type = Column(String(32), nullable=False)
    item_id = Column(Integer, nullable=False, index=True)
    barcode = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default=MarketplaceProductStatus.PENDING.value)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
