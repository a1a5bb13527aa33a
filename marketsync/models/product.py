# marketsync/models/product.py
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint

from marketsync.core.enums import ItemType, PublishStatus
from marketsync.database import Base, JSONType, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("user_id", "sku", name="products_unique_sku"),
    )

    item_type = ItemType.PRODUCT

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    external_id = Column(String(255), nullable=True, index=True)
    sku = Column(String(255), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=PublishStatus.PUBLISHED.value, index=True)
    primary_image = Column(String(500), nullable=True)
    barcode = Column(String(64), nullable=True)
    country = Column(String(64), nullable=True)

    weight = Column(Float, nullable=True)
    length = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)

    attributes = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku={self.sku})>"


class ProductVariation(Base):
    """A SKU-level variation. Every product owns at least one."""

    __tablename__ = "product_variations"

    item_type = ItemType.VARIATION

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    uuid = Column(String(36), nullable=False, unique=True)
    vendor_code = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=True)
    barcode = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default=PublishStatus.PUBLISHED.value)
    is_main = Column(Boolean, nullable=False, default=False)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ProductVariationItem(Base):
    """Size/flavor-like sub-unit of a variation."""

    __tablename__ = "product_variation_items"

    item_type = ItemType.VARIATION_ITEM

    id = Column(Integer, primary_key=True)
    variation_id = Column(Integer, ForeignKey("product_variations.id", ondelete="CASCADE"), nullable=False, index=True)
    uuid = Column(String(36), nullable=False, unique=True)
    barcode = Column(String(64), nullable=True, index=True)
    title = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=PublishStatus.PUBLISHED.value)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variation_id = Column(Integer, ForeignKey("product_variations.id", ondelete="CASCADE"), nullable=True)
    path = Column(String(500), nullable=False)  # storage key or absolute url
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
