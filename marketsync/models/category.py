# marketsync/models/category.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from marketsync.core.enums import PublishStatus
from marketsync.database import Base, utcnow


class SystemCategory(Base):
    """Shared taxonomy node used to map user categories across marketplaces."""

    __tablename__ = "system_categories"

    id = Column(Integer, primary_key=True)
    parent_id = Column(Integer, ForeignKey("system_categories.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False, index=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    system_category_id = Column(Integer, ForeignKey("system_categories.id", ondelete="SET NULL"), nullable=True)
    external_id = Column(String(255), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default=PublishStatus.PUBLISHED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, title={self.title})>"


class MarketplaceProductCategory(Base):
    """Link between a user category and a marketplace category dictionary entry."""

    __tablename__ = "marketplace_product_categories"
    __table_args__ = (
        UniqueConstraint("category_id", "marketplace", name="marketplace_category_unique"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    marketplace = Column(String(32), nullable=False)
    dictionary_id = Column(Integer, ForeignKey("dictionaries.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
