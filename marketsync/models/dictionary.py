# marketsync/models/dictionary.py
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from marketsync.database import Base, JSONType, utcnow


class Dictionary(Base):
    """
    Marketplace reference data: categories, attributes and their values.

    Entries are unique per (marketplace, type, external_id). `parent_id` builds
    the category tree and ties attribute values to attributes.
    """

    __tablename__ = "dictionaries"
    __table_args__ = (
        Index("dictionaries_marketplace_type_external", "marketplace", "type", "external_id"),
    )

    id = Column(Integer, primary_key=True)
    marketplace = Column(String(32), nullable=False)
    type = Column(String(32), nullable=False)
    external_id = Column(String(255), nullable=True)
    parent_id = Column(Integer, ForeignKey("dictionaries.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(500), nullable=False)
    settings = Column(JSONType, nullable=True)
    system_category_id = Column(Integer, ForeignKey("system_categories.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Dictionary(id={self.id}, marketplace={self.marketplace}, type={self.type}, title={self.title})>"


class MarketplaceAttributeValue(Base):
    """Enumerable value of a marketplace dictionary (e.g. an allowed color)."""

    __tablename__ = "marketplace_attribute_values"
    __table_args__ = (
        Index("marketplace_attribute_values_lookup", "marketplace", "dictionary", "value"),
    )

    id = Column(Integer, primary_key=True)
    marketplace = Column(String(32), nullable=False)
    dictionary = Column(String(255), nullable=False)
    external_id = Column(String(255), nullable=True)
    value = Column(String(500), nullable=False)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
