# marketsync/models/integration.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from marketsync.core.enums import PublishStatus
from marketsync.database import Base, JSONType, utcnow


class Integration(Base):
    """
    A user's configured connection to one marketplace or data source.

    `settings` holds credentials and per-feature switches; read it through
    `IntegrationSettings` rather than probing keys directly.
    """

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("user_id", "type", name="integrations_user_type_unique"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False, index=True)
    price_list_id = Column(Integer, ForeignKey("price_lists.id", ondelete="SET NULL"), nullable=True)
    tax_id = Column(Integer, nullable=True)
    settings = Column(JSONType, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default=PublishStatus.UNPUBLISHED.value, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == PublishStatus.PUBLISHED.value

    def __repr__(self) -> str:
        return f"<Integration(id={self.id}, user_id={self.user_id}, type={self.type}, status={self.status})>"


class IntegrationLog(Base):
    __tablename__ = "integration_logs"

    id = Column(Integer, primary_key=True)
    integration_id = Column(Integer, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    marketplace = Column(String(32), nullable=False)
    level = Column(String(16), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class ExportInfo(Base):
    """Marketplace-side asynchronous export task, polled via provider.export_stat."""

    __tablename__ = "export_infos"

    id = Column(Integer, primary_key=True)
    integration_id = Column(Integer, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    marketplace = Column(String(32), nullable=False)
    task_id = Column(String(64), nullable=True)
    has_error = Column(Boolean, nullable=False, default=False)
    message = Column(Text, nullable=True)
    log = Column(JSONType, nullable=True)
    result = Column(JSONType, nullable=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
