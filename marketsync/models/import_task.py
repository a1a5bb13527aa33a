# marketsync/models/import_task.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from marketsync.core.enums import ImportStatus
from marketsync.database import Base, JSONType, utcnow


class ImportTask(Base):
    """One pull of a marketplace catalog for one user."""

    __tablename__ = "import_tasks"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    integration_id = Column(Integer, ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False)
    marketplace = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default=ImportStatus.PENDING.value, index=True)
    total = Column(Integer, nullable=False, default=0)
    result = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ImportProduct(Base):
    """Staged marketplace card awaiting reconciliation into the local catalog."""

    __tablename__ = "import_products"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("import_tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    uid = Column(String(255), nullable=False)
    barcode = Column(String(64), nullable=True)
    group_key = Column(String(255), nullable=True, index=True)
    status = Column(String(16), nullable=False, default=ImportStatus.PENDING.value)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
