from sqlalchemy import Column, DateTime, Integer, String, Text

from marketsync.core.enums import JobStatus
from marketsync.database import Base, JSONType, utcnow


class SyncJob(Base):
    """
    Queued unit of marketplace work.

    Delivery is at-least-once: a job can run again after a worker crash or a
    retry, so handlers must be idempotent.
    """

    __tablename__ = "sync_jobs"

    id = Column(Integer, primary_key=True)
    job_type = Column(String(64), nullable=False, index=True)
    marketplace = Column(String(32), nullable=True)
    user_id = Column(Integer, nullable=True, index=True)
    payload = Column(JSONType, nullable=False)
    status = Column(String(32), nullable=False, default=JobStatus.QUEUED.value, index=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    available_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, type={self.job_type}, status={self.status})>"
