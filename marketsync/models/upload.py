from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from marketsync.database import Base, utcnow


class UploadSession(Base):
    """Temporary media upload, referenced from API payloads by its uuid."""

    __tablename__ = "upload_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    uuid = Column(String(36), nullable=False, unique=True)
    temp_path = Column(String(500), nullable=False)  # relative to TEMP_UPLOAD_DIR
    filename = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
