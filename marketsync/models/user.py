# marketsync/models/user.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from marketsync.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    api_token = Column(String(80), nullable=True, unique=True, index=True)
    max_products = Column(Integer, nullable=True)  # overrides IMPORT_MAX_PRODUCTS when set
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class UserNotification(Base):
    """Persistent alert shown to the user until read."""

    __tablename__ = "user_notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    level = Column(String(16), nullable=False, default="info")  # info, success, danger
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
