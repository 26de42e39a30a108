"""Notification model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from medicare.database import Base


class Notification(Base):
    """An in-app message owned by its recipient."""
    __tablename__ = "notifications"
    __table_args__ = (
        Index('idx_notifications_recipient_read', 'recipient_id', 'is_read'),
    )

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default='medium')
    category = Column(String, nullable=False, default='info')
    entity_type = Column(String, nullable=True)
    entity_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
