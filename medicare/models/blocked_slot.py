"""Blocked slot model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medicare.database import Base


class BlockedSlot(Base):
    """A recurring weekday time range the doctor has excluded from booking."""
    __tablename__ = "blocked_slots"
    __table_args__ = (
        Index('idx_blocked_slots_doctor_day', 'doctor_id', 'day', 'is_active'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    day = Column(String, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    reason = Column(String, nullable=False, default='')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    doctor = relationship("Doctor", back_populates="blocked_slots")
