"""Doctor model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medicare.core import config
from medicare.database import Base

DAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class Doctor(Base):
    """Doctor profile with its weekly availability template.

    ``availability`` holds one entry per weekday::

        {"day": "monday", "is_available": true,
         "slots": [{"start_time": "09:00", "end_time": "12:00"}]}
    """
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    specialization = Column(String, nullable=True)
    consultation_fee = Column(Float, nullable=False, default=0)
    consultation_duration = Column(
        Integer,
        nullable=False,
        default=config.DEFAULT_CONSULTATION_DURATION_MINUTES,
    )
    availability = Column(JSON, nullable=False, default=list)

    approval_status = Column(String, nullable=False, default='pending', index=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String, nullable=True)

    # Admin hard stop, independent of approval_status.
    is_blocked = Column(Boolean, nullable=False, default=False)
    blocked_at = Column(DateTime, nullable=True)
    blocked_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    block_reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    blocked_slots = relationship("BlockedSlot", back_populates="doctor", cascade="all, delete-orphan")
    leaves = relationship("Leave", back_populates="doctor", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        if self.user is None:
            return 'your doctor'
        return f'Dr. {self.user.full_name}'

    def day_template(self, day_name: str) -> dict | None:
        for entry in self.availability or []:
            if entry.get('day') == day_name:
                return entry
        return None
