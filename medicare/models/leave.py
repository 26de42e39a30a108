"""Leave model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medicare.database import Base

LEAVE_TYPES = (
    'sick_leave',
    'casual_leave',
    'vacation',
    'emergency',
    'maternity',
    'paternity',
    'compensatory',
    'unpaid',
    'other',
)
LEAVE_STATUSES = ('pending', 'approved', 'rejected', 'cancelled')
OPEN_LEAVE_STATUSES = ('pending', 'approved')
HALF_DAY_TYPES = ('first_half', 'second_half')


class Leave(Base):
    """A doctor's leave request and its approval trail."""
    __tablename__ = "leaves"
    __table_args__ = (
        Index('idx_leaves_doctor_range', 'doctor_id', 'start_date', 'end_date'),
    )

    id = Column(Integer, primary_key=True)
    leave_code = Column(String, unique=True, nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    leave_type = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_half_day = Column(Boolean, nullable=False, default=False)
    half_day_type = Column(String, nullable=True)
    total_days = Column(Float, nullable=False, default=0)
    reason = Column(Text, nullable=False)
    status = Column(String, nullable=False, default='pending', index=True)

    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    patients_notified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="leaves")
    affected_appointments = relationship(
        "LeaveAffectedAppointment",
        back_populates="leave",
        cascade="all, delete-orphan",
        order_by="LeaveAffectedAppointment.id",
    )

    def compute_total_days(self) -> float:
        if self.is_half_day:
            return 0.5
        return float((self.end_date - self.start_date).days + 1)


class LeaveAffectedAppointment(Base):
    """Ledger entry for an appointment touched by an approved leave."""
    __tablename__ = "leave_affected_appointments"

    id = Column(Integer, primary_key=True)
    leave_id = Column(Integer, ForeignKey("leaves.id", ondelete="CASCADE"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False)
    action = Column(String, nullable=False, default='cancelled')
    action_date = Column(DateTime, nullable=False)

    leave = relationship("Leave", back_populates="affected_appointments")


@event.listens_for(Leave, 'before_insert')
@event.listens_for(Leave, 'before_update')
def _derive_total_days(mapper, connection, target: Leave) -> None:
    if target.start_date is not None and target.end_date is not None:
        target.total_days = target.compute_total_days()
