"""Appointment model definitions."""

import enum

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medicare.database import ACTIVE_SLOT_INDEX, Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)
STATUS_TRANSITIONS = {
    AppointmentStatus.SCHEDULED.value: {
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    },
    AppointmentStatus.CONFIRMED.value: {
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    },
    AppointmentStatus.IN_PROGRESS.value: {AppointmentStatus.COMPLETED.value},
}
APPOINTMENT_TYPES = ('in-person', 'emergency')

_ACTIVE_SLOT_PREDICATE = text("status IN ('scheduled', 'confirmed')")


class Appointment(Base):
    """Represents a booked consultation."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            'doctor_id',
            'appointment_date',
            'appointment_time',
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date'),
        Index('idx_appointments_patient_date', 'patient_id', 'appointment_date'),
    )

    id = Column(Integer, primary_key=True)
    appointment_code = Column(String, unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    # NULL once the doctor account has been deleted.
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="SET NULL"), nullable=True)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False, default=30)
    appointment_type = Column(String, nullable=False, default='in-person')
    reason_for_visit = Column(Text, nullable=False)
    symptoms = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value, index=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    rescheduled_from_date = Column(Date, nullable=True)
    rescheduled_from_time = Column(String(5), nullable=True)
    rescheduled_reason = Column(Text, nullable=True)

    check_in_time = Column(DateTime, nullable=True)
    check_out_time = Column(DateTime, nullable=True)
    doctor_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("Patient")
    doctor = relationship("Doctor")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
