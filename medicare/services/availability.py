"""Availability Resolver.

Turns a doctor's weekly template into concrete slots for one calendar date,
then layers blocked slots, approved leave and existing bookings on top.
"""

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from medicare.core import config
from medicare.core.errors import ValidationError
from medicare.models.appointment import ACTIVE_STATUSES, Appointment
from medicare.models.blocked_slot import BlockedSlot
from medicare.models.doctor import Doctor
from medicare.models.leave import Leave
from medicare.services.clock import clock_minutes, day_name, format_clock
from medicare.services.profiles import get_doctor


@dataclass
class SlotState:
    time: str
    blocked: bool = False
    on_leave: bool = False
    booked: bool = False
    past: bool = False

    @property
    def listed(self) -> bool:
        return not self.blocked and not self.on_leave

    @property
    def available(self) -> bool:
        return self.listed and not self.booked and not self.past


def iterate_window_slots(start_time: str, end_time: str, duration_minutes: int) -> list[str]:
    """Slot start times from ``start_time`` up to, not including, ``end_time``."""
    current = clock_minutes(start_time)
    end = clock_minutes(end_time)
    slots: list[str] = []

    while current < end:
        slots.append(format_clock(current))
        current += duration_minutes

    return slots


def slot_overlaps(slot_time: str, duration_minutes: int, start_time: str, end_time: str) -> bool:
    slot_start = clock_minutes(slot_time)
    return slot_start < clock_minutes(end_time) and slot_start + duration_minutes > clock_minutes(start_time)


def is_doctor_on_leave(db: Session, doctor_id: int, day: date) -> bool:
    return db.query(Leave).filter(
        Leave.doctor_id == doctor_id,
        Leave.status == 'approved',
        Leave.start_date <= day,
        Leave.end_date >= day,
    ).count() > 0


def get_booked_times(
    db: Session,
    doctor_id: int,
    day: date,
    exclude_appointment_id: int | None = None,
) -> set[str]:
    query = db.query(Appointment.appointment_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == day,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return {appointment_time for (appointment_time,) in query.all()}


def get_active_blocked_slots(db: Session, doctor_id: int, day_of_week: str) -> list[BlockedSlot]:
    return db.query(BlockedSlot).filter(
        BlockedSlot.doctor_id == doctor_id,
        BlockedSlot.day == day_of_week,
        BlockedSlot.is_active.is_(True),
    ).all()


def resolve_day_slots(
    db: Session,
    doctor: Doctor,
    day: date,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> list[SlotState]:
    """Every template slot for ``day`` with the reason it may not be bookable."""
    weekday = day_name(day)
    template = doctor.day_template(weekday)
    if not template or not template.get('is_available', True) or not template.get('slots'):
        return []

    duration = doctor.consultation_duration or config.DEFAULT_CONSULTATION_DURATION_MINUTES
    times = sorted({
        slot_time
        for window in template['slots']
        for slot_time in iterate_window_slots(window['start_time'], window['end_time'], duration)
    })

    blocked_slots = get_active_blocked_slots(db, doctor.id, weekday)
    on_leave = is_doctor_on_leave(db, doctor.id, day)
    booked_times = get_booked_times(db, doctor.id, day, exclude_appointment_id)
    is_today = day == now.date()
    current_clock = now.strftime('%H:%M')

    return [
        SlotState(
            time=slot_time,
            blocked=any(
                slot_overlaps(slot_time, duration, blocked.start_time, blocked.end_time)
                for blocked in blocked_slots
            ),
            on_leave=on_leave,
            booked=slot_time in booked_times,
            past=is_today and slot_time <= current_clock,
        )
        for slot_time in times
    ]


def get_available_slots(db: Session, doctor_id: int, day: date, now: datetime | None = None) -> list[dict]:
    now = now or datetime.now()
    if day < now.date():
        raise ValidationError('Date cannot be in the past')

    doctor = get_doctor(db, doctor_id)

    return [
        {'time': state.time, 'available': state.available}
        for state in resolve_day_slots(db, doctor, day, now)
        if state.listed
    ]
