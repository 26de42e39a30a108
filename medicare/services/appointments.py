"""Booking Guard and the appointment lifecycle."""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal
from medicare.core import config
from medicare.core.errors import (
    ForbiddenError,
    NotFoundError,
    SlotConflictError,
    StateConflictError,
    ValidationError,
)
from medicare.database import ACTIVE_SLOT_MARKERS, violates
from medicare.models.appointment import (
    ACTIVE_STATUSES,
    APPOINTMENT_TYPES,
    STATUS_TRANSITIONS,
    Appointment,
    AppointmentStatus,
)
from medicare.models.doctor import Doctor
from medicare.services.availability import is_doctor_on_leave, resolve_day_slots
from medicare.services.clock import combine, human_date, validate_clock
from medicare.services.mailer import EmailSender, appointment_confirmation_email
from medicare.services.notifications import create_notification
from medicare.services.profiles import get_doctor, get_doctor_for, get_patient_for

logger = logging.getLogger(__name__)

ALL_STATUSES = {status.value for status in AppointmentStatus}


def generate_appointment_code(now: datetime) -> str:
    return f'APT-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8].upper()}'


def patient_user_id(appointment: Appointment) -> int | None:
    return appointment.patient.user_id if appointment.patient is not None else None


def doctor_user_id(appointment: Appointment) -> int | None:
    return appointment.doctor.user_id if appointment.doctor is not None else None


def ensure_doctor_bookable(doctor: Doctor) -> None:
    if doctor.approval_status != 'approved' or doctor.is_blocked:
        raise ValidationError('Doctor is not available for appointments')


def check_booking_window(day: date, clock: str, now: datetime) -> None:
    if combine(day, clock) < now:
        raise ValidationError('Cannot book appointment for past date/time. Please select a future time slot.')
    if day > now.date() + relativedelta(months=config.BOOKING_HORIZON_MONTHS):
        raise ValidationError(
            f'Appointments can only be booked up to {config.BOOKING_HORIZON_MONTHS} months in advance'
        )


def ensure_slot_available(
    db: Session,
    doctor: Doctor,
    day: date,
    clock: str,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    if is_doctor_on_leave(db, doctor.id, day):
        raise ValidationError('Doctor is on leave on the selected date')

    states = {state.time: state for state in resolve_day_slots(db, doctor, day, now, exclude_appointment_id)}
    state = states.get(clock)

    if state is None:
        raise ValidationError('Doctor is not available at the requested time')
    if state.blocked:
        raise SlotConflictError('This time slot has been blocked by the doctor. Please choose another time.')
    if state.booked:
        raise SlotConflictError('This time slot is already booked')
    if state.past:
        raise ValidationError('Cannot book appointment for past date/time. Please select a future time slot.')


def _flush_slot(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if not violates(exc, ACTIVE_SLOT_MARKERS):
            raise
        raise SlotConflictError('This time slot is already booked') from exc


def book_appointment(
    db: Session,
    principal: Principal,
    *,
    doctor_id: int,
    appointment_date: date,
    appointment_time: str,
    appointment_type: str,
    reason: str,
    symptoms: list[str] | None = None,
    email_sender: EmailSender | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    patient = get_patient_for(db, principal)

    validate_clock(appointment_time)
    if appointment_type not in APPOINTMENT_TYPES:
        raise ValidationError('Invalid appointment type')
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('Reason for visit is required')

    doctor = get_doctor(db, doctor_id)
    ensure_doctor_bookable(doctor)
    check_booking_window(appointment_date, appointment_time, now)
    ensure_slot_available(db, doctor, appointment_date, appointment_time, now)

    appointment = Appointment(
        appointment_code=generate_appointment_code(now),
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        duration=doctor.consultation_duration,
        appointment_type=appointment_type,
        reason_for_visit=reason,
        symptoms=list(symptoms or []),
        status=AppointmentStatus.SCHEDULED.value,
    )
    db.add(appointment)
    # The partial unique index settles races the read above cannot see.
    _flush_slot(db)

    when = f'{human_date(appointment_date)} at {appointment_time}'
    patient_name = patient.user.full_name if patient.user else 'a patient'
    create_notification(
        db,
        recipient_id=doctor.user_id,
        notification_type='appointment_booked',
        title='New Appointment Request',
        message=f'New appointment request from {patient_name} for {when}',
        entity_type='appointment',
        entity_id=appointment.id,
    )
    create_notification(
        db,
        recipient_id=patient.user_id,
        notification_type='appointment_confirmed',
        title='Appointment Booked',
        message=f'Your appointment with {doctor.display_name} is booked for {when}.',
        category='success',
        entity_type='appointment',
        entity_id=appointment.id,
    )
    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s booked with doctor %s for %s', appointment.appointment_code, doctor.id, when)

    if email_sender is not None and patient.user is not None:
        subject, html = appointment_confirmation_email(patient.user.full_name, doctor.display_name, when)
        email_sender.send(patient.user.email, subject, html)

    return appointment


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found')
    return appointment


def _get_own_patient_appointment(db: Session, principal: Principal, appointment_id: int, action: str) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    patient = get_patient_for(db, principal)
    if appointment.patient_id != patient.id:
        raise ForbiddenError(f'You can only {action} your own appointments')
    return appointment


def mark_cancelled(appointment: Appointment, *, reason: str, cancelled_by: str, now: datetime) -> None:
    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation_reason = reason
    appointment.cancelled_by = cancelled_by
    appointment.cancelled_at = now


def cancel_appointment(
    db: Session,
    principal: Principal,
    appointment_id: int,
    reason: str,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('Cancel reason is required')

    appointment = _get_own_patient_appointment(db, principal, appointment_id, 'cancel')

    if not appointment.is_active:
        raise StateConflictError('Appointment cannot be cancelled at this time')
    cutoff = timedelta(hours=config.CANCELLATION_CUTOFF_HOURS)
    if combine(appointment.appointment_date, appointment.appointment_time) - now <= cutoff:
        raise ValidationError(
            f'Appointments can only be cancelled more than {config.CANCELLATION_CUTOFF_HOURS} hours in advance'
        )

    mark_cancelled(appointment, reason=reason, cancelled_by='patient', now=now)

    patient_name = appointment.patient.user.full_name if appointment.patient.user else 'Patient'
    create_notification(
        db,
        recipient_id=doctor_user_id(appointment),
        notification_type='appointment_cancelled',
        title='Appointment Cancelled',
        message=(
            f'Appointment with {patient_name} on {human_date(appointment.appointment_date)} at '
            f'{appointment.appointment_time} has been cancelled. Reason: {reason}'
        ),
        entity_type='appointment',
        entity_id=appointment.id,
    )
    db.commit()
    db.refresh(appointment)
    return appointment


def reschedule_appointment(
    db: Session,
    principal: Principal,
    appointment_id: int,
    *,
    new_date: date,
    new_time: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    appointment = _get_own_patient_appointment(db, principal, appointment_id, 'reschedule')

    if not appointment.is_active:
        raise StateConflictError('Cannot reschedule completed or cancelled appointments')
    if appointment.doctor is None:
        raise StateConflictError('The doctor for this appointment is no longer available')
    cutoff = timedelta(hours=config.RESCHEDULE_CUTOFF_HOURS)
    if combine(appointment.appointment_date, appointment.appointment_time) - now <= cutoff:
        raise ValidationError(
            f'Appointments can only be rescheduled more than {config.RESCHEDULE_CUTOFF_HOURS} hours in advance'
        )

    validate_clock(new_time)
    doctor = appointment.doctor
    ensure_doctor_bookable(doctor)
    check_booking_window(new_date, new_time, now)
    ensure_slot_available(db, doctor, new_date, new_time, now, exclude_appointment_id=appointment.id)

    old_date, old_time = appointment.appointment_date, appointment.appointment_time
    appointment.rescheduled_from_date = old_date
    appointment.rescheduled_from_time = old_time
    appointment.rescheduled_reason = reason
    appointment.appointment_date = new_date
    appointment.appointment_time = new_time
    _flush_slot(db)

    patient_name = appointment.patient.user.full_name if appointment.patient.user else 'Patient'
    create_notification(
        db,
        recipient_id=doctor.user_id,
        notification_type='appointment_rescheduled',
        title='Appointment Rescheduled',
        message=(
            f'Appointment with {patient_name} has been rescheduled from {human_date(old_date)} at {old_time} '
            f'to {human_date(new_date)} at {new_time}. Reason: {reason or "not given"}'
        ),
        entity_type='appointment',
        entity_id=appointment.id,
    )
    db.commit()
    db.refresh(appointment)
    return appointment


def update_appointment_status(
    db: Session,
    principal: Principal,
    appointment_id: int,
    new_status: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()
    doctor = get_doctor_for(db, principal)
    appointment = get_appointment_or_404(db, appointment_id)

    if appointment.doctor_id != doctor.id:
        raise ForbiddenError('Access denied')
    if new_status not in ALL_STATUSES:
        raise ValidationError('Invalid status')
    if new_status not in STATUS_TRANSITIONS.get(appointment.status, set()):
        raise StateConflictError(f'Cannot change appointment status from {appointment.status} to {new_status}')

    appointment.status = new_status
    if new_status == AppointmentStatus.IN_PROGRESS.value:
        appointment.check_in_time = now
    elif new_status == AppointmentStatus.COMPLETED.value:
        appointment.check_out_time = now
        if notes:
            appointment.doctor_notes = notes
    elif new_status == AppointmentStatus.CANCELLED.value:
        mark_cancelled(appointment, reason=notes or 'Cancelled by the doctor', cancelled_by='doctor', now=now)
        create_notification(
            db,
            recipient_id=patient_user_id(appointment),
            notification_type='appointment_cancelled',
            title='Appointment Cancelled',
            message=(
                f'Your appointment on {human_date(appointment.appointment_date)} at '
                f'{appointment.appointment_time} with {doctor.display_name} has been cancelled.'
            ),
            priority='high',
            category='warning',
            entity_type='appointment',
            entity_id=appointment.id,
        )

    db.commit()
    db.refresh(appointment)
    return appointment


def get_appointment(db: Session, principal: Principal, appointment_id: int) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    if principal.is_admin:
        return appointment
    if principal.user_id in (patient_user_id(appointment), doctor_user_id(appointment)):
        return appointment
    raise ForbiddenError('Access denied')


def list_my_appointments(db: Session, principal: Principal, status: str | None = None) -> list[Appointment]:
    query = db.query(Appointment)
    if principal.role == 'patient':
        query = query.filter(Appointment.patient_id == get_patient_for(db, principal).id)
    elif principal.role == 'doctor':
        query = query.filter(Appointment.doctor_id == get_doctor_for(db, principal).id)
    else:
        raise NotFoundError('User profile not found')

    if status and status.strip():
        statuses = [value.strip() for value in status.split(',') if value.strip()]
        query = query.filter(Appointment.status.in_(statuses))

    return query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc()).all()


def find_active_appointments(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date >= start_date,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if end_date is not None:
        query = query.filter(Appointment.appointment_date <= end_date)
    return query.order_by(Appointment.appointment_date, Appointment.appointment_time).all()


def cancel_active_appointments(
    db: Session,
    appointments: Iterable[Appointment],
    *,
    reason: str,
    cancelled_by: str,
    title: str,
    message_for: Callable[[Appointment], str],
    now: datetime,
) -> int:
    """Cancel each appointment and stage one patient notification per appointment.

    Runs inside the caller's transaction; returns the number of notifications
    staged.
    """
    notified = 0
    for appointment in appointments:
        mark_cancelled(appointment, reason=reason, cancelled_by=cancelled_by, now=now)
        notification = create_notification(
            db,
            recipient_id=patient_user_id(appointment),
            notification_type='appointment_cancelled',
            title=title,
            message=message_for(appointment),
            priority='high',
            category='warning',
            entity_type='appointment',
            entity_id=appointment.id,
        )
        if notification is not None:
            notified += 1
    return notified


