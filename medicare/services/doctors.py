"""Doctor Suspension Cascade plus the doctor-owned schedule and blocked slots."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal
from medicare.core import config
from medicare.core.errors import ForbiddenError, NotFoundError, StateConflictError, ValidationError
from medicare.models.appointment import Appointment
from medicare.models.blocked_slot import BlockedSlot
from medicare.models.doctor import DAY_NAMES, Doctor
from medicare.models.notification import Notification
from medicare.services.appointments import cancel_active_appointments, find_active_appointments
from medicare.services.clock import clock_minutes, human_date, validate_clock
from medicare.services.mailer import EmailSender, doctor_blocked_email, doctor_unblocked_email
from medicare.services.notifications import create_notification
from medicare.services.profiles import get_doctor, get_doctor_for

logger = logging.getLogger(__name__)

MIN_CONSULTATION_DURATION = 5
MAX_CONSULTATION_DURATION = 240
APPROVAL_DECISIONS = ('approved', 'rejected')


def _require_reason(reason: str | None, label: str) -> str:
    reason = (reason or '').strip()
    if len(reason) < config.MIN_REASON_LENGTH:
        raise ValidationError(f'{label} must be at least {config.MIN_REASON_LENGTH} characters')
    return reason


def _cancel_future_appointments(db: Session, doctor: Doctor, now: datetime) -> tuple[int, int]:
    """Cancel every active appointment from today on. Returns (cancelled, notified)."""
    doctor_name = doctor.display_name
    appointments = find_active_appointments(db, doctor.id, now.date())
    notified = cancel_active_appointments(
        db,
        appointments,
        reason=(
            f'{doctor_name} is temporarily unavailable. '
            'Please book an appointment with another doctor.'
        ),
        cancelled_by='admin',
        title='Appointment Cancelled - Doctor Unavailable',
        message_for=lambda appointment: (
            f'Your appointment with {doctor_name} on {human_date(appointment.appointment_date)} at '
            f'{appointment.appointment_time} has been cancelled as the doctor is temporarily unavailable. '
            'Please book an appointment with another doctor.'
        ),
        now=now,
    )
    return len(appointments), notified


def block_doctor(
    db: Session,
    doctor_id: int,
    admin: Principal,
    reason: str | None,
    email_sender: EmailSender | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.now()
    reason = _require_reason(reason, 'Block reason')
    doctor = get_doctor(db, doctor_id)
    if doctor.is_blocked:
        raise StateConflictError('Doctor is already blocked')

    doctor.is_blocked = True
    doctor.blocked_at = now
    doctor.blocked_by = admin.user_id
    doctor.block_reason = reason

    cancelled, notified = _cancel_future_appointments(db, doctor, now)
    db.commit()
    db.refresh(doctor)

    logger.info(
        'Doctor %s blocked by user %s; %d appointment(s) cancelled',
        doctor.id,
        admin.user_id,
        cancelled,
    )

    if email_sender is not None and doctor.user is not None:
        subject, html = doctor_blocked_email(doctor.display_name, reason)
        email_sender.send(doctor.user.email, subject, html)

    return {
        'blocked_doctor': doctor.display_name,
        'cancelled_appointments': cancelled,
        'notified_patients': notified,
        'block_reason': reason,
    }


def unblock_doctor(
    db: Session,
    doctor_id: int,
    admin: Principal,
    email_sender: EmailSender | None = None,
) -> dict:
    """Lift a block. Appointments cancelled by the block stay cancelled."""
    doctor = get_doctor(db, doctor_id)
    if not doctor.is_blocked:
        raise StateConflictError('Doctor is not blocked')

    doctor.is_blocked = False
    doctor.blocked_at = None
    doctor.blocked_by = None
    doctor.block_reason = None
    db.commit()
    db.refresh(doctor)

    logger.info('Doctor %s unblocked by user %s', doctor.id, admin.user_id)

    if email_sender is not None and doctor.user is not None:
        subject, html = doctor_unblocked_email(doctor.display_name)
        email_sender.send(doctor.user.email, subject, html)

    return {'unblocked_doctor': doctor.display_name}


def delete_doctor(db: Session, doctor_id: int, admin: Principal, now: datetime | None = None) -> dict:
    """Cancel future bookings, then remove the doctor profile and its user account.

    Historical appointments are kept with ``doctor_id`` cleared. Blocked slots
    and leaves go with the profile; the user's notifications go with the user.
    """
    now = now or datetime.now()
    doctor = get_doctor(db, doctor_id)
    doctor_name = doctor.display_name
    user = doctor.user

    cancelled, notified = _cancel_future_appointments(db, doctor, now)
    db.flush()

    detached = 0
    for appointment in db.query(Appointment).filter(Appointment.doctor_id == doctor.id).all():
        appointment.doctor = None
        detached += 1

    if user is not None:
        db.query(Notification).filter(Notification.recipient_id == user.id).delete(synchronize_session=False)

    db.delete(doctor)
    db.flush()
    if user is not None:
        db.delete(user)
    db.commit()

    logger.info(
        'Doctor %s deleted by user %s; %d appointment(s) cancelled, %d detached',
        doctor_id,
        admin.user_id,
        cancelled,
        detached,
    )

    return {
        'deleted_doctor': doctor_name,
        'cancelled_appointments': cancelled,
        'notified_patients': notified,
    }


def update_doctor_approval(
    db: Session,
    doctor_id: int,
    admin: Principal,
    status: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> Doctor:
    now = now or datetime.now()
    if status not in APPROVAL_DECISIONS:
        raise ValidationError('Status must be approved or rejected')
    if status == 'rejected':
        reason = _require_reason(reason, 'Rejection reason')

    doctor = get_doctor(db, doctor_id)
    if doctor.approval_status == status:
        raise StateConflictError(f'Doctor is already {status}')

    doctor.approval_status = status
    if status == 'approved':
        doctor.approved_by = admin.user_id
        doctor.approved_at = now
        doctor.rejection_reason = None
        create_notification(
            db,
            recipient_id=doctor.user_id,
            notification_type='doctor_approved',
            title='Account Approved',
            message='Your doctor account has been approved. You can now accept appointments.',
            priority='high',
            category='success',
            entity_type='doctor',
            entity_id=doctor.id,
        )
    else:
        doctor.rejection_reason = reason
        create_notification(
            db,
            recipient_id=doctor.user_id,
            notification_type='doctor_rejected',
            title='Account Rejected',
            message=f'Your doctor account has been rejected. Reason: {reason}',
            priority='high',
            category='warning',
            entity_type='doctor',
            entity_id=doctor.id,
        )

    db.commit()
    db.refresh(doctor)
    logger.info('Doctor %s %s by user %s', doctor.id, status, admin.user_id)
    return doctor


def set_doctor_suspension(
    db: Session,
    doctor_id: int,
    admin: Principal,
    suspended: bool,
    reason: str | None = None,
) -> Doctor:
    """Suspend an approved doctor or reactivate a suspended one.

    Suspension makes the doctor unbookable without touching existing
    appointments.
    """
    if suspended:
        reason = _require_reason(reason, 'Suspension reason')

    doctor = get_doctor(db, doctor_id)
    if suspended:
        if doctor.approval_status == 'suspended':
            raise StateConflictError('Doctor is already suspended')
        if doctor.approval_status != 'approved':
            raise StateConflictError('Only approved doctors can be suspended')
        doctor.approval_status = 'suspended'
        doctor.rejection_reason = reason
        create_notification(
            db,
            recipient_id=doctor.user_id,
            notification_type='doctor_rejected',
            title='Account Suspended',
            message=f'Your account has been suspended. Reason: {reason}',
            priority='high',
            category='warning',
            entity_type='doctor',
            entity_id=doctor.id,
        )
    else:
        if doctor.approval_status != 'suspended':
            raise StateConflictError('Doctor is not suspended')
        doctor.approval_status = 'approved'
        doctor.rejection_reason = None
        create_notification(
            db,
            recipient_id=doctor.user_id,
            notification_type='doctor_approved',
            title='Account Activated',
            message='Your account has been activated. You can now accept appointments.',
            priority='high',
            category='success',
            entity_type='doctor',
            entity_id=doctor.id,
        )

    db.commit()
    db.refresh(doctor)
    logger.info('Doctor %s %s by user %s', doctor.id, 'suspended' if suspended else 'activated', admin.user_id)
    return doctor


def normalize_availability(availability: list[dict]) -> list[dict]:
    """Validate a weekly template and return it ordered Monday first."""
    entries: dict[str, dict] = {}

    for entry in availability:
        day = (entry.get('day') or '').strip().lower()
        if day not in DAY_NAMES:
            raise ValidationError(f'Invalid day: {entry.get("day")}')
        if day in entries:
            raise ValidationError(f'Duplicate day: {day}')

        slots = []
        for window in entry.get('slots') or []:
            start = validate_clock(window.get('start_time'), 'Start time')
            end = validate_clock(window.get('end_time'), 'End time')
            if clock_minutes(end) <= clock_minutes(start):
                raise ValidationError('End time must be after start time')
            slots.append({'start_time': start, 'end_time': end})

        entries[day] = {
            'day': day,
            'is_available': bool(entry.get('is_available', True)),
            'slots': sorted(slots, key=lambda window: window['start_time']),
        }

    return [entries[day] for day in DAY_NAMES if day in entries]


def get_schedule(db: Session, principal: Principal) -> Doctor:
    return get_doctor_for(db, principal)


def update_schedule(
    db: Session,
    principal: Principal,
    availability: list[dict] | None = None,
    consultation_duration: int | None = None,
    consultation_fee: float | None = None,
) -> Doctor:
    doctor = get_doctor_for(db, principal)

    if consultation_duration is not None and not (
        MIN_CONSULTATION_DURATION <= consultation_duration <= MAX_CONSULTATION_DURATION
    ):
        raise ValidationError(
            f'Consultation duration must be between {MIN_CONSULTATION_DURATION} '
            f'and {MAX_CONSULTATION_DURATION} minutes'
        )
    if consultation_fee is not None and consultation_fee < 0:
        raise ValidationError('Consultation fee cannot be negative')

    if availability is not None:
        doctor.availability = normalize_availability(availability)
    if consultation_duration is not None:
        doctor.consultation_duration = consultation_duration
    if consultation_fee is not None:
        doctor.consultation_fee = consultation_fee

    db.commit()
    db.refresh(doctor)
    return doctor


def list_blocked_slots(db: Session, principal: Principal) -> list[BlockedSlot]:
    doctor = get_doctor_for(db, principal)
    slots = db.query(BlockedSlot).filter(
        BlockedSlot.doctor_id == doctor.id,
        BlockedSlot.is_active.is_(True),
    ).all()
    return sorted(slots, key=lambda slot: (DAY_NAMES.index(slot.day), slot.start_time))


def create_blocked_slot(
    db: Session,
    principal: Principal,
    day: str,
    start_time: str,
    end_time: str,
    reason: str | None = None,
) -> BlockedSlot:
    doctor = get_doctor_for(db, principal)

    day = (day or '').strip().lower()
    if day not in DAY_NAMES:
        raise ValidationError('Invalid day')
    validate_clock(start_time, 'Start time')
    validate_clock(end_time, 'End time')
    if clock_minutes(end_time) <= clock_minutes(start_time):
        raise ValidationError('End time must be after start time')

    overlapping = db.query(BlockedSlot).filter(
        BlockedSlot.doctor_id == doctor.id,
        BlockedSlot.day == day,
        BlockedSlot.is_active.is_(True),
        BlockedSlot.start_time < end_time,
        BlockedSlot.end_time > start_time,
    ).first()
    if overlapping is not None:
        raise StateConflictError('This time range overlaps an existing blocked slot')

    blocked_slot = BlockedSlot(
        doctor_id=doctor.id,
        day=day,
        start_time=start_time,
        end_time=end_time,
        reason=(reason or '').strip(),
        is_active=True,
    )
    db.add(blocked_slot)
    db.commit()
    db.refresh(blocked_slot)
    return blocked_slot


def remove_blocked_slot(db: Session, principal: Principal, slot_id: int) -> None:
    doctor = get_doctor_for(db, principal)
    blocked_slot = db.query(BlockedSlot).filter(BlockedSlot.id == slot_id).first()
    if blocked_slot is None or not blocked_slot.is_active:
        raise NotFoundError('Blocked slot not found')
    if blocked_slot.doctor_id != doctor.id:
        raise ForbiddenError('Access denied')

    blocked_slot.is_active = False
    db.commit()
