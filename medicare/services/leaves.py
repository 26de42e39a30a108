"""Leave requests and the cascade run when an admin approves one."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal
from medicare.core import config
from medicare.core.errors import ForbiddenError, NotFoundError, StateConflictError, ValidationError
from medicare.database import LEAVE_CODE_MARKERS, violates
from medicare.models.leave import (
    HALF_DAY_TYPES,
    LEAVE_STATUSES,
    LEAVE_TYPES,
    OPEN_LEAVE_STATUSES,
    Leave,
    LeaveAffectedAppointment,
)
from medicare.services.appointments import cancel_active_appointments, find_active_appointments
from medicare.services.clock import human_date
from medicare.services.mailer import EmailSender, leave_decision_email
from medicare.services.notifications import create_notification
from medicare.services.profiles import get_doctor_for

logger = logging.getLogger(__name__)

LEAVE_CODE_ATTEMPTS = 3


def generate_leave_code(db: Session, now: datetime) -> str:
    """Next ``LV<yyyymmdd>-<nnnn>`` code, numbered after the highest one issued today."""
    prefix = f'LV{now:%Y%m%d}-'
    latest = db.query(func.max(Leave.leave_code)).filter(Leave.leave_code.like(f'{prefix}%')).scalar()
    sequence = int(latest[len(prefix):]) + 1 if latest else 1
    return f'{prefix}{sequence:04d}'


def find_overlapping_leave(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date,
    exclude_leave_id: int | None = None,
) -> Leave | None:
    query = db.query(Leave).filter(
        Leave.doctor_id == doctor_id,
        Leave.status.in_(OPEN_LEAVE_STATUSES),
        Leave.start_date <= end_date,
        Leave.end_date >= start_date,
    )
    if exclude_leave_id is not None:
        query = query.filter(Leave.id != exclude_leave_id)
    return query.first()


def _validate_leave_fields(
    *,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: str | None,
    is_half_day: bool,
    half_day_type: str | None,
    now: datetime,
) -> tuple[str | None, str]:
    if leave_type not in LEAVE_TYPES:
        raise ValidationError('Invalid leave type')
    if start_date < now.date():
        raise ValidationError('Start date cannot be in the past')
    if end_date < start_date:
        raise ValidationError('End date cannot be before start date')
    if is_half_day:
        if half_day_type not in HALF_DAY_TYPES:
            raise ValidationError('Half day leave requires first_half or second_half')
        if end_date != start_date:
            raise ValidationError('Half day leave must start and end on the same date')
    else:
        half_day_type = None

    reason = (reason or '').strip()
    if len(reason) < config.MIN_REASON_LENGTH:
        raise ValidationError(f'Reason must be at least {config.MIN_REASON_LENGTH} characters')
    return half_day_type, reason


def _insert_leave(db: Session, now: datetime, **fields) -> Leave:
    for attempt in range(1, LEAVE_CODE_ATTEMPTS + 1):
        leave = Leave(leave_code=generate_leave_code(db, now), status='pending', **fields)
        db.add(leave)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if attempt == LEAVE_CODE_ATTEMPTS or not violates(exc, LEAVE_CODE_MARKERS):
                raise
            logger.warning('Leave code %s was taken concurrently; retrying', leave.leave_code)
            continue
        db.refresh(leave)
        return leave


def create_leave_request(
    db: Session,
    principal: Principal,
    *,
    leave_type: str,
    start_date: date,
    end_date: date,
    reason: str,
    is_half_day: bool = False,
    half_day_type: str | None = None,
    now: datetime | None = None,
) -> tuple[Leave, int]:
    """Create a pending leave; also report how many active bookings it would hit."""
    now = now or datetime.now()
    doctor = get_doctor_for(db, principal)
    doctor_id = doctor.id

    half_day_type, reason = _validate_leave_fields(
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
        is_half_day=is_half_day,
        half_day_type=half_day_type,
        now=now,
    )
    if find_overlapping_leave(db, doctor_id, start_date, end_date) is not None:
        raise StateConflictError('You already have a leave request for this period')

    leave = _insert_leave(
        db,
        now,
        doctor_id=doctor_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        is_half_day=is_half_day,
        half_day_type=half_day_type,
        reason=reason,
    )

    affected = len(find_active_appointments(db, doctor_id, start_date, end_date))
    return leave, affected


def update_leave_request(
    db: Session,
    principal: Principal,
    leave_id: int,
    *,
    leave_type: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    reason: str | None = None,
    is_half_day: bool | None = None,
    half_day_type: str | None = None,
    now: datetime | None = None,
) -> tuple[Leave, int]:
    """Edit a pending leave owned by the caller. Omitted fields keep their value."""
    now = now or datetime.now()
    leave = get_leave_or_404(db, leave_id)
    doctor = get_doctor_for(db, principal)

    if leave.doctor_id != doctor.id:
        raise ForbiddenError('You can only update your own leave requests')
    if leave.status != 'pending':
        raise StateConflictError('Can only update pending leave requests')

    leave_type = leave_type if leave_type is not None else leave.leave_type
    start_date = start_date if start_date is not None else leave.start_date
    end_date = end_date if end_date is not None else leave.end_date
    reason = reason if reason is not None else leave.reason
    is_half_day = is_half_day if is_half_day is not None else leave.is_half_day
    half_day_type = half_day_type if half_day_type is not None else leave.half_day_type

    half_day_type, reason = _validate_leave_fields(
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        reason=reason,
        is_half_day=is_half_day,
        half_day_type=half_day_type,
        now=now,
    )
    if find_overlapping_leave(db, doctor.id, start_date, end_date, exclude_leave_id=leave.id) is not None:
        raise StateConflictError('You already have a leave request for this period')

    leave.leave_type = leave_type
    leave.start_date = start_date
    leave.end_date = end_date
    leave.reason = reason
    leave.is_half_day = is_half_day
    leave.half_day_type = half_day_type
    db.commit()
    db.refresh(leave)

    logger.info('Leave %s updated by doctor %s', leave.leave_code, doctor.id)
    affected = len(find_active_appointments(db, leave.doctor_id, start_date, end_date))
    return leave, affected


def get_leave_or_404(db: Session, leave_id: int) -> Leave:
    leave = db.query(Leave).filter(Leave.id == leave_id).first()
    if leave is None:
        raise NotFoundError('Leave request not found')
    return leave


def get_leave(db: Session, principal: Principal, leave_id: int) -> Leave:
    leave = get_leave_or_404(db, leave_id)
    if principal.is_admin:
        return leave
    if leave.doctor is None or leave.doctor.user_id != principal.user_id:
        raise ForbiddenError('Access denied')
    return leave


def _check_status_filter(status: str) -> None:
    if status not in LEAVE_STATUSES:
        raise ValidationError(f'Invalid status: {status}')


def list_my_leaves(db: Session, principal: Principal, status: str | None = None) -> list[Leave]:
    doctor = get_doctor_for(db, principal)
    query = db.query(Leave).filter(Leave.doctor_id == doctor.id)
    if status:
        _check_status_filter(status)
        query = query.filter(Leave.status == status)
    return query.order_by(Leave.start_date.desc(), Leave.id.desc()).all()


def list_leaves(db: Session, status: str | None = None) -> list[Leave]:
    query = db.query(Leave)
    if status:
        _check_status_filter(status)
        query = query.filter(Leave.status == status)
    return query.order_by(Leave.start_date.asc(), Leave.id.asc()).all()


def cancel_leave_request(
    db: Session,
    principal: Principal,
    leave_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> Leave:
    """Withdraw a leave. Appointments already cancelled by an approval stay cancelled."""
    now = now or datetime.now()
    leave = get_leave_or_404(db, leave_id)
    doctor = get_doctor_for(db, principal)

    if leave.doctor_id != doctor.id:
        raise ForbiddenError('You can only cancel your own leave requests')
    if leave.status not in OPEN_LEAVE_STATUSES:
        raise StateConflictError('Cannot cancel this leave request')

    leave.status = 'cancelled'
    leave.cancelled_at = now
    leave.cancellation_reason = reason
    db.commit()
    db.refresh(leave)
    return leave


def _ensure_pending(leave: Leave) -> None:
    if leave.status != 'pending':
        raise StateConflictError('Leave request has already been processed')


def _leave_period(leave: Leave) -> str:
    return f'{human_date(leave.start_date)} to {human_date(leave.end_date)}'


def approve_leave(
    db: Session,
    leave_id: int,
    admin: Principal,
    email_sender: EmailSender | None = None,
    now: datetime | None = None,
) -> tuple[Leave, int]:
    """Approve a pending leave and cancel every active booking it covers.

    Half-day leave still clears the whole calendar day. The status change,
    cancellations, ledger entries and notifications commit together.
    """
    now = now or datetime.now()
    leave = get_leave_or_404(db, leave_id)
    _ensure_pending(leave)

    doctor = leave.doctor
    leave.status = 'approved'
    leave.approved_by = admin.user_id
    leave.approved_at = now

    appointments = find_active_appointments(db, leave.doctor_id, leave.start_date, leave.end_date)
    return_date = human_date(leave.end_date + timedelta(days=1))
    leave_label = leave.leave_type.replace('_', ' ')
    doctor_name = doctor.display_name

    notified = cancel_active_appointments(
        db,
        appointments,
        reason=(
            f'Doctor is on {leave_label} leave from {_leave_period(leave)}. '
            f'The doctor will return on {return_date}.'
        ),
        cancelled_by='admin',
        title='Appointment Cancelled - Doctor on Leave',
        message_for=lambda appointment: (
            f'Your appointment scheduled for {human_date(appointment.appointment_date)} at '
            f'{appointment.appointment_time} has been cancelled because {doctor_name} is on leave. '
            f'The doctor will return on {return_date}. Please reschedule your appointment.'
        ),
        now=now,
    )
    for appointment in appointments:
        leave.affected_appointments.append(
            LeaveAffectedAppointment(appointment_id=appointment.id, action='cancelled', action_date=now)
        )
    leave.patients_notified = notified > 0

    create_notification(
        db,
        recipient_id=doctor.user_id,
        notification_type='leave_approved',
        title='Leave Approved',
        message=f'Your leave request from {_leave_period(leave)} has been approved.',
        category='success',
        entity_type='leave',
        entity_id=leave.id,
    )
    db.commit()
    db.refresh(leave)

    logger.info(
        'Leave %s approved by user %s; %d appointment(s) cancelled',
        leave.leave_code,
        admin.user_id,
        len(appointments),
    )

    if email_sender is not None and doctor.user is not None:
        subject, html = leave_decision_email(doctor_name, True, _leave_period(leave))
        email_sender.send(doctor.user.email, subject, html)

    return leave, len(appointments)


def reject_leave(
    db: Session,
    leave_id: int,
    admin: Principal,
    reason: str | None,
    email_sender: EmailSender | None = None,
    now: datetime | None = None,
) -> Leave:
    now = now or datetime.now()
    reason = (reason or '').strip()
    if len(reason) < config.MIN_REASON_LENGTH:
        raise ValidationError(
            f'Rejection reason is required and must be at least {config.MIN_REASON_LENGTH} characters'
        )

    leave = get_leave_or_404(db, leave_id)
    _ensure_pending(leave)

    doctor = leave.doctor
    leave.status = 'rejected'
    leave.rejected_by = admin.user_id
    leave.rejected_at = now
    leave.rejection_reason = reason

    create_notification(
        db,
        recipient_id=doctor.user_id,
        notification_type='leave_rejected',
        title='Leave Rejected',
        message=f'Your leave request has been rejected. Reason: {reason}',
        priority='high',
        category='warning',
        entity_type='leave',
        entity_id=leave.id,
    )
    db.commit()
    db.refresh(leave)

    logger.info('Leave %s rejected by user %s', leave.leave_code, admin.user_id)

    if email_sender is not None and doctor.user is not None:
        subject, html = leave_decision_email(doctor.display_name, False, _leave_period(leave), reason)
        email_sender.send(doctor.user.email, subject, html)

    return leave
