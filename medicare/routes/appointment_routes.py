from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal, get_current_principal, require_roles
from medicare.core.responses import Envelope, ok
from medicare.database import get_db
from medicare.models.appointment import APPOINTMENT_TYPES
from medicare.services import appointments as appointment_service
from medicare.services.availability import get_available_slots
from medicare.services.clock import is_valid_clock
from medicare.services.mailer import EmailSender, get_email_sender

router = APIRouter(tags=['appointments'])

MAX_REASON_LENGTH = 500


def _normalize_clock(value: str) -> str:
    normalized = value.strip()
    if not is_valid_clock(normalized):
        raise ValueError('Time must be in HH:MM format')
    return normalized


class SlotResponse(BaseModel):
    time: str
    available: bool


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: list[SlotResponse]


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    appointment_date: date
    appointment_time: str
    appointment_type: str = 'in-person'
    reason_for_visit: str
    symptoms: list[str] = []

    @field_validator('appointment_time')
    @classmethod
    def validate_appointment_time(cls, value: str) -> str:
        return _normalize_clock(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_TYPES:
            raise ValueError('Invalid appointment type')
        return normalized

    @field_validator('reason_for_visit')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Reason for visit is required')
        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer')
        return normalized


class CancelAppointmentRequest(BaseModel):
    reason: str


class RescheduleAppointmentRequest(BaseModel):
    new_date: date
    new_time: str
    reason: str | None = None

    @field_validator('new_time')
    @classmethod
    def validate_new_time(cls, value: str) -> str:
        return _normalize_clock(value)


class AppointmentResponse(BaseModel):
    id: int
    appointment_code: str
    patient_id: int
    doctor_id: int | None = None
    appointment_date: date
    appointment_time: str
    duration: int
    appointment_type: str
    reason_for_visit: str
    symptoms: list[str] = []
    status: str
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    rescheduled_from_date: date | None = None
    rescheduled_from_time: str | None = None
    rescheduled_reason: str | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    doctor_notes: str | None = None

    class Config:
        from_attributes = True


@router.get('/available-slots/{doctor_id}', response_model=Envelope[AvailableSlotsResponse])
def available_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    slots = get_available_slots(db, doctor_id, slot_date)
    return ok({'doctor_id': doctor_id, 'date': slot_date, 'slots': slots})


@router.post('', response_model=Envelope[AppointmentResponse], status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    principal: Principal = Depends(require_roles('patient')),
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    appointment = appointment_service.book_appointment(
        db,
        principal,
        doctor_id=data.doctor_id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        appointment_type=data.appointment_type,
        reason=data.reason_for_visit,
        symptoms=data.symptoms,
        email_sender=email_sender,
    )
    return ok(AppointmentResponse.model_validate(appointment), 'Appointment booked successfully')


@router.get('/my-appointments', response_model=Envelope[list[AppointmentResponse]])
def my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    principal: Principal = Depends(require_roles('patient', 'doctor')),
    db: Session = Depends(get_db),
):
    appointments = appointment_service.list_my_appointments(db, principal, status_filter)
    return ok([AppointmentResponse.model_validate(appointment) for appointment in appointments])


@router.get('/{appointment_id}', response_model=Envelope[AppointmentResponse])
def get_appointment(
    appointment_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    appointment = appointment_service.get_appointment(db, principal, appointment_id)
    return ok(AppointmentResponse.model_validate(appointment))


@router.patch('/{appointment_id}/cancel', response_model=Envelope[AppointmentResponse])
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    principal: Principal = Depends(require_roles('patient')),
    db: Session = Depends(get_db),
):
    appointment = appointment_service.cancel_appointment(db, principal, appointment_id, data.reason)
    return ok(AppointmentResponse.model_validate(appointment), 'Appointment cancelled successfully')


@router.patch('/{appointment_id}/reschedule', response_model=Envelope[AppointmentResponse])
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    principal: Principal = Depends(require_roles('patient')),
    db: Session = Depends(get_db),
):
    appointment = appointment_service.reschedule_appointment(
        db,
        principal,
        appointment_id,
        new_date=data.new_date,
        new_time=data.new_time,
        reason=data.reason,
    )
    return ok(AppointmentResponse.model_validate(appointment), 'Appointment rescheduled successfully')
