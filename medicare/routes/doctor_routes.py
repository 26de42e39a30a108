from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal, require_roles
from medicare.core.responses import Envelope, ok
from medicare.database import get_db
from medicare.routes.appointment_routes import AppointmentResponse
from medicare.services import doctors as doctor_service
from medicare.services.appointments import update_appointment_status

router = APIRouter(tags=['doctor'])

doctor_only = require_roles('doctor')


class TimeWindow(BaseModel):
    start_time: str
    end_time: str


class DayAvailability(BaseModel):
    day: str
    is_available: bool = True
    slots: list[TimeWindow] = []

    @field_validator('day')
    @classmethod
    def normalize_day(cls, value: str) -> str:
        return value.strip().lower()


class ScheduleUpdateRequest(BaseModel):
    availability: list[DayAvailability] | None = None
    consultation_duration: int | None = None
    consultation_fee: float | None = None


class ScheduleResponse(BaseModel):
    doctor_id: int
    availability: list[DayAvailability]
    consultation_duration: int
    consultation_fee: float


class CreateBlockedSlotRequest(BaseModel):
    day: str
    start_time: str
    end_time: str
    reason: str | None = None


class BlockedSlotResponse(BaseModel):
    id: int
    day: str
    start_time: str
    end_time: str
    reason: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentStatusRequest(BaseModel):
    status: str
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()


def _schedule_payload(doctor) -> dict:
    return {
        'doctor_id': doctor.id,
        'availability': doctor.availability or [],
        'consultation_duration': doctor.consultation_duration,
        'consultation_fee': doctor.consultation_fee,
    }


@router.get('/schedule', response_model=Envelope[ScheduleResponse])
def get_schedule(
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    return ok(_schedule_payload(doctor_service.get_schedule(db, principal)))


@router.put('/schedule', response_model=Envelope[ScheduleResponse])
def update_schedule(
    data: ScheduleUpdateRequest,
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    availability = None
    if data.availability is not None:
        availability = [entry.model_dump() for entry in data.availability]

    doctor = doctor_service.update_schedule(
        db,
        principal,
        availability=availability,
        consultation_duration=data.consultation_duration,
        consultation_fee=data.consultation_fee,
    )
    return ok(_schedule_payload(doctor), 'Schedule updated successfully')


@router.get('/blocked-slots', response_model=Envelope[list[BlockedSlotResponse]])
def list_blocked_slots(
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    slots = doctor_service.list_blocked_slots(db, principal)
    return ok([BlockedSlotResponse.model_validate(slot) for slot in slots])


@router.post('/block-slot', response_model=Envelope[BlockedSlotResponse], status_code=status.HTTP_201_CREATED)
def block_slot(
    data: CreateBlockedSlotRequest,
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    blocked_slot = doctor_service.create_blocked_slot(
        db,
        principal,
        day=data.day,
        start_time=data.start_time,
        end_time=data.end_time,
        reason=data.reason,
    )
    return ok(BlockedSlotResponse.model_validate(blocked_slot), 'Time slot blocked successfully')


@router.delete('/blocked-slots/{slot_id}', response_model=Envelope[dict])
def remove_blocked_slot(
    slot_id: int,
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    doctor_service.remove_blocked_slot(db, principal, slot_id)
    return ok(message='Blocked slot removed successfully')


@router.patch('/appointments/{appointment_id}/status', response_model=Envelope[AppointmentResponse])
def change_appointment_status(
    appointment_id: int,
    data: AppointmentStatusRequest,
    principal: Principal = Depends(doctor_only),
    db: Session = Depends(get_db),
):
    appointment = update_appointment_status(db, principal, appointment_id, data.status, data.notes)
    return ok(AppointmentResponse.model_validate(appointment), 'Appointment status updated successfully')
