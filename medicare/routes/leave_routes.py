from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal, get_current_principal, require_roles
from medicare.core.responses import Envelope, ok
from medicare.database import get_db
from medicare.models.leave import LEAVE_TYPES
from medicare.services import leaves as leave_service

router = APIRouter(tags=['leaves'])


class CreateLeaveRequest(BaseModel):
    leave_type: str
    start_date: date
    end_date: date
    reason: str
    is_half_day: bool = False
    half_day_type: str | None = None

    @field_validator('leave_type')
    @classmethod
    def validate_leave_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in LEAVE_TYPES:
            raise ValueError('Invalid leave type')
        return normalized

    @field_validator('reason')
    @classmethod
    def strip_reason(cls, value: str) -> str:
        return value.strip()


class UpdateLeaveRequest(BaseModel):
    leave_type: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    reason: str | None = None
    is_half_day: bool | None = None
    half_day_type: str | None = None

    @field_validator('leave_type')
    @classmethod
    def normalize_leave_type(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None


class CancelLeaveRequest(BaseModel):
    reason: str | None = None


class LeaveResponse(BaseModel):
    id: int
    leave_code: str
    doctor_id: int
    leave_type: str
    start_date: date
    end_date: date
    is_half_day: bool
    half_day_type: str | None = None
    total_days: float
    reason: str
    status: str
    approved_by: int | None = None
    approved_at: datetime | None = None
    rejected_by: int | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    patients_notified: bool

    class Config:
        from_attributes = True


class LeaveWithImpactResponse(BaseModel):
    leave: LeaveResponse
    affected_appointments: int


@router.post('', response_model=Envelope[LeaveWithImpactResponse], status_code=status.HTTP_201_CREATED)
def create_leave(
    data: CreateLeaveRequest,
    principal: Principal = Depends(require_roles('doctor')),
    db: Session = Depends(get_db),
):
    leave, affected = leave_service.create_leave_request(
        db,
        principal,
        leave_type=data.leave_type,
        start_date=data.start_date,
        end_date=data.end_date,
        reason=data.reason,
        is_half_day=data.is_half_day,
        half_day_type=data.half_day_type,
    )
    message = 'Leave request submitted successfully'
    if affected:
        message = f'{message}. {affected} appointment(s) fall within this period'
    return ok({'leave': LeaveResponse.model_validate(leave), 'affected_appointments': affected}, message)


@router.get('/my-leaves', response_model=Envelope[list[LeaveResponse]])
def my_leaves(
    status_filter: str | None = Query(default=None, alias='status'),
    principal: Principal = Depends(require_roles('doctor')),
    db: Session = Depends(get_db),
):
    leaves = leave_service.list_my_leaves(db, principal, status_filter)
    return ok([LeaveResponse.model_validate(leave) for leave in leaves])


@router.get('/{leave_id}', response_model=Envelope[LeaveResponse])
def get_leave(
    leave_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return ok(LeaveResponse.model_validate(leave_service.get_leave(db, principal, leave_id)))


@router.put('/{leave_id}', response_model=Envelope[LeaveWithImpactResponse])
def update_leave(
    leave_id: int,
    data: UpdateLeaveRequest,
    principal: Principal = Depends(require_roles('doctor')),
    db: Session = Depends(get_db),
):
    leave, affected = leave_service.update_leave_request(
        db,
        principal,
        leave_id,
        **data.model_dump(exclude_none=True),
    )
    return ok(
        {'leave': LeaveResponse.model_validate(leave), 'affected_appointments': affected},
        'Leave request updated successfully',
    )


@router.delete('/{leave_id}', response_model=Envelope[LeaveResponse])
def cancel_leave(
    leave_id: int,
    data: CancelLeaveRequest | None = None,
    principal: Principal = Depends(require_roles('doctor')),
    db: Session = Depends(get_db),
):
    reason = data.reason if data is not None else None
    leave = leave_service.cancel_leave_request(db, principal, leave_id, reason)
    return ok(LeaveResponse.model_validate(leave), 'Leave request cancelled successfully')
