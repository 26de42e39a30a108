from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal, require_roles
from medicare.core.responses import Envelope, ok
from medicare.database import get_db
from medicare.routes.leave_routes import LeaveResponse
from medicare.services import doctors as doctor_service
from medicare.services import leaves as leave_service
from medicare.services.mailer import EmailSender, get_email_sender

router = APIRouter(tags=['admin'])

admin_only = require_roles('admin')


class BlockDoctorRequest(BaseModel):
    reason: str


class ApprovalRequest(BaseModel):
    status: str
    rejection_reason: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in ('approved', 'rejected'):
            raise ValueError('Status must be approved or rejected')
        return normalized


class SuspendDoctorRequest(BaseModel):
    suspended: bool
    suspension_reason: str | None = None


class BlockDoctorResponse(BaseModel):
    blocked_doctor: str
    cancelled_appointments: int
    notified_patients: int
    block_reason: str


class DeleteDoctorResponse(BaseModel):
    deleted_doctor: str
    cancelled_appointments: int
    notified_patients: int


class DoctorApprovalResponse(BaseModel):
    id: int
    approval_status: str
    approved_by: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    class Config:
        from_attributes = True


class LeaveDecisionResponse(BaseModel):
    leave: LeaveResponse
    cancelled_appointments: int = 0


@router.post('/doctors/{doctor_id}/block', response_model=Envelope[BlockDoctorResponse])
def block_doctor(
    doctor_id: int,
    data: BlockDoctorRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    result = doctor_service.block_doctor(db, doctor_id, principal, data.reason, email_sender)
    return ok(
        result,
        f'Doctor blocked successfully. {result["cancelled_appointments"]} appointment(s) cancelled '
        'and patients notified.',
    )


@router.post('/doctors/{doctor_id}/unblock', response_model=Envelope[dict])
def unblock_doctor(
    doctor_id: int,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    result = doctor_service.unblock_doctor(db, doctor_id, principal, email_sender)
    return ok(result, 'Doctor unblocked successfully')


@router.delete('/doctors/{doctor_id}', response_model=Envelope[DeleteDoctorResponse])
def delete_doctor(
    doctor_id: int,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    result = doctor_service.delete_doctor(db, doctor_id, principal)
    return ok(result, 'Doctor deleted successfully')


@router.patch('/doctors/{doctor_id}/approval', response_model=Envelope[DoctorApprovalResponse])
def update_doctor_approval(
    doctor_id: int,
    data: ApprovalRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    doctor = doctor_service.update_doctor_approval(db, doctor_id, principal, data.status, data.rejection_reason)
    return ok(DoctorApprovalResponse.model_validate(doctor), f'Doctor {data.status} successfully')


@router.patch('/doctors/{doctor_id}/suspend', response_model=Envelope[DoctorApprovalResponse])
def suspend_doctor(
    doctor_id: int,
    data: SuspendDoctorRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    doctor = doctor_service.set_doctor_suspension(db, doctor_id, principal, data.suspended, data.suspension_reason)
    action = 'suspended' if data.suspended else 'activated'
    return ok(DoctorApprovalResponse.model_validate(doctor), f'Doctor {action} successfully')


@router.get('/leaves', response_model=Envelope[list[LeaveResponse]])
def list_leaves(
    status_filter: str | None = Query(default=None, alias='status'),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    leaves = leave_service.list_leaves(db, status_filter)
    return ok([LeaveResponse.model_validate(leave) for leave in leaves])


@router.patch('/leaves/{leave_id}/approval', response_model=Envelope[LeaveDecisionResponse])
def decide_leave(
    leave_id: int,
    data: ApprovalRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    if data.status == 'approved':
        leave, cancelled = leave_service.approve_leave(db, leave_id, principal, email_sender)
        message = f'Leave approved. {cancelled} appointment(s) cancelled and patients notified.'
    else:
        leave = leave_service.reject_leave(db, leave_id, principal, data.rejection_reason, email_sender)
        cancelled = 0
        message = 'Leave rejected'
    return ok({'leave': LeaveResponse.model_validate(leave), 'cancelled_appointments': cancelled}, message)
