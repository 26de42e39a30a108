from sqlalchemy.orm import Session

from medicare.auth.dependencies import Principal
from medicare.core.errors import NotFoundError
from medicare.models.doctor import Doctor
from medicare.models.user import Patient


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found')
    return doctor


def get_doctor_for(db: Session, principal: Principal) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.user_id == principal.user_id).first()
    if doctor is None:
        raise NotFoundError('Doctor profile not found')
    return doctor


def get_patient_for(db: Session, principal: Principal) -> Patient:
    patient = db.query(Patient).filter(Patient.user_id == principal.user_id).first()
    if patient is None:
        raise NotFoundError('Patient profile not found')
    return patient
