import itertools
import os
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'development')
os.environ.setdefault('JWT_SECRET_KEY', 'test-only-signing-key-0123456789abcdef')

from medicare.auth.dependencies import Principal  # noqa: E402
from medicare.database import Base  # noqa: E402
from medicare.models.appointment import Appointment  # noqa: E402
from medicare.models.blocked_slot import BlockedSlot  # noqa: E402
from medicare.models.doctor import Doctor  # noqa: E402
from medicare.models.leave import Leave, LeaveAffectedAppointment  # noqa: E402,F401
from medicare.models.notification import Notification  # noqa: E402,F401
from medicare.models.user import Patient, User  # noqa: E402

# Monday 2025-06-09, 08:00.
NOW = datetime(2025, 6, 9, 8, 0)


def weekday_template(start_time: str = '09:00', end_time: str = '12:00') -> list[dict]:
    return [
        {
            'day': day,
            'is_available': day not in ('saturday', 'sunday'),
            'slots': [] if day in ('saturday', 'sunday') else [{'start_time': start_time, 'end_time': end_time}],
        }
        for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
    ]


def principal_for(profile) -> Principal:
    role = 'doctor' if isinstance(profile, Doctor) else 'patient'
    return Principal(user_id=profile.user_id, role=role)


class FakeEmailSender:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send(self, to: str | None, subject: str, html: str) -> bool:
        self.sent.append((to, subject))
        return True


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def factory(role: str, first_name: str = 'Test', last_name: str = 'User') -> User:
        user = User(
            email=f'{role}{next(counter)}@medicare.test',
            hashed_password='',
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def admin(make_user) -> Principal:
    user = make_user('admin', 'Ada', 'Admin')
    return Principal(user_id=user.id, role='admin')


@pytest.fixture
def make_doctor(db, make_user):
    def factory(
        availability: list[dict] | None = None,
        consultation_duration: int = 30,
        approval_status: str = 'approved',
        last_name: str = 'House',
    ) -> Doctor:
        user = make_user('doctor', 'Gregory', last_name)
        doctor = Doctor(
            user_id=user.id,
            specialization='General Medicine',
            consultation_fee=50,
            consultation_duration=consultation_duration,
            availability=availability if availability is not None else weekday_template(),
            approval_status=approval_status,
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return factory


@pytest.fixture
def make_patient(db, make_user):
    def factory(first_name: str = 'Pat', last_name: str = 'Smith') -> Patient:
        user = make_user('patient', first_name, last_name)
        patient = Patient(user_id=user.id)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return factory


@pytest.fixture
def make_appointment(db):
    counter = itertools.count(1)

    def factory(
        doctor: Doctor,
        patient: Patient,
        appointment_date: date,
        appointment_time: str,
        status: str = 'scheduled',
    ) -> Appointment:
        appointment = Appointment(
            appointment_code=f'APT-TEST-{next(counter):04d}',
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            duration=doctor.consultation_duration,
            appointment_type='in-person',
            reason_for_visit='Routine check-up',
            symptoms=[],
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return factory


@pytest.fixture
def make_leave(db):
    counter = itertools.count(1)

    def factory(
        doctor: Doctor,
        start_date: date,
        end_date: date,
        status: str = 'pending',
        leave_type: str = 'vacation',
        is_half_day: bool = False,
        half_day_type: str | None = None,
    ) -> Leave:
        leave = Leave(
            leave_code=f'LV-TEST-{next(counter):04d}',
            doctor_id=doctor.id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            is_half_day=is_half_day,
            half_day_type=half_day_type,
            reason='Family holiday abroad',
            status=status,
        )
        db.add(leave)
        db.commit()
        db.refresh(leave)
        return leave

    return factory


@pytest.fixture
def make_blocked_slot(db):
    def factory(doctor: Doctor, day: str, start_time: str, end_time: str) -> BlockedSlot:
        blocked_slot = BlockedSlot(
            doctor_id=doctor.id,
            day=day,
            start_time=start_time,
            end_time=end_time,
            reason='Staff meeting',
            is_active=True,
        )
        db.add(blocked_slot)
        db.commit()
        db.refresh(blocked_slot)
        return blocked_slot

    return factory
