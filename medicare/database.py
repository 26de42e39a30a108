from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from medicare.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_SLOT_INDEX = 'uq_appointments_active_slot'

# PostgreSQL reports the constraint name, SQLite the constrained columns.
ACTIVE_SLOT_MARKERS = (
    ACTIVE_SLOT_INDEX,
    'appointments.doctor_id, appointments.appointment_date, appointments.appointment_time',
)
LEAVE_CODE_MARKERS = ('leaves_leave_code_key', 'leaves.leave_code')

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    """Add the active-slot unique index to databases created before it existed."""
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_indexes = {index['name'] for index in inspector.get_indexes('appointments')}
        if ACTIVE_SLOT_INDEX not in existing_indexes:
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_SLOT_INDEX} '
                        'ON appointments(doctor_id, appointment_date, appointment_time) '
                        "WHERE status IN ('scheduled', 'confirmed')"
                    )
                )

        _appointment_schema_checked = True


def violates(exc: IntegrityError, markers: tuple[str, ...]) -> bool:
    detail = str(exc.orig)
    return any(marker in detail for marker in markers)
