import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from medicare.core import config
from medicare.core.errors import register_error_handlers
from medicare.database import Base, engine, ensure_appointment_schema
from medicare.models import appointment, blocked_slot, doctor, leave, notification, user  # noqa: F401
from medicare.routes import (
    admin_routes,
    appointment_routes,
    auth_routes,
    doctor_routes,
    leave_routes,
    notification_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title='MediCare Plus API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_error_handlers(app)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'MediCare Plus API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(leave_routes.router, prefix='/leaves')
app.include_router(doctor_routes.router, prefix='/doctor')
app.include_router(admin_routes.router, prefix='/admin')
app.include_router(notification_routes.router, prefix='/notifications')
