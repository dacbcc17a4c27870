import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from booking.core import config
from booking.database import Base, engine, ensure_appointment_schema, ensure_blocked_time_schema
from booking.models import appointment, blocked_time, business, reminder_record, working_hours  # noqa: F401
from booking.routes import availability_routes, reminder_routes

logger = logging.getLogger(__name__)

app = FastAPI(title='Booking Availability & Reminders')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


def initialize_database() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_appointment_schema()
    ensure_blocked_time_schema()


@app.on_event('startup')
def on_startup() -> None:
    config.validate_runtime_config()
    try:
        initialize_database()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Booking API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(reminder_routes.router, prefix='/reminders')
