from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from booking.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    if database_url.startswith("postgresql"):
        timeout_ms = config.DB_POOL_TIMEOUT_SECONDS * 1000
        return {"options": f"-c statement_timeout={timeout_ms}"}
    return {}


def build_engine(database_url: str):
    options = {
        "echo": config.DB_ECHO,
        "connect_args": _connect_args(database_url),
    }
    if not database_url.startswith("sqlite"):
        options["pool_pre_ping"] = True
        options["pool_timeout"] = config.DB_POOL_TIMEOUT_SECONDS
    return create_engine(database_url, **options)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_blocked_time_schema_checked = False


def ensure_appointment_schema() -> None:
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

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('reminder_sent', 'ALTER TABLE appointments ADD COLUMN reminder_sent BOOLEAN NOT NULL DEFAULT FALSE'),
            ('reminder_attempts', 'ALTER TABLE appointments ADD COLUMN reminder_attempts INTEGER NOT NULL DEFAULT 0'),
            ('reminded_at', 'ALTER TABLE appointments ADD COLUMN reminded_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_date ON appointments(provider_id, date)')
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_reminder_due '
                    'ON appointments(reminder_sent, date, start_time)'
                )
            )

        _appointment_schema_checked = True


def ensure_blocked_time_schema() -> None:
    global _blocked_time_schema_checked

    if _blocked_time_schema_checked:
        return

    with _schema_lock:
        if _blocked_time_schema_checked:
            return

        inspector = inspect(engine)

        if 'blocked_times' not in inspector.get_table_names():
            _blocked_time_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('blocked_times')}
        migration_steps = [
            ('is_recurring', 'ALTER TABLE blocked_times ADD COLUMN is_recurring BOOLEAN NOT NULL DEFAULT FALSE'),
            ('reason', 'ALTER TABLE blocked_times ADD COLUMN reason VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_blocked_times_provider_date ON blocked_times(provider_id, date)')
            )

        _blocked_time_schema_checked = True
