import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}.") from exc


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")
DB_POOL_TIMEOUT_SECONDS = _get_int("DB_POOL_TIMEOUT_SECONDS", 10)
DB_ECHO = _get_bool(os.getenv("DB_ECHO"), default=False)

# Dates and times are stored naive and read in this zone.
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Sao_Paulo")

DEFAULT_SLOT_STEP_MINUTES = _get_int("DEFAULT_SLOT_STEP_MINUTES", 30)

REMINDER_LEAD_MINUTES = _get_int("REMINDER_LEAD_MINUTES", 120)
REMINDER_TOLERANCE_MINUTES = _get_int("REMINDER_TOLERANCE_MINUTES", 5)
REMINDER_TICK_SECONDS = _get_int("REMINDER_TICK_SECONDS", 60)
REMINDER_BATCH_LIMIT = _get_int("REMINDER_BATCH_LIMIT", 200)
REMINDER_MAX_ATTEMPTS = _get_int("REMINDER_MAX_ATTEMPTS", 3)

MESSAGING_BACKEND = os.getenv("MESSAGING_BACKEND", "log").strip().lower()
MESSAGING_TIMEOUT_SECONDS = float(os.getenv("MESSAGING_TIMEOUT_SECONDS", "10"))
WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")
WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")

DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "55")

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def validate_runtime_config() -> None:
    if MESSAGING_BACKEND not in {"whatsapp", "log"}:
        raise RuntimeError("MESSAGING_BACKEND must be 'whatsapp' or 'log'.")

    # Whole-minute windows only chain without gaps when tolerance exceeds the tick.
    if REMINDER_TOLERANCE_MINUTES * 60 <= REMINDER_TICK_SECONDS:
        raise RuntimeError("REMINDER_TOLERANCE_MINUTES must be longer than one REMINDER_TICK_SECONDS interval.")

    if REMINDER_MAX_ATTEMPTS < 1:
        raise RuntimeError("REMINDER_MAX_ATTEMPTS must be >= 1.")

    # Each retry needs its own tick while the appointment is still in the window.
    if REMINDER_TOLERANCE_MINUTES * 60 < REMINDER_MAX_ATTEMPTS * REMINDER_TICK_SECONDS:
        raise RuntimeError(
            "REMINDER_TOLERANCE_MINUTES must cover REMINDER_MAX_ATTEMPTS ticks of REMINDER_TICK_SECONDS."
        )

    if REMINDER_LEAD_MINUTES < 0:
        raise RuntimeError("REMINDER_LEAD_MINUTES must be >= 0.")

    if DEFAULT_SLOT_STEP_MINUTES < 1:
        raise RuntimeError("DEFAULT_SLOT_STEP_MINUTES must be >= 1.")

    if APP_ENV.lower() == "production":
        if DATABASE_URL.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must point to PostgreSQL in production.")
        if MESSAGING_BACKEND == "whatsapp" and not (WHATSAPP_PHONE_NUMBER_ID and WHATSAPP_ACCESS_TOKEN):
            raise RuntimeError("WHATSAPP_PHONE_NUMBER_ID and WHATSAPP_ACCESS_TOKEN must be set in production.")
