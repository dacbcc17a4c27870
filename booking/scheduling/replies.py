import logging
from datetime import date
from enum import Enum

from booking.repository import BookingRepository
from booking.scheduling.phone import DEFAULT_COUNTRY_CODE

logger = logging.getLogger(__name__)

CONFIRMATION_KEYWORDS = ('sim', 'confirmar', 'confirmo', 'ok')


class ReplyOutcome(str, Enum):
    CONFIRMED = 'confirmed'
    ALREADY_CONFIRMED = 'already_confirmed'
    NOT_FOUND = 'not_found'
    IGNORED = 'ignored'


def is_confirmation(text: str) -> bool:
    words = (text or '').strip().lower().replace('!', ' ').replace('.', ' ').replace(',', ' ').split()
    return any(word in CONFIRMATION_KEYWORDS for word in words)


def confirm_by_reply(
    repository: BookingRepository,
    phone: str,
    text: str,
    today: date,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> tuple[ReplyOutcome, int | None]:
    """Confirm the client's next pending appointment when they answer the reminder."""
    if not is_confirmation(text):
        return ReplyOutcome.IGNORED, None

    upcoming = repository.find_upcoming_for_phone(phone, today, country_code)
    if not upcoming:
        logger.info("Confirmation reply from %s matched no upcoming appointment", phone)
        return ReplyOutcome.NOT_FOUND, None

    pending = [appointment for appointment in upcoming if appointment.status == 'pending']
    if not pending:
        return ReplyOutcome.ALREADY_CONFIRMED, upcoming[0].id

    appointment_id = pending[0].id
    if repository.confirm_pending_appointment(appointment_id) == 0:
        # Confirmed concurrently by another reply.
        return ReplyOutcome.ALREADY_CONFIRMED, appointment_id

    logger.info("Appointment %s confirmed by client reply", appointment_id)
    return ReplyOutcome.CONFIRMED, appointment_id
