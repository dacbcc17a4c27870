"""Reminder selection and dispatch.

One tick selects the appointments whose start falls inside
``[now + lead, now + lead + tolerance)`` and dispatches each of them: render,
send, record the attempt, then claim the appointment with a conditional
update. The claim is what makes concurrent ticks (from other processes or
trigger sources) safe: only the dispatcher whose update affects a row owns the
reminder.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from booking.messaging import WHATSAPP_CHANNEL, DeliveryStatus, Messenger
from booking.models.appointment import REMINDABLE_STATUSES, Appointment
from booking.models.business import Business, Service
from booking.repository import BookingRepository, appointment_starts_at
from booking.scheduling.calendar import floor_to_minute, utc_now
from booking.scheduling.phone import DEFAULT_COUNTRY_CODE, normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_NAME = 'Barbearia'
DEFAULT_SERVICE_NAME = 'serviço'


class DispatchOutcome(str, Enum):
    SENT = 'sent'
    RACE_LOST = 'race_lost'
    DELIVERY_FAILED = 'delivery_failed'


@dataclass(frozen=True)
class DispatchResult:
    appointment_id: int
    outcome: DispatchOutcome
    delivery_status: DeliveryStatus
    record_id: int | None = None

    @property
    def claimed(self) -> bool:
        return self.outcome is DispatchOutcome.SENT


@dataclass
class TickSummary:
    started_at: datetime
    selected: int = 0
    sent: int = 0
    race_lost: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, result: DispatchResult) -> None:
        if result.outcome is DispatchOutcome.SENT:
            self.sent += 1
        elif result.outcome is DispatchOutcome.RACE_LOST:
            self.race_lost += 1
        else:
            self.failed += 1


def reminder_window(now: datetime, lead_time_minutes: int, tolerance_minutes: int) -> tuple[datetime, datetime]:
    """``[now + lead, now + lead + tolerance)`` with ``now`` floored to the minute.

    Ticks a minute apart then produce windows on whole-minute boundaries, so a
    tolerance longer than the tick leaves no gap between consecutive windows.
    """
    window_start = floor_to_minute(now) + timedelta(minutes=lead_time_minutes)
    return window_start, window_start + timedelta(minutes=tolerance_minutes)


def is_due(
    appointment: Appointment,
    now: datetime,
    lead_time_minutes: int,
    tolerance_minutes: int,
    max_attempts: int | None = None,
) -> bool:
    if appointment.status not in REMINDABLE_STATUSES or appointment.reminder_sent:
        return False
    if max_attempts is not None and (appointment.reminder_attempts or 0) >= max_attempts:
        return False

    window_start, window_end = reminder_window(now, lead_time_minutes, tolerance_minutes)
    return window_start <= appointment_starts_at(appointment) < window_end


def select_due(
    repository: BookingRepository,
    now: datetime,
    lead_time_minutes: int,
    tolerance_minutes: int,
    max_attempts: int = 3,
    limit: int | None = None,
) -> list[Appointment]:
    """Appointments due for a reminder at ``now``, soonest first."""
    if tolerance_minutes <= 0:
        raise ValueError('Tolerance must be a positive number of minutes.')

    window_start, window_end = reminder_window(now, lead_time_minutes, tolerance_minutes)
    return repository.select_due_appointments(window_start, window_end, max_attempts=max_attempts, limit=limit)


def format_date_br(day: date) -> str:
    return day.strftime('%d/%m/%Y')


def render_reminder_message(
    appointment: Appointment,
    business: Business | None = None,
    service: Service | None = None,
) -> str:
    business_name = business.name if business is not None else DEFAULT_BUSINESS_NAME
    service_name = service.name if service is not None else DEFAULT_SERVICE_NAME

    lines = [
        f'Olá {appointment.client_name}! 👋',
        '',
        f'Lembrando do seu agendamento na *{business_name}*:',
        '',
        f'🗓️ {format_date_br(appointment.date)}',
        f'⏰ às {appointment.start_time.strftime("%H:%M")}',
        f'💈 Serviço: {service_name}',
    ]
    if business is not None and business.address:
        lines.append(f'📍 Endereço: {business.address}')
    lines.extend([
        '',
        'Pode confirmar sua presença? Responda com *SIM* para confirmar.',
    ])
    return '\n'.join(lines)


class ReminderDispatcher:
    def __init__(
        self,
        repository: BookingRepository,
        messenger: Messenger,
        channel: str = WHATSAPP_CHANNEL,
        country_code: str = DEFAULT_COUNTRY_CODE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.messenger = messenger
        self.channel = channel
        self.country_code = country_code
        self.clock = clock

    def _deliver(self, destination: str | None, message: str) -> tuple[DeliveryStatus, str | None]:
        if destination is None:
            return DeliveryStatus.FAILED, 'Invalid phone number.'

        try:
            status = self.messenger.send(self.channel, destination, message)
        except Exception as e:
            logger.warning("Messenger raised for %s (%s: %s)", destination, type(e).__name__, e)
            return DeliveryStatus.FAILED, f'{type(e).__name__}: {e}'

        if status is DeliveryStatus.FAILED:
            return status, 'Delivery failed.'
        return status, None

    def dispatch(self, appointment: Appointment) -> DispatchResult:
        appointment_id = appointment.id
        business = self.repository.get_business_for_provider(appointment.provider_id)
        service = self.repository.get_service(appointment.service_id) if appointment.service_id else None
        message = render_reminder_message(appointment, business, service)

        try:
            destination = normalize_phone(appointment.client_phone, self.country_code)
        except ValueError:
            destination = None

        status, error = self._deliver(destination, message)

        record = self.repository.append_reminder_record(
            appointment_id=appointment_id,
            channel=self.channel,
            recipient=destination or appointment.client_phone or '',
            message=message,
            status=status.value,
            error=error,
            sent_at=self.clock(),
        )

        if status is DeliveryStatus.FAILED:
            self.repository.record_delivery_failure(appointment_id)
            logger.warning("Reminder for appointment %s not delivered: %s", appointment_id, error)
            return DispatchResult(appointment_id, DispatchOutcome.DELIVERY_FAILED, status, record.id)

        affected_rows = self.repository.mark_reminder_sent(appointment_id, self.clock())
        if affected_rows == 0:
            logger.debug("Reminder for appointment %s already claimed by another dispatcher", appointment_id)
            return DispatchResult(appointment_id, DispatchOutcome.RACE_LOST, status, record.id)

        logger.info("Reminder sent for appointment %s (%s)", appointment_id, destination)
        return DispatchResult(appointment_id, DispatchOutcome.SENT, status, record.id)


def run_reminder_batch(
    session_factory: Callable[[], Session],
    messenger: Messenger,
    now: datetime,
    lead_time_minutes: int,
    tolerance_minutes: int,
    max_attempts: int = 3,
    limit: int | None = None,
    country_code: str = DEFAULT_COUNTRY_CODE,
    clock: Callable[[], datetime] = utc_now,
) -> TickSummary:
    """Select and dispatch every due reminder.

    Selection failures propagate. A failure while dispatching one appointment
    is logged and counted; the rest of the batch still runs.
    """
    summary = TickSummary(started_at=now)
    db = session_factory()
    try:
        repository = BookingRepository(db)
        due = select_due(repository, now, lead_time_minutes, tolerance_minutes, max_attempts, limit)
        summary.selected = len(due)
        if due:
            logger.info("Found %d appointments needing reminders", len(due))

        # Plain ids so a rollback cannot leave us reading expired rows.
        due_ids = [appointment.id for appointment in due]
        dispatcher = ReminderDispatcher(repository, messenger, country_code=country_code, clock=clock)

        for appointment_id in due_ids:
            try:
                appointment = repository.get_appointment(appointment_id)
                if appointment is None or appointment.reminder_sent:
                    continue
                summary.add(dispatcher.dispatch(appointment))
            except Exception as e:
                db.rollback()
                logger.exception("Error processing reminder for appointment %s", appointment_id)
                summary.errors.append(f'{appointment_id}: {type(e).__name__}: {e}')
    finally:
        db.close()

    logger.info(
        "Reminder tick done. selected=%d sent=%d race_lost=%d failed=%d errors=%d",
        summary.selected,
        summary.sent,
        summary.race_lost,
        summary.failed,
        len(summary.errors),
    )
    return summary
