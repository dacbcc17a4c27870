"""SQLAlchemy-backed booking repository.

Sole writer of appointments, working hours, blackout windows and reminder
records. The availability engine and reminder selector only read through it;
the two write paths with concurrency requirements are ``insert_appointment``
(recheck + insert in one transaction) and ``mark_reminder_sent`` (conditional
update whose row count decides who owns the reminder).
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from booking.models.appointment import CLOSING_STATUSES, REMINDABLE_STATUSES, Appointment
from booking.models.blocked_time import BlockedTime
from booking.models.business import Business, Provider, Service
from booking.models.reminder_record import ReminderRecord
from booking.models.working_hours import WorkingHours
from booking.scheduling.calendar import (
    MINUTES_PER_DAY,
    BlackoutWindow,
    BookedInterval,
    Interval,
    WeeklySchedule,
    from_minutes,
    to_minutes,
    utc_now,
)
from booking.scheduling.conflicts import applicable_blackouts, blocking_appointments, find_conflict
from booking.scheduling.errors import (
    BookingValidationError,
    InvalidStatusTransition,
    NotFoundError,
    SlotNoLongerAvailable,
)
from booking.scheduling.phone import phones_match

logger = logging.getLogger(__name__)


def interval_from_times(start: time, end: time) -> Interval:
    end_minutes = to_minutes(end)
    # 00:00 as an end time means midnight at the end of the day.
    if end_minutes == 0:
        end_minutes = MINUTES_PER_DAY
    return Interval(to_minutes(start), end_minutes)


def time_from_end_minutes(minutes: int) -> time:
    return from_minutes(minutes % MINUTES_PER_DAY)


def to_booked_interval(appointment: Appointment) -> BookedInterval:
    return BookedInterval(
        provider_id=appointment.provider_id,
        date=appointment.date,
        interval=interval_from_times(appointment.start_time, appointment.end_time),
        status=appointment.status,
        appointment_id=appointment.id,
    )


def to_blackout_window(blocked_time: BlockedTime) -> BlackoutWindow:
    return BlackoutWindow(
        interval=interval_from_times(blocked_time.start_time, blocked_time.end_time),
        recurring=bool(blocked_time.is_recurring),
        date=blocked_time.date,
        reason=blocked_time.reason,
    )


def appointment_starts_at(appointment: Appointment) -> datetime:
    return datetime.combine(appointment.date, appointment.start_time)


class BookingRepository:
    def __init__(self, db: Session):
        self.db = db

    # -- reads -------------------------------------------------------------

    def get_provider(self, provider_id: int) -> Provider | None:
        return self.db.query(Provider).filter(Provider.id == provider_id).first()

    def get_service(self, service_id: int) -> Service | None:
        return self.db.query(Service).filter(Service.id == service_id).first()

    def get_business_for_provider(self, provider_id: int) -> Business | None:
        return (
            self.db.query(Business)
            .join(Provider, Provider.business_id == Business.id)
            .filter(Provider.id == provider_id)
            .first()
        )

    def get_weekly_schedule(self, provider_id: int) -> WeeklySchedule:
        rows = self.db.query(WorkingHours).filter(
            WorkingHours.provider_id == provider_id,
            WorkingHours.is_active.is_(True),
        ).all()

        open_hours: dict[int, Interval] = {}
        for row in rows:
            try:
                open_hours[row.day_of_week] = interval_from_times(row.start_time, row.end_time)
            except ValueError:
                logger.warning(
                    "Ignoring invalid working hours id=%s for provider %s (%s-%s)",
                    row.id,
                    provider_id,
                    row.start_time,
                    row.end_time,
                )

        return WeeklySchedule(open_hours=open_hours)

    def list_working_hours(self, provider_id: int) -> list[WorkingHours]:
        return self.db.query(WorkingHours).filter(
            WorkingHours.provider_id == provider_id,
        ).order_by(WorkingHours.day_of_week.asc()).all()

    def get_blackouts(self, provider_id: int, day: date) -> list[BlackoutWindow]:
        rows = self.db.query(BlockedTime).filter(
            BlockedTime.provider_id == provider_id,
            or_(BlockedTime.is_recurring.is_(True), BlockedTime.date == day),
        ).order_by(BlockedTime.start_time.asc()).all()
        return [to_blackout_window(row) for row in rows]

    def list_blackouts(self, provider_id: int) -> list[BlockedTime]:
        return self.db.query(BlockedTime).filter(
            BlockedTime.provider_id == provider_id,
        ).order_by(BlockedTime.date.asc(), BlockedTime.start_time.asc()).all()

    def get_appointments(self, provider_id: int, day: date) -> list[BookedInterval]:
        rows = self.db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
        ).order_by(Appointment.start_time.asc()).all()
        return [to_booked_interval(row) for row in rows]

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def list_reminder_records(self, appointment_id: int | None = None, limit: int = 100) -> list[ReminderRecord]:
        query = self.db.query(ReminderRecord)
        if appointment_id is not None:
            query = query.filter(ReminderRecord.appointment_id == appointment_id)
        return query.order_by(ReminderRecord.sent_at.desc(), ReminderRecord.id.desc()).limit(limit).all()

    def select_due_appointments(
        self,
        window_start: datetime,
        window_end: datetime,
        max_attempts: int,
        limit: int | None = None,
    ) -> list[Appointment]:
        """Unreminded, active appointments starting in ``[window_start, window_end)``."""
        last_day = (window_end - timedelta(microseconds=1)).date()
        days = []
        day = window_start.date()
        while day <= last_day:
            days.append(day)
            day += timedelta(days=1)

        rows = self.db.query(Appointment).filter(
            Appointment.date.in_(days),
            Appointment.status.in_(REMINDABLE_STATUSES),
            Appointment.reminder_sent.is_(False),
            Appointment.reminder_attempts < max_attempts,
        ).all()

        due = [row for row in rows if window_start <= appointment_starts_at(row) < window_end]
        due.sort(key=lambda row: (appointment_starts_at(row), row.id))
        if limit is not None:
            due = due[:limit]
        return due

    def find_upcoming_for_phone(self, phone: str, today: date, country_code: str) -> list[Appointment]:
        rows = self.db.query(Appointment).filter(
            Appointment.date >= today,
            Appointment.status.in_(REMINDABLE_STATUSES),
        ).order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc()).all()
        return [row for row in rows if phones_match(row.client_phone, phone, country_code)]

    # -- writes ------------------------------------------------------------

    def insert_appointment(
        self,
        *,
        provider_id: int,
        day: date,
        start_minutes: int,
        duration_minutes: int,
        client_name: str,
        client_phone: str,
        service_id: int | None = None,
        price=None,
        notes: str | None = None,
        status: str = 'pending',
    ) -> Appointment:
        """Insert an appointment after rechecking the slot inside the transaction.

        The provider row is locked first so concurrent bookings for the same
        provider serialize on it. SQLite ignores ``FOR UPDATE`` and the pysqlite
        driver runs the recheck reads outside a write transaction, so two
        concurrent bookings against a SQLite database can both pass the
        recheck. Only PostgreSQL is accepted in production for that reason.
        """
        if duration_minutes <= 0:
            raise BookingValidationError('Service duration must be positive.')

        try:
            provider = self.db.query(Provider).filter(Provider.id == provider_id).with_for_update().first()
            if provider is None or not provider.is_active:
                raise NotFoundError('Provider not found.')

            try:
                occupied = Interval(start_minutes, start_minutes + duration_minutes)
            except ValueError as exc:
                raise BookingValidationError('Appointment must start and end on the same day.') from exc

            open_hours = self.get_weekly_schedule(provider_id).hours_for(day)
            if open_hours is None:
                raise BookingValidationError('The provider does not work on this day.')
            if not open_hours.contains(occupied):
                raise BookingValidationError('Appointment is outside working hours.')

            conflict = find_conflict(
                occupied,
                applicable_blackouts(day, self.get_blackouts(provider_id, day)),
                blocking_appointments(provider_id, day, self.get_appointments(provider_id, day)),
            )
            if conflict is not None:
                raise SlotNoLongerAvailable(conflict=conflict)

            appointment = Appointment(
                provider_id=provider_id,
                service_id=service_id,
                client_name=client_name,
                client_phone=client_phone,
                date=day,
                start_time=from_minutes(occupied.start),
                end_time=time_from_end_minutes(occupied.end),
                status=status,
                price=price,
                notes=notes,
                reminder_sent=False,
                reminder_attempts=0,
            )
            self.db.add(appointment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            "Booked appointment %s for provider %s on %s at %s",
            appointment.id,
            provider_id,
            day,
            appointment.start_time,
        )
        return appointment

    def mark_reminder_sent(self, appointment_id: int, reminded_at: datetime | None = None) -> int:
        """Claim the reminder for ``appointment_id``. Returns the affected row count (1 or 0)."""
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.reminder_sent.is_(False))
            .values(reminder_sent=True, reminded_at=reminded_at or utc_now())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def record_delivery_failure(self, appointment_id: int) -> int:
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.reminder_sent.is_(False))
            .values(reminder_attempts=Appointment.reminder_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def append_reminder_record(
        self,
        *,
        appointment_id: int,
        channel: str,
        recipient: str,
        message: str,
        status: str,
        error: str | None = None,
        sent_at: datetime | None = None,
    ) -> ReminderRecord:
        record = ReminderRecord(
            appointment_id=appointment_id,
            channel=channel,
            recipient=recipient,
            message=message,
            status=status,
            error=error,
            sent_at=sent_at or utc_now(),
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def confirm_pending_appointment(self, appointment_id: int) -> int:
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == 'pending')
            .values(status='confirmed')
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def update_status(self, appointment_id: int, status: str) -> Appointment:
        """Close an active (pending or confirmed) appointment.

        Canceled and no-show appointments free their slot. No closing status is
        reminded.
        """
        if status not in CLOSING_STATUSES:
            raise BookingValidationError(f'Status must be one of: {", ".join(CLOSING_STATUSES)}.')

        appointment = self.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')

        try:
            result = self.db.execute(
                update(Appointment)
                .where(Appointment.id == appointment_id, Appointment.status.in_(REMINDABLE_STATUSES))
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        if result.rowcount == 0:
            raise InvalidStatusTransition(f'Appointment is already {appointment.status}.')

        logger.info("Appointment %s moved to %s", appointment_id, status)
        return appointment

    def set_working_hours(
        self,
        provider_id: int,
        day_of_week: int,
        start_time: time,
        end_time: time,
        is_active: bool = True,
    ) -> WorkingHours:
        if not 0 <= day_of_week <= 6:
            raise BookingValidationError('day_of_week must be between 0 (Monday) and 6 (Sunday).')
        try:
            interval_from_times(start_time, end_time)
        except ValueError as exc:
            raise BookingValidationError('Working hours must start before they end.') from exc

        try:
            if self.get_provider(provider_id) is None:
                raise NotFoundError('Provider not found.')

            row = self.db.query(WorkingHours).filter(
                WorkingHours.provider_id == provider_id,
                WorkingHours.day_of_week == day_of_week,
            ).first()
            if row is None:
                row = WorkingHours(provider_id=provider_id, day_of_week=day_of_week)
                self.db.add(row)

            row.start_time = start_time
            row.end_time = end_time
            row.is_active = is_active
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(row)
        return row

    def add_blackout(
        self,
        provider_id: int,
        start_time: time,
        end_time: time,
        day: date | None = None,
        is_recurring: bool = False,
        reason: str | None = None,
    ) -> BlockedTime:
        try:
            interval_from_times(start_time, end_time)
        except ValueError as exc:
            raise BookingValidationError('Blocked time must start before it ends.') from exc
        if not is_recurring and day is None:
            raise BookingValidationError('A one-off blocked time needs a date.')

        try:
            if self.get_provider(provider_id) is None:
                raise NotFoundError('Provider not found.')

            blocked_time = BlockedTime(
                provider_id=provider_id,
                date=None if is_recurring else day,
                start_time=start_time,
                end_time=end_time,
                is_recurring=is_recurring,
                reason=reason,
            )
            self.db.add(blocked_time)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(blocked_time)
        return blocked_time

    def remove_blackout(self, provider_id: int, blocked_time_id: int) -> bool:
        blocked_time = self.db.query(BlockedTime).filter(
            BlockedTime.id == blocked_time_id,
            BlockedTime.provider_id == provider_id,
        ).first()
        if blocked_time is None:
            return False

        try:
            self.db.delete(blocked_time)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True
