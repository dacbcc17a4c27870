from datetime import date
from typing import Iterable

from booking.scheduling.calendar import BlackoutWindow, BookedInterval, Interval, overlaps

# Appointments in these states free their slot.
NON_BLOCKING_STATUSES = frozenset({'canceled', 'no_show'})


def blocks_availability(appointment: BookedInterval) -> bool:
    return appointment.status not in NON_BLOCKING_STATUSES


def applicable_blackouts(day: date, blackouts: Iterable[BlackoutWindow]) -> list[BlackoutWindow]:
    return [blackout for blackout in blackouts if blackout.applies_to(day)]


def blocking_appointments(
    provider_id: int,
    day: date,
    appointments: Iterable[BookedInterval],
) -> list[BookedInterval]:
    return [
        appointment
        for appointment in appointments
        if appointment.provider_id == provider_id
        and appointment.date == day
        and blocks_availability(appointment)
    ]


def find_conflict(
    candidate: Interval,
    blackouts: Iterable[BlackoutWindow],
    appointments: Iterable[BookedInterval],
) -> BlackoutWindow | BookedInterval | None:
    """Return the first blackout or appointment overlapping ``candidate``.

    Callers are expected to pass only the blackouts and appointments that apply
    to the candidate's provider and date (see ``applicable_blackouts`` and
    ``blocking_appointments``).
    """
    for blackout in blackouts:
        if overlaps(candidate, blackout.interval):
            return blackout

    for appointment in appointments:
        if overlaps(candidate, appointment.interval):
            return appointment

    return None


def has_conflict(
    candidate: Interval,
    blackouts: Iterable[BlackoutWindow],
    appointments: Iterable[BookedInterval],
) -> bool:
    return find_conflict(candidate, blackouts, appointments) is not None
