from datetime import date
from typing import Iterable

from booking.scheduling.calendar import BlackoutWindow, BookedInterval, Interval, WeeklySchedule
from booking.scheduling.conflicts import applicable_blackouts, blocking_appointments, has_conflict

DEFAULT_STEP_MINUTES = 30


def iterate_candidate_starts(open_hours: Interval, duration_minutes: int, step_minutes: int) -> list[int]:
    """Start minutes whose ``[start, start + duration)`` fits inside ``open_hours``."""
    starts: list[int] = []
    current = open_hours.start

    while current + duration_minutes <= open_hours.end:
        starts.append(current)
        current += step_minutes

    return starts


def compute_slots(
    provider_id: int,
    day: date,
    service_duration_minutes: int,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    schedule: WeeklySchedule | None = None,
    blackouts: Iterable[BlackoutWindow] = (),
    existing_appointments: Iterable[BookedInterval] = (),
) -> list[int]:
    """Bookable start times (minutes since midnight) for ``provider_id`` on ``day``.

    A closed day, or a service longer than the day's open hours, yields an
    empty list. The result is ascending and free of duplicates, and depends
    only on the arguments.
    """
    if service_duration_minutes <= 0:
        raise ValueError('Service duration must be a positive number of minutes.')
    if step_minutes <= 0:
        raise ValueError('Slot step must be a positive number of minutes.')

    if schedule is None:
        return []

    open_hours = schedule.hours_for(day)
    if open_hours is None or service_duration_minutes > open_hours.length:
        return []

    day_blackouts = applicable_blackouts(day, blackouts)
    day_appointments = blocking_appointments(provider_id, day, existing_appointments)

    slots: list[int] = []
    for start in iterate_candidate_starts(open_hours, service_duration_minutes, step_minutes):
        occupied = Interval(start, start + service_duration_minutes)
        if has_conflict(occupied, day_blackouts, day_appointments):
            continue
        slots.append(start)

    return slots


def drop_past_slots(slots: list[int], earliest_start: int) -> list[int]:
    return [start for start in slots if start >= earliest_start]
