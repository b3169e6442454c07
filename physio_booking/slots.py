"""
Slot generation and conflict detection.

Candidate slots are laid out from opening to closing time at the configured
interval, skipping weekends and the lunch hour, and are then intersected with
busy intervals from the calendar. ``overlaps`` is the only conflict test in
the service; both the availability checker and the slot listing use it.
"""
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator
from . import config
from .errors import ValidationFailed
from .models import BusyInterval, TimeSlot
from .rules import DEFAULT_RULES, BusinessRules, localize


def overlaps(start: datetime, duration: int | timedelta, busy: BusyInterval) -> bool:
    """Half-open overlap test; touching intervals are free."""
    length = duration if isinstance(duration, timedelta) else timedelta(minutes=duration)
    end = start + length
    return start < busy.end and end > busy.start


def is_slot_busy(start: datetime, duration: int | timedelta, busy_times: Iterable[BusyInterval]) -> bool:
    return any(overlaps(start, duration, busy) for busy in busy_times)


def _as_date(value: date | datetime, rules: BusinessRules) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(rules.tz).date()
        return value.date()
    return value


def _iter_slots(
    first: date, last: date, duration: int, rules: BusinessRules, now: datetime | None
) -> Iterator[TimeSlot]:
    step = timedelta(minutes=rules.slot_interval_minutes)
    length = timedelta(minutes=duration)
    for offset in range((last - first).days + 1):
        day = first + timedelta(days=offset)
        # Monday..Friday only
        if day.weekday() < 5:
            start = rules.opening(day)
            closing = rules.closing(day)
            while start < closing:
                if (
                    not rules.is_lunch(start)
                    and start + length <= closing
                    and (now is None or start > now)
                ):
                    yield TimeSlot(
                        date=start,
                        display_time=start.strftime("%H:%M"),
                        available=True,
                        duration=duration,
                    )
                start += step


def generate_slots(
    start_date: date | datetime,
    end_date: date | datetime,
    duration: int = config.DEFAULT_DURATION_MINUTES,
    rules: BusinessRules = DEFAULT_RULES,
    now: datetime | None = None,
) -> Iterator[TimeSlot]:
    """Lazily yield candidate slots for every weekday in [start_date, end_date].

    Each call returns a fresh iterator, so the sequence can be replayed. When
    ``now`` is given, slots that do not start after it are left out, which
    keeps every yielded slot acceptable to ``validate_appointment``.
    """
    if not rules.min_duration <= duration <= rules.max_duration:
        raise ValidationFailed(
            f"Appointment duration must be between {rules.min_duration} and {rules.max_duration} minutes"
        )
    if rules.slot_interval_minutes <= 0:
        raise ValueError("slot interval must be positive")
    first, last = _as_date(start_date, rules), _as_date(end_date, rules)
    if (last - first).days >= config.MAX_SLOT_RANGE_DAYS:
        raise ValidationFailed(f"Slot range cannot exceed {config.MAX_SLOT_RANGE_DAYS} days")
    if now is not None:
        now = localize(now, rules)
    return _iter_slots(first, last, duration, rules, now)


def mark_availability(slots: Iterable[TimeSlot], busy_times: list[BusyInterval]) -> Iterator[TimeSlot]:
    for slot in slots:
        yield slot.model_copy(update={"available": not is_slot_busy(slot.date, slot.duration, busy_times)})
