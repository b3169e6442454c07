"""Business-hour rules for appointment requests.

``validate_appointment`` is pure: it never talks to the calendar and it
reports every violated rule at once rather than stopping at the first.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo
from . import config
from .errors import ValidationFailed
from .models import AppointmentFormData, ValidationResult

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
MAX_NOTES_LENGTH = 500


@dataclass(frozen=True)
class BusinessRules:
    open_hour: int = config.BUSINESS_START_HOUR
    close_hour: int = config.BUSINESS_END_HOUR
    lunch_hour: int | None = config.LUNCH_HOUR
    slot_interval_minutes: int = config.SLOT_INTERVAL_MINUTES
    min_duration: int = config.MIN_DURATION_MINUTES
    max_duration: int = config.MAX_DURATION_MINUTES
    timezone: str = config.CLINIC_TIMEZONE

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def opening(self, day: date) -> datetime:
        return datetime.combine(day, time(self.open_hour), tzinfo=self.tz)

    def closing(self, day: date) -> datetime:
        return datetime.combine(day, time(self.close_hour), tzinfo=self.tz)

    def is_lunch(self, moment: datetime) -> bool:
        return self.lunch_hour is not None and moment.hour == self.lunch_hour


DEFAULT_RULES = BusinessRules()


def parse_time(value: str) -> time | None:
    match = TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute, second = match.groups()
    return time(int(hour), int(minute), int(second or 0))


def parse_date(value: str) -> date | None:
    value = value.strip()
    if not DATE_RE.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def combine_form_datetime(form: AppointmentFormData, rules: BusinessRules = DEFAULT_RULES) -> datetime | None:
    """Aware start datetime in the clinic time zone, or None when unparseable."""
    day = parse_date(form.appointment_date or "")
    at = parse_time(form.appointment_time or "")
    if day is None or at is None:
        return None
    return datetime.combine(day, at, tzinfo=rules.tz)


def localize(now: datetime | None, rules: BusinessRules = DEFAULT_RULES) -> datetime:
    """Attach the clinic time zone to naive datetimes; None means the current time."""
    if now is None:
        return datetime.now(rules.tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=rules.tz)
    return now


def _schedule_errors(start: datetime, duration: int, now: datetime, rules: BusinessRules) -> list[str]:
    errors = []
    if start <= now:
        errors.append("Appointment must be scheduled for a future date and time")
    if start.weekday() >= 5:
        errors.append("Appointments can only be scheduled on weekdays")
    if not rules.open_hour <= start.hour < rules.close_hour:
        errors.append(
            f"Appointments can only be scheduled between {rules.open_hour}:00 and {rules.close_hour}:00"
        )
    end = start + timedelta(minutes=duration)
    if end > rules.closing(start.date()):
        errors.append(f"Appointment duration ({duration} minutes) extends beyond business hours")
    return errors


def validate_appointment(
    form: AppointmentFormData,
    duration: int = config.DEFAULT_DURATION_MINUTES,
    now: datetime | None = None,
    rules: BusinessRules = DEFAULT_RULES,
) -> ValidationResult:
    errors: list[str] = []

    if not (form.patient_name or "").strip():
        errors.append("Patient name is required")

    email = (form.patient_email or "").strip()
    if not email:
        errors.append("Patient email is required")
    elif not EMAIL_RE.match(email):
        errors.append("Please enter a valid email address")

    if form.patient_phone and form.patient_phone.strip() and not PHONE_RE.match(form.patient_phone.strip()):
        errors.append("Please enter a valid phone number")

    if form.notes and len(form.notes) > MAX_NOTES_LENGTH:
        errors.append(f"Notes must be less than {MAX_NOTES_LENGTH} characters")

    if not form.appointment_date:
        errors.append("Appointment date is required")
    if not form.appointment_time:
        errors.append("Appointment time is required")

    if form.appointment_date and form.appointment_time:
        start = combine_form_datetime(form, rules)
        if start is None:
            errors.append("Please enter a valid date (YYYY-MM-DD) and time (HH:MM)")
        else:
            errors.extend(_schedule_errors(start, duration, localize(now, rules), rules))

    if not rules.min_duration <= duration <= rules.max_duration:
        errors.append(
            f"Appointment duration must be between {rules.min_duration} and {rules.max_duration} minutes"
        )

    return ValidationResult(is_valid=not errors, errors=errors)


def appointment_window(
    form: AppointmentFormData, duration: int, rules: BusinessRules = DEFAULT_RULES
) -> tuple[datetime, datetime]:
    start = combine_form_datetime(form, rules)
    if start is None:
        raise ValidationFailed("Please enter a valid date (YYYY-MM-DD) and time (HH:MM)")
    return start, start + timedelta(minutes=duration)
