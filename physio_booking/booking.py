"""
Booking orchestration.

A booking request moves through validating -> checking_availability ->
creating_event and ends in done or failed. Update and cancel take a shorter
path (validate where it applies, then mutate the event). Only the read paths
go through ``with_retry``.

The free/busy pre-check and the insert are not atomic; another client can
take the slot in between, in which case the insert fails with CALENDAR_CONFLICT.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, TypeVar
from . import config
from .availability import AvailabilityChecker
from .client import GoogleCalendarClient
from .errors import AppointmentNotFound, BookingError, CalendarConflict, ValidationFailed
from .events import (
    BOOKING_SOURCE,
    StoredAppointment,
    appointment_from_event,
    build_event_description,
    event_summary,
    event_time,
    new_event_id,
)
from .models import (
    Appointment,
    AppointmentStatus,
    AvailabilityResult,
    BookingRequest,
    SymptomAssessment,
    TimeSlot,
    ValidationResult,
)
from .retry import with_retry
from .rules import DEFAULT_RULES, BusinessRules, appointment_window, localize, validate_appointment
from .slots import generate_slots, mark_availability

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BookingState(str, Enum):
    validating = "validating"
    checking_availability = "checking_availability"
    creating_event = "creating_event"
    done = "done"
    failed = "failed"


@dataclass
class BookingAttempt:
    request: BookingRequest
    state: BookingState = BookingState.validating
    history: list[BookingState] = field(default_factory=lambda: [BookingState.validating])
    appointment: Appointment | None = None
    error: BookingError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is BookingState.done

    def advance(self, state: BookingState) -> None:
        logger.debug("Booking %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, error: BookingError) -> None:
        self.error = error
        self.advance(BookingState.failed)


class BookingOrchestrator:
    def __init__(
        self,
        client: GoogleCalendarClient,
        rules: BusinessRules = DEFAULT_RULES,
        clock: Callable[[], datetime] | None = None,
        *,
        retry_attempts: int = config.RETRY_MAX_ATTEMPTS,
        retry_delay: float = config.RETRY_BASE_DELAY_SECONDS,
        cancel_deletes_event: bool = config.CANCEL_DELETES_EVENT,
        site_url: str = config.SITE_URL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.rules = rules
        self.checker = AvailabilityChecker(client, rules)
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.cancel_deletes_event = cancel_deletes_event
        self.site_url = site_url
        self._clock = clock
        self._sleep = sleep

    def now(self) -> datetime:
        return localize(self._clock() if self._clock else None, self.rules)

    async def _read(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        return await with_retry(
            operation,
            max_attempts=self.retry_attempts,
            delay=self.retry_delay,
            sleep=self._sleep,
            description=description,
        )

    def validate(self, request: BookingRequest) -> ValidationResult:
        return validate_appointment(request, request.duration, now=self.now(), rules=self.rules)

    def _require_valid(self, request: BookingRequest) -> tuple[datetime, datetime]:
        result = self.validate(request)
        if not result.is_valid:
            raise ValidationFailed(result.errors)
        return appointment_window(request, request.duration, self.rules)

    def _stored(self, request: BookingRequest, created_at: datetime | None = None) -> StoredAppointment:
        return StoredAppointment(
            patient_name=request.patient_name.strip(),
            patient_email=request.patient_email.strip(),
            patient_phone=request.patient_phone or None,
            notes=request.notes or None,
            status=AppointmentStatus.scheduled,
            booking_source=BOOKING_SOURCE,
            created_at=created_at,
        )

    @staticmethod
    def _assessment(request: BookingRequest) -> SymptomAssessment:
        return request.symptom_assessment or SymptomAssessment(additional_notes=request.notes or "")

    # write paths: never retried

    async def run_booking(self, request: BookingRequest) -> BookingAttempt:
        attempt = BookingAttempt(request)
        try:
            start, end = self._require_valid(request)

            attempt.advance(BookingState.checking_availability)
            availability = await self.checker.check(start, end)
            if not availability.available:
                raise CalendarConflict(
                    f"Requested slot {start.isoformat()} overlaps {len(availability.busy_times)} busy interval(s)"
                )

            attempt.advance(BookingState.creating_event)
            attempt.appointment = await self._create_event(request, start, end)
            attempt.advance(BookingState.done)
        except BookingError as exc:
            logger.warning("Booking failed in %s: %s", attempt.state.value, exc.message)
            attempt.fail(exc)
        return attempt

    async def _create_event(self, request: BookingRequest, start: datetime, end: datetime) -> Appointment:
        event_id = new_event_id()
        assessment = self._assessment(request)
        created_at = self.now()
        created = await self.client.create_event(
            summary=event_summary(request.patient_name),
            description=build_event_description(request, event_id, self.site_url, assessment),
            start=start,
            end=end,
            attendee_email=request.patient_email.strip(),
            event_id=event_id,
            private_properties=self._stored(request, created_at).to_properties(),
        )
        logger.info("Booked event %s at %s", created.event_id, start.isoformat())
        return Appointment(
            event_id=created.event_id,
            patient_name=request.patient_name.strip(),
            patient_email=request.patient_email.strip(),
            patient_phone=request.patient_phone or None,
            start=start,
            end=end,
            status=AppointmentStatus.scheduled,
            meet_link=created.meet_link,
            symptom_assessment=assessment,
            notes=request.notes or None,
            created_at=created_at,
        )

    async def book(self, request: BookingRequest) -> Appointment:
        attempt = await self.run_booking(request)
        if attempt.error is not None:
            raise attempt.error
        return attempt.appointment

    async def update(self, event_id: str, request: BookingRequest) -> Appointment:
        """Move or edit an existing appointment; the calendar's 409 is the conflict check."""
        start, end = self._require_valid(request)
        current = await self.get_appointment(event_id)
        if current.status is AppointmentStatus.cancelled:
            raise ValidationFailed("Appointment is already cancelled")

        assessment = self._assessment(request)
        body = {
            "summary": event_summary(request.patient_name),
            "description": build_event_description(request, event_id, self.site_url, assessment),
            "start": event_time(start, self.rules.timezone),
            "end": event_time(end, self.rules.timezone),
            "attendees": [{"email": request.patient_email.strip(), "responseStatus": "needsAction"}],
            "extendedProperties": {"private": self._stored(request).to_properties(clear_missing=True)},
        }
        event = await self.client.patch_event(event_id, body)
        logger.info("Updated event %s to %s", event_id, start.isoformat())
        return appointment_from_event(event, self.rules.tz)

    async def cancel(self, event_id: str, reason: str | None = None) -> Appointment:
        appointment = await self.get_appointment(event_id)
        if appointment.status is AppointmentStatus.cancelled:
            raise ValidationFailed("Appointment is already cancelled")
        if appointment.start < self.now():
            raise ValidationFailed("Cannot cancel past appointments")

        if self.cancel_deletes_event:
            await self.client.delete_event(event_id)
        else:
            await self.client.patch_event(
                event_id,
                {
                    "extendedProperties": {
                        "private": {
                            "status": AppointmentStatus.cancelled.value,
                            "cancellationReason": reason or "Cancelled by patient",
                            "cancelledAt": self.now().isoformat(),
                        }
                    }
                },
            )
        logger.info("Cancelled event %s", event_id)
        return appointment.model_copy(update={"status": AppointmentStatus.cancelled})

    # read paths: retried on transient failures

    async def check_availability(self, start: datetime, end: datetime) -> AvailabilityResult:
        return await self._read(lambda: self.checker.check(start, end), "availability check")

    async def list_available_slots(
        self,
        start_date: date | datetime,
        end_date: date | datetime,
        duration: int = config.DEFAULT_DURATION_MINUTES,
        include_unavailable: bool = False,
    ) -> list[TimeSlot]:
        candidates = list(generate_slots(start_date, end_date, duration, self.rules, now=self.now()))
        if not candidates:
            return []

        window_start = candidates[0].date
        window_end = candidates[-1].date + timedelta(minutes=duration)
        availability = await self._read(lambda: self.checker.check(window_start, window_end), "slot listing")
        slots = mark_availability(candidates, availability.busy_times)
        return [slot for slot in slots if include_unavailable or slot.available]

    async def get_appointment(self, event_id: str) -> Appointment:
        event = await self._read(lambda: self.client.get_event(event_id), "appointment lookup")
        if event is None:
            raise AppointmentNotFound(f"No calendar event {event_id}")
        return appointment_from_event(event, self.rules.tz)

    async def list_appointments(
        self, start: datetime, end: datetime, status: AppointmentStatus | None = None
    ) -> list[Appointment]:
        start, end = localize(start, self.rules), localize(end, self.rules)
        events = await self._read(
            lambda: self.client.list_events(start, end, {"bookingSource": BOOKING_SOURCE}), "appointment listing"
        )
        appointments = [appointment_from_event(event, self.rules.tz) for event in events]
        if status is not None:
            appointments = [a for a in appointments if a.status == status]
        return appointments
