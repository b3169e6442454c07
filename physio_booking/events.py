"""Mapping between Google Calendar events and Appointment records.

The scalar booking fields live in the event's ``extendedProperties.private``
map; the symptom assessment is written as a JSON block at the end of the
description because private property values are capped at 1024 characters.
Reading an event back goes through ``StoredAppointment``, which accepts both
camelCase and snake_case keys, so no caller has to care which one an older
event was written with.
"""
from __future__ import annotations
import json
import logging
import uuid
from datetime import date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo
from pydantic import BaseModel, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from .errors import CalendarError
from .models import Appointment, AppointmentFormData, AppointmentStatus, SymptomAssessment

BOOKING_SOURCE = "web-platform"
ASSESSMENT_MARKER = "Symptom assessment (JSON):"
SUMMARY_PREFIX = "Physiotherapy - "
# private keys an update blanks out when the form leaves them empty
CLEARABLE_PROPERTIES = ("patientPhone", "notes")

logger = logging.getLogger(__name__)


class StoredAppointment(BaseModel):
    patient_name: str = ""
    patient_email: str = ""
    patient_phone: str | None = None
    notes: str | None = None
    status: AppointmentStatus = AppointmentStatus.scheduled
    booking_source: str | None = None
    created_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None

    model_config = {"populate_by_name": True, "alias_generator": to_camel, "extra": "ignore"}

    @field_validator("patient_phone", "notes", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_properties(self, clear_missing: bool = False) -> dict[str, str]:
        """Flatten to the string map Google stores.

        Private properties are merged on PATCH, so with ``clear_missing`` the
        optional fields are sent as empty strings instead of being left out.
        """
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        properties = {key: str(value) for key, value in data.items()}
        if clear_missing:
            for key in CLEARABLE_PROPERTIES:
                properties.setdefault(key, "")
        return properties


def new_event_id() -> str:
    # Google accepts client ids drawn from base32hex; uuid4 hex digits are a subset.
    return uuid.uuid4().hex


def event_summary(patient_name: str) -> str:
    return f"{SUMMARY_PREFIX}{patient_name.strip()}"


def event_time(moment: datetime, time_zone: str) -> dict[str, str]:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=ZoneInfo(time_zone))
    return {"dateTime": moment.isoformat(), "timeZone": time_zone}


def build_event_description(
    form: AppointmentFormData,
    event_id: str,
    site_url: str,
    assessment: SymptomAssessment | None = None,
) -> str:
    lines = [
        f"Patient: {form.patient_name.strip()}",
        f"Email: {form.patient_email.strip()}",
        f"Phone: {form.patient_phone or 'Not provided'}",
        "",
        f"Appointment ID: {event_id}",
    ]
    if form.notes:
        lines.append(f"Notes: {form.notes}")
    lines += [
        "",
        f"View Details: {site_url.rstrip('/')}/appointment/{event_id}",
        f"Cancel Appointment: {site_url.rstrip('/')}/cancel/{event_id}",
        "",
        "For questions, please contact the clinic directly.",
    ]
    if assessment is not None:
        lines += ["", ASSESSMENT_MARKER, assessment.model_dump_json(by_alias=True)]
    return "\n".join(lines)


def parse_assessment(description: str | None) -> SymptomAssessment:
    if not description or ASSESSMENT_MARKER not in description:
        return SymptomAssessment()
    payload = description.split(ASSESSMENT_MARKER, 1)[1].strip()
    try:
        return SymptomAssessment.model_validate(json.loads(payload))
    except (ValueError, ValidationError):
        return SymptomAssessment()


def extract_meet_link(event: dict[str, Any]) -> str | None:
    if event.get("hangoutLink"):
        return event["hangoutLink"]
    for entry in (event.get("conferenceData") or {}).get("entryPoints", []):
        if entry.get("entryPointType") == "video":
            return entry.get("uri")
    return None


def parse_event_time(block: dict[str, Any] | None, tz: ZoneInfo) -> datetime:
    block = block or {}
    if block.get("dateTime"):
        moment = datetime.fromisoformat(block["dateTime"].replace("Z", "+00:00"))
        return moment if moment.tzinfo else moment.replace(tzinfo=tz)
    # all-day events carry only a date
    return datetime.combine(date.fromisoformat(block["date"]), time(0), tzinfo=tz)


def stored_properties(event: dict[str, Any]) -> StoredAppointment:
    """Booking fields from the private properties; values that do not parse fall back to defaults."""
    private = (event.get("extendedProperties") or {}).get("private") or {}
    if not isinstance(private, dict):
        private = {}
    try:
        return StoredAppointment.model_validate(private)
    except ValidationError as exc:
        rejected = {err["loc"][0] for err in exc.errors() if err.get("loc")}
        logger.warning("Ignoring unreadable private properties %s on event %s", sorted(rejected), event.get("id"))
        return StoredAppointment.model_validate({k: v for k, v in private.items() if k not in rejected})


def appointment_from_event(event: dict[str, Any], tz: ZoneInfo) -> Appointment:
    try:
        stored = stored_properties(event)
        attendees = event.get("attendees") or []

        patient_email = stored.patient_email or (attendees[0].get("email", "") if attendees else "")
        patient_name = stored.patient_name or (event.get("summary") or "").removeprefix(SUMMARY_PREFIX)
        status = AppointmentStatus.cancelled if event.get("status") == "cancelled" else stored.status

        created_at = stored.created_at
        if created_at is None and event.get("created"):
            created_at = datetime.fromisoformat(event["created"].replace("Z", "+00:00"))

        return Appointment(
            event_id=event["id"],
            patient_name=patient_name,
            patient_email=patient_email,
            patient_phone=stored.patient_phone,
            start=parse_event_time(event.get("start"), tz),
            end=parse_event_time(event.get("end"), tz),
            status=status,
            meet_link=extract_meet_link(event),
            symptom_assessment=parse_assessment(event.get("description")),
            notes=stored.notes,
            created_at=created_at,
        )
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise CalendarError(f"Malformed calendar event {event.get('id')!r}") from exc
