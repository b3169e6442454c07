from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Literal
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Accept camelCase (UI) and snake_case on input; emit camelCase at the API boundary.
_CAMEL = {"populate_by_name": True, "alias_generator": to_camel}


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class SymptomAssessment(BaseModel):
    pain_level: int = Field(5, ge=1, le=10)
    pain_location: list[str] = []
    symptom_duration: str = ""
    previous_treatments: str = ""
    current_medications: str = ""
    additional_notes: str = ""
    primary_symptom: str = ""
    secondary_symptoms: list[str] = []
    onset_date: str | None = None
    trigger_events: list[str] = []
    worsening_factors: list[str] = []
    relieving_factors: list[str] = []
    daily_impact: Literal["minimal", "moderate", "significant", "severe"] = "moderate"

    model_config = _CAMEL


class AppointmentFormData(BaseModel):
    """Raw booking form input. Left loose so the validator can report every problem."""
    patient_name: str = ""
    patient_email: str = ""
    patient_phone: str | None = None
    appointment_date: str = ""  # YYYY-MM-DD
    appointment_time: str = ""  # HH:MM
    notes: str | None = None

    model_config = _CAMEL


class BookingRequest(AppointmentFormData):
    symptom_assessment: SymptomAssessment | None = None
    duration: int = 60  # minutes


class TimeSlot(BaseModel):
    date: datetime  # slot start, clinic time zone
    display_time: str
    available: bool = True
    duration: int

    model_config = _CAMEL


class BusyInterval(BaseModel):
    """Occupied [start, end) range reported by free/busy."""
    start: datetime
    end: datetime

    model_config = _CAMEL


class AvailabilityRequest(BaseModel):
    start: datetime
    end: datetime


class AvailabilityResult(BaseModel):
    available: bool
    busy_times: list[BusyInterval] = []

    model_config = _CAMEL


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = []

    model_config = _CAMEL


class Appointment(BaseModel):
    event_id: str
    patient_name: str
    patient_email: str
    patient_phone: str | None = None
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.scheduled
    meet_link: str | None = None
    symptom_assessment: SymptomAssessment = Field(default_factory=SymptomAssessment)
    notes: str | None = None
    created_at: datetime | None = None

    model_config = _CAMEL

    @property
    def duration(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class ErrorResponse(BaseModel):
    code: str
    message: str
    status: int
