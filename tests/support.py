import json, pathlib
from datetime import datetime
from zoneinfo import ZoneInfo
from physio_booking.models import BookingRequest
from physio_booking.rules import BusinessRules

FIX = pathlib.Path(__file__).parent / "fixtures"
TZ = ZoneInfo("America/New_York")
# Tuesday morning; 2030-01-05 is a Saturday, 2030-01-07 a Monday
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=TZ)

TOKEN_URL = "https://oauth2.googleapis.com/token"
API = "https://www.googleapis.com/calendar/v3"
EVENTS = f"{API}/calendars/primary/events"
FREEBUSY = f"{API}/freeBusy"
TOKEN_RESP = {"access_token": "fake", "expires_in": 3599, "token_type": "Bearer"}

RULES = BusinessRules(
    open_hour=9,
    close_hour=17,
    lunch_hour=12,
    slot_interval_minutes=60,
    min_duration=15,
    max_duration=180,
    timezone="America/New_York",
)


def load(name):
    return json.loads((FIX / name).read_text())


def make_request(**overrides) -> BookingRequest:
    data = dict(
        patient_name="Jane Doe",
        patient_email="jane@example.com",
        patient_phone="+1 555 123 4567",
        appointment_date="2030-01-07",
        appointment_time="09:00",
        notes="Left knee pain",
        duration=60,
    )
    data.update(overrides)
    return BookingRequest(**data)


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)
