from datetime import datetime
import httpx
import pytest
from physio_booking.api import app, get_orchestrator
from physio_booking.booking import BookingOrchestrator
from physio_booking.client import CreatedEvent
from physio_booking.errors import CalendarError, NetworkError
from physio_booking.models import BusyInterval
from .support import NOW, RULES, TZ, SleepRecorder, load


class FakeCalendar:
    """In-memory stand-in for GoogleCalendarClient."""

    def __init__(self, busy=None, fail_with=None):
        self.busy = busy or []
        self.fail_with = fail_with
        self.created = []
        self.events = {"evt123": load("event_get.json")}

    async def free_busy_query(self, time_min, time_max):
        if self.fail_with:
            raise self.fail_with
        return self.busy

    async def create_event(self, summary, description, start, end, attendee_email=None, *, event_id=None, **kwargs):
        self.created.append(event_id)
        return CreatedEvent(event_id=event_id, meet_link="https://meet.google.com/abc-defg-hij")

    async def get_event(self, event_id):
        return self.events.get(event_id)

    async def list_events(self, time_min, time_max, private_filter=None):
        return load("events_list.json")["items"]

    async def patch_event(self, event_id, body):
        return self.events[event_id]

    async def delete_event(self, event_id):
        self.events.pop(event_id)


def _client(calendar):
    orchestrator = BookingOrchestrator(calendar, RULES, clock=lambda: NOW, sleep=SleepRecorder())
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


FORM = {
    "patientName": "Jane Doe",
    "patientEmail": "jane@example.com",
    "patientPhone": "+1 555 123 4567",
    "appointmentDate": "2030-01-07",
    "appointmentTime": "09:00",
    "notes": "Left knee pain",
    "duration": 60,
}


@pytest.mark.asyncio
async def test_health():
    async with _client(FakeCalendar()) as ac:
        r = await ac.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_book_appointment():
    calendar = FakeCalendar()
    async with _client(calendar) as ac:
        r = await ac.post("/appointments", json=FORM)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "scheduled"
    assert body["meetLink"] == "https://meet.google.com/abc-defg-hij"
    assert body["eventId"] == calendar.created[0]
    assert body["symptomAssessment"]["additionalNotes"] == "Left knee pain"


@pytest.mark.asyncio
async def test_validation_error_envelope():
    calendar = FakeCalendar()
    async with _client(calendar) as ac:
        r = await ac.post("/appointments", json={**FORM, "appointmentDate": "2030-01-05"})
    assert r.status_code == 400
    assert r.json() == {
        "code": "VALIDATION_ERROR",
        "message": "Appointments can only be scheduled on weekdays",
        "status": 400,
    }
    assert calendar.created == []


@pytest.mark.asyncio
async def test_conflict_envelope():
    busy = [BusyInterval(start=datetime(2030, 1, 7, 9, 0, tzinfo=TZ), end=datetime(2030, 1, 7, 10, 0, tzinfo=TZ))]
    async with _client(FakeCalendar(busy=busy)) as ac:
        r = await ac.post("/appointments", json={**FORM, "appointmentTime": "09:30"})
    assert r.status_code == 409
    assert r.json()["code"] == "CALENDAR_CONFLICT"
    assert r.json()["message"] == "This time slot is no longer available. Please select a different time."


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,status,code",
    [
        (CalendarError("Failed to check calendar availability: 500 backend trace", status=500), 500, "CALENDAR_ERROR"),
        (NetworkError("Network error during check calendar availability"), 503, "NETWORK_ERROR"),
    ],
)
async def test_upstream_detail_is_not_leaked(error, status, code):
    async with _client(FakeCalendar(fail_with=error)) as ac:
        r = await ac.post("/appointments", json=FORM)
    assert r.status_code == status
    assert r.json()["code"] == code
    assert "backend" not in r.json()["message"]
    assert "check calendar availability" not in r.json()["message"]


@pytest.mark.asyncio
async def test_validate_endpoint_makes_no_calendar_call():
    calendar = FakeCalendar(fail_with=NetworkError("should not be called"))
    async with _client(calendar) as ac:
        r = await ac.post("/appointments/validate", json={**FORM, "appointmentTime": "16:30", "patientEmail": "nope"})
    assert r.status_code == 200
    assert r.json() == {
        "isValid": False,
        "errors": [
            "Please enter a valid email address",
            "Appointment duration (60 minutes) extends beyond business hours",
        ],
    }


@pytest.mark.asyncio
async def test_get_and_cancel_appointment():
    calendar = FakeCalendar()
    async with _client(calendar) as ac:
        r = await ac.get("/appointments/evt123")
        assert r.status_code == 200
        assert r.json()["patientName"] == "Jane Doe"

        r = await ac.delete("/appointments/evt123", params={"reason": "Feeling better"})
        assert r.status_code == 200
        assert r.json()["status"] == "cancelled"

        r = await ac.get("/appointments/evt123")
    assert r.status_code == 404
    assert r.json()["code"] == "APPOINTMENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_appointment():
    async with _client(FakeCalendar()) as ac:
        r = await ac.put("/appointments/evt123", json={**FORM, "appointmentDate": "2030-01-08", "appointmentTime": "10:00"})
    assert r.status_code == 200
    assert r.json()["eventId"] == "evt123"


@pytest.mark.asyncio
async def test_list_appointments_by_status():
    async with _client(FakeCalendar()) as ac:
        r = await ac.get(
            "/appointments",
            params={"start": "2030-01-07T00:00:00", "end": "2030-01-12T00:00:00", "status": "scheduled"},
        )
    assert r.status_code == 200
    assert [a["eventId"] for a in r.json()] == ["evt123"]


@pytest.mark.asyncio
async def test_availability_endpoint():
    busy = [BusyInterval(start=datetime(2030, 1, 7, 9, 0, tzinfo=TZ), end=datetime(2030, 1, 7, 10, 0, tzinfo=TZ))]
    async with _client(FakeCalendar(busy=busy)) as ac:
        r = await ac.post("/availability", json={"start": "2030-01-07T10:00:00-05:00", "end": "2030-01-07T11:00:00-05:00"})
    assert r.status_code == 200
    assert r.json()["available"] is True
    assert len(r.json()["busyTimes"]) == 1


@pytest.mark.asyncio
async def test_slots_endpoint():
    busy = [BusyInterval(start=datetime(2030, 1, 7, 9, 0, tzinfo=TZ), end=datetime(2030, 1, 7, 10, 0, tzinfo=TZ))]
    async with _client(FakeCalendar(busy=busy)) as ac:
        r = await ac.get("/slots", params={"start_date": "2030-01-07", "end_date": "2030-01-07", "duration": 60})
        assert [s["displayTime"] for s in r.json()] == ["10:00", "11:00", "13:00", "14:00", "15:00", "16:00"]

        r = await ac.get(
            "/slots",
            params={"start_date": "2030-01-07", "end_date": "2030-01-07", "duration": 60, "include_unavailable": "true"},
        )
        assert r.json()[0] == {
            "date": "2030-01-07T09:00:00-05:00",
            "displayTime": "09:00",
            "available": False,
            "duration": 60,
        }

        r = await ac.get("/slots", params={"start_date": "2030-01-07", "end_date": "2030-01-07", "duration": 5})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
