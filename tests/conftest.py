import pytest
from physio_booking.booking import BookingOrchestrator
from physio_booking.client import GoogleCalendarClient
from .support import API, NOW, RULES, TOKEN_URL, SleepRecorder


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def calendar():
    return GoogleCalendarClient(
        "dummy-id",
        "dummy-secret",
        "dummy-refresh",
        calendar_id="primary",
        time_zone="America/New_York",
        token_url=TOKEN_URL,
        api_base=API,
    )


@pytest.fixture
def orchestrator(calendar, sleeps):
    return BookingOrchestrator(
        calendar,
        RULES,
        clock=lambda: NOW,
        retry_attempts=3,
        retry_delay=1.0,
        cancel_deletes_event=True,
        site_url="http://localhost:5173",
        sleep=sleeps,
    )
