import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from . import config
from .booking import BookingOrchestrator
from .client import GoogleCalendarClient
from .errors import BookingError
from .models import (
    Appointment,
    AppointmentStatus,
    AvailabilityRequest,
    AvailabilityResult,
    BookingRequest,
    TimeSlot,
    ValidationResult,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    missing = config.missing_google_credentials()
    if missing:
        logger.warning("Google Calendar credentials not configured: %s", ", ".join(missing))
    client = GoogleCalendarClient()
    app.state.orchestrator = BookingOrchestrator(client)
    try:
        yield
    finally:
        await client.aclose()


app = FastAPI(title="Physio Booking Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status, content=exc.to_response())


@app.get("/")
async def health():
    return {"status": "ok", "calendarConfigured": not config.missing_google_credentials()}


# Appointments ---------------------------------------------------------------

@app.post("/appointments/validate", response_model=ValidationResult)
async def validate_appointment(req: BookingRequest, orchestrator: BookingOrchestrator = Depends(get_orchestrator)):
    """Run the business rules only; nothing is sent to the calendar."""
    return orchestrator.validate(req)


@app.post("/appointments", response_model=Appointment, status_code=201)
async def book_appointment(req: BookingRequest, orchestrator: BookingOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.book(req)


@app.get("/appointments", response_model=list[Appointment])
async def list_appointments(
    start: datetime = Query(..., description="ISO start of the listing window"),
    end: datetime = Query(..., description="ISO end of the listing window"),
    status: Optional[AppointmentStatus] = Query(None),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.list_appointments(start, end, status)


@app.get("/appointments/{event_id}", response_model=Appointment)
async def get_appointment(event_id: str, orchestrator: BookingOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.get_appointment(event_id)


@app.put("/appointments/{event_id}", response_model=Appointment)
async def update_appointment(
    event_id: str, req: BookingRequest, orchestrator: BookingOrchestrator = Depends(get_orchestrator)
):
    return await orchestrator.update(event_id, req)


@app.delete("/appointments/{event_id}", response_model=Appointment)
async def cancel_appointment(
    event_id: str,
    reason: Optional[str] = Query(None, description="Cancellation reason recorded on the event"),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.cancel(event_id, reason)


# Availability ---------------------------------------------------------------

@app.post("/availability", response_model=AvailabilityResult)
async def check_availability(req: AvailabilityRequest, orchestrator: BookingOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.check_availability(req.start, req.end)


@app.get("/slots", response_model=list[TimeSlot])
async def list_slots(
    start_date: date = Query(..., description="First day, YYYY-MM-DD"),
    end_date: date = Query(..., description="Last day, inclusive"),
    duration: int = Query(config.DEFAULT_DURATION_MINUTES, description="Minutes"),
    include_unavailable: bool = Query(False),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Bookable slots in the range, checked against the calendar's free/busy."""
    return await orchestrator.list_available_slots(start_date, end_date, duration, include_unavailable)
