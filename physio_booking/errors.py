"""Typed errors for the booking core.

Every failure that reaches a caller is one of these. The calendar client turns
HTTP statuses and transport failures into them, so nothing above it has to
look at an httpx exception.
"""
from __future__ import annotations
from typing import Any

GENERIC_RETRY_MESSAGE = "Unable to access the calendar right now. Please try again later."
CONTACT_SUPPORT_MESSAGE = "Calendar service is temporarily unavailable. Please contact support."


class BookingError(Exception):
    code = "BOOKING_ERROR"
    default_status = 500
    default_user_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str, status: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status or self.default_status
        self.details = details

    @property
    def user_message(self) -> str:
        """Text that is safe to show a patient."""
        return self.default_user_message

    def to_response(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.user_message, "status": self.status}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, status={self.status}, message={self.message!r})"


class ValidationFailed(BookingError):
    code = "VALIDATION_ERROR"
    default_status = 400

    def __init__(self, errors: list[str] | str, status: int | None = None):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors), status=status, details=self.errors)

    @property
    def user_message(self) -> str:
        return self.message


class CalendarConflict(BookingError):
    code = "CALENDAR_CONFLICT"
    default_status = 409
    default_user_message = "This time slot is no longer available. Please select a different time."

    @property
    def user_message(self) -> str:
        return self.default_user_message


class CalendarAuthError(BookingError):
    """Refresh token expired or revoked, or OAuth credentials missing."""

    code = "CALENDAR_AUTH_ERROR"
    default_status = 401
    default_user_message = "Calendar authentication failed. Please contact support."

    @property
    def user_message(self) -> str:
        if self.status == 503:
            return CONTACT_SUPPORT_MESSAGE
        return self.default_user_message


class CalendarError(BookingError):
    code = "CALENDAR_ERROR"
    default_status = 502
    default_user_message = GENERIC_RETRY_MESSAGE


class NetworkError(BookingError):
    code = "NETWORK_ERROR"
    default_status = 503
    default_user_message = "Network error. Please check your connection and try again."


class AppointmentNotFound(BookingError):
    code = "APPOINTMENT_NOT_FOUND"
    default_status = 404
    default_user_message = "Appointment not found."
