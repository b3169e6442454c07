"""Async Google Calendar client for the clinic's calendar.
Assumes the OAuth2 refresh-token flow; a fresh access token is fetched for every operation.
"""
from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote
import httpx
from pydantic import ValidationError
from . import config
from .errors import (
    AppointmentNotFound,
    BookingError,
    CalendarAuthError,
    CalendarConflict,
    CalendarError,
    NetworkError,
)
from .events import event_time, extract_meet_link
from .models import BusyInterval

logger = logging.getLogger(__name__)


@dataclass
class CreatedEvent:
    event_id: str
    meet_link: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _token_error(resp: httpx.Response) -> BookingError:
    try:
        payload = resp.json()
    except ValueError:
        payload = {"error": "unknown_error", "error_description": resp.text}
    error = payload.get("error") if isinstance(payload, dict) else None
    description = payload.get("error_description") if isinstance(payload, dict) else None

    if resp.status_code == 400:
        if error == "invalid_grant":
            return CalendarAuthError(
                "REFRESH_TOKEN_EXPIRED: the refresh token has expired or been revoked", status=401
            )
        if error == "invalid_client":
            return CalendarAuthError(
                "INVALID_CLIENT_CREDENTIALS: the Google client id or secret is invalid", status=401
            )
        return CalendarAuthError(
            f"INVALID_REFRESH_REQUEST: {description or 'invalid refresh token request'}", status=401
        )
    if resp.status_code == 401:
        return CalendarAuthError("UNAUTHORIZED_REFRESH: the refresh token is unauthorized", status=401)
    return CalendarError(
        f"REFRESH_TOKEN_ERROR_{resp.status_code}: {description or 'unknown token refresh error'}",
        status=resp.status_code,
    )


def _raise_for_status(resp: httpx.Response, operation: str) -> None:
    if resp.is_success:
        return
    status = resp.status_code
    logger.error("Calendar %s failed (%s): %s", operation, status, resp.text)
    if status == 401:
        raise CalendarAuthError(f"Failed to {operation}: authentication expired", status=401)
    if status == 403:
        raise CalendarError(f"Failed to {operation}: insufficient permissions", status=403)
    if status in (404, 410):
        raise AppointmentNotFound(f"Failed to {operation}: event not found")
    if status in (409, 412):
        raise CalendarConflict(f"Failed to {operation}: calendar conflict detected")
    raise CalendarError(f"Failed to {operation}: {status}", status=status)


def _json(resp: httpx.Response, operation: str) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise CalendarError(f"Failed to {operation}: malformed response body") from exc
    if not isinstance(payload, dict):
        raise CalendarError(f"Failed to {operation}: malformed response body")
    return payload


class GoogleCalendarClient:
    """Thin wrapper over the Calendar v3 REST API. Never retries."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        *,
        calendar_id: str | None = None,
        time_zone: str | None = None,
        token_url: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id if client_id is not None else config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.GOOGLE_CLIENT_SECRET
        self.refresh_token = refresh_token if refresh_token is not None else config.GOOGLE_REFRESH_TOKEN
        self.calendar_id = calendar_id or config.GOOGLE_CALENDAR_ID
        self.time_zone = time_zone or config.CLINIC_TIMEZONE
        self.token_url = token_url or config.GOOGLE_TOKEN_URL
        self.api_base = (api_base or config.GOOGLE_CALENDAR_API).rstrip("/")
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            http2=True, timeout=timeout or config.CALENDAR_TIMEOUT_SECONDS
        )

    async def __aenter__(self) -> "GoogleCalendarClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def _events_url(self) -> str:
        return f"{self.api_base}/calendars/{quote(self.calendar_id, safe='')}/events"

    def _event_url(self, event_id: str) -> str:
        return f"{self._events_url}/{quote(event_id.strip(), safe='')}"

    async def _send(self, method: str, url: str, operation: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Timeout during %s", operation)
            raise NetworkError(f"Request timeout during {operation}") from exc
        except httpx.TransportError as exc:
            logger.error("Network error during %s: %s", operation, exc)
            raise NetworkError(f"Network error during {operation}") from exc

    async def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self.refresh_access_token()}", "Accept": "application/json"}

    async def refresh_access_token(self) -> str:
        """Exchange the stored refresh token for a short-lived access token."""
        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", self.client_id),
                ("GOOGLE_CLIENT_SECRET", self.client_secret),
                ("GOOGLE_REFRESH_TOKEN", self.refresh_token),
            )
            if not value
        ]
        if missing:
            raise CalendarAuthError(f"Missing Google OAuth credentials: {', '.join(missing)}", status=503)

        resp = await self._send(
            "POST",
            self.token_url,
            "token refresh",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if resp.status_code != 200:
            logger.error("Token refresh failed (%s): %s", resp.status_code, resp.text)
            raise _token_error(resp)

        token = _json(resp, "refresh token").get("access_token")
        if not token:
            raise CalendarAuthError("No access token in refresh response")
        logger.debug("Google token refreshed")
        return token

    async def free_busy_query(self, time_min: datetime, time_max: datetime) -> list[BusyInterval]:
        """Busy intervals on the calendar between time_min and time_max."""
        operation = "check calendar availability"
        body = {
            "timeMin": event_time(time_min, self.time_zone)["dateTime"],
            "timeMax": event_time(time_max, self.time_zone)["dateTime"],
            "timeZone": self.time_zone,
            "items": [{"id": self.calendar_id}],
        }
        resp = await self._send("POST", f"{self.api_base}/freeBusy", operation, headers=await self._headers(), json=body)
        _raise_for_status(resp, operation)

        calendar = (_json(resp, operation).get("calendars") or {}).get(self.calendar_id) or {}
        if calendar.get("errors"):
            logger.error("Free/busy errors for %s: %s", self.calendar_id, calendar["errors"])
            raise CalendarError(f"Failed to {operation}: {calendar['errors'][0].get('reason', 'unknown')}")
        try:
            return [BusyInterval(start=b["start"], end=b["end"]) for b in calendar.get("busy", [])]
        except (KeyError, TypeError, ValidationError) as exc:
            raise CalendarError(f"Failed to {operation}: malformed response body") from exc

    async def create_event(
        self,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_email: str | None = None,
        *,
        event_id: str | None = None,
        with_meet_link: bool = True,
        private_properties: dict[str, str] | None = None,
    ) -> CreatedEvent:
        """Insert an event, optionally with the patient as attendee and a Meet link."""
        operation = "create calendar event"
        event: dict[str, Any] = {
            "summary": summary,
            "description": description,
            "start": event_time(start, self.time_zone),
            "end": event_time(end, self.time_zone),
        }
        if event_id:
            event["id"] = event_id
        if attendee_email:
            event["attendees"] = [{"email": attendee_email, "responseStatus": "needsAction"}]
        if with_meet_link:
            event["conferenceData"] = {
                "createRequest": {
                    "requestId": f"meet-{event_id or uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        if private_properties:
            event["extendedProperties"] = {"private": private_properties}

        params = {"sendUpdates": "all", "conferenceDataVersion": 1 if with_meet_link else 0}
        resp = await self._send(
            "POST", self._events_url, operation, headers=await self._headers(), params=params, json=event
        )
        _raise_for_status(resp, operation)

        created = _json(resp, operation)
        try:
            return CreatedEvent(event_id=created["id"], meet_link=extract_meet_link(created), raw=created)
        except (KeyError, TypeError, AttributeError) as exc:
            raise CalendarError(f"Failed to {operation}: malformed response body") from exc

    async def patch_event(self, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        operation = "update calendar event"
        resp = await self._send(
            "PATCH",
            self._event_url(event_id),
            operation,
            headers=await self._headers(),
            params={"sendUpdates": "all", "conferenceDataVersion": 1},
            json=body,
        )
        _raise_for_status(resp, operation)
        return _json(resp, operation)

    async def get_event(self, event_id: str) -> dict[str, Any] | None:
        """Return the raw event, or None if the calendar has no such event."""
        operation = "get calendar event"
        resp = await self._send("GET", self._event_url(event_id), operation, headers=await self._headers())
        if resp.status_code in (404, 410):
            return None
        _raise_for_status(resp, operation)
        return _json(resp, operation)

    async def list_events(
        self, time_min: datetime, time_max: datetime, private_filter: dict[str, str] | None = None
    ) -> list[dict[str, Any]]:
        operation = "list calendar events"
        params: dict[str, Any] = {
            "timeMin": event_time(time_min, self.time_zone)["dateTime"],
            "timeMax": event_time(time_max, self.time_zone)["dateTime"],
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250,
        }
        if private_filter:
            params["privateExtendedProperty"] = [f"{k}={v}" for k, v in private_filter.items()]

        headers = await self._headers()
        items: list[dict[str, Any]] = []
        while True:
            resp = await self._send("GET", self._events_url, operation, headers=headers, params=params)
            _raise_for_status(resp, operation)
            page = _json(resp, operation)
            items.extend(page.get("items", []))
            if not page.get("nextPageToken"):
                return items
            params["pageToken"] = page["nextPageToken"]

    async def delete_event(self, event_id: str) -> None:
        operation = "delete calendar event"
        resp = await self._send(
            "DELETE", self._event_url(event_id), operation, headers=await self._headers(), params={"sendUpdates": "all"}
        )
        _raise_for_status(resp, operation)
