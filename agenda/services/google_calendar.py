"""
Google Calendar collaborator.

Supplies busy intervals for slot computation, mirrors reservations as
calendar events and lists events for the pull sync. Every failure surfaces
as ``CollaboratorUnavailable``; callers decide whether it is fatal.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pendulum

from agenda.core import config
from agenda.scheduling.errors import CollaboratorUnavailable
from agenda.scheduling.intervals import utc_instant
from agenda.scheduling.slots import EXTERNAL_CALENDAR, BusyInterval

logger = logging.getLogger(__name__)


def _isoformat(value: datetime) -> str:
    return utc_instant(value).to_iso8601_string()


class GoogleCalendarClient:
    def __init__(
        self,
        base_url: str = config.GOOGLE_CALENDAR_API_URL,
        calendar_id: str = config.GOOGLE_CALENDAR_ID,
        timeout: float = config.CALENDAR_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, path: str, access_token: str, **kwargs) -> httpx.Response:
        if not access_token:
            raise CollaboratorUnavailable("Calendar not connected")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={"Authorization": f"Bearer {access_token}"},
                    **kwargs,
                )
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailable(f"Calendar request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CollaboratorUnavailable(
                f"Calendar responded {response.status_code} to {method} {path}",
                status_code=response.status_code,
            )
        return response

    def fetch_busy(self, access_token: str, time_min: datetime, time_max: datetime) -> List[BusyInterval]:
        response = self._request(
            "POST",
            "/freeBusy",
            access_token,
            json={
                "timeMin": _isoformat(time_min),
                "timeMax": _isoformat(time_max),
                "items": [{"id": self.calendar_id}],
            },
        )
        calendars = response.json().get("calendars", {})
        busy = calendars.get(self.calendar_id, {}).get("busy", [])

        intervals: List[BusyInterval] = []
        for entry in busy:
            start = pendulum.parse(entry["start"])
            end = pendulum.parse(entry["end"])
            if start >= end:
                logger.warning("Ignoring empty busy block %s - %s", entry["start"], entry["end"])
                continue
            intervals.append(BusyInterval(start=utc_instant(start), end=utc_instant(end), source=EXTERNAL_CALENDAR))
        return intervals

    def list_events(self, access_token: str, time_min: datetime, time_max: datetime) -> List[Dict[str, Any]]:
        events: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {
            "timeMin": _isoformat(time_min),
            "timeMax": _isoformat(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        while True:
            response = self._request(
                "GET",
                f"/calendars/{self.calendar_id}/events",
                access_token,
                params=params,
            )
            payload = response.json()
            events.extend(payload.get("items", []))
            page_token = payload.get("nextPageToken")
            if not page_token:
                return events
            params["pageToken"] = page_token

    def create_event(
        self,
        access_token: str,
        summary: str,
        start: datetime,
        end: datetime,
        description: Optional[str] = None,
        attendee_email: Optional[str] = None,
    ) -> str:
        body: Dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": _isoformat(start)},
            "end": {"dateTime": _isoformat(end)},
        }
        if description:
            body["description"] = description
        if attendee_email:
            body["attendees"] = [{"email": attendee_email}]

        response = self._request("POST", f"/calendars/{self.calendar_id}/events", access_token, json=body)
        event_id = response.json().get("id")
        if not event_id:
            raise CollaboratorUnavailable("Calendar did not return an event id")
        return event_id

    def update_event(
        self,
        access_token: str,
        event_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> None:
        body: Dict[str, Any] = {}
        if start is not None:
            body["start"] = {"dateTime": _isoformat(start)}
        if end is not None:
            body["end"] = {"dateTime": _isoformat(end)}
        if description:
            body["description"] = description
        if not body:
            return

        self._request("PATCH", f"/calendars/{self.calendar_id}/events/{event_id}", access_token, json=body)

    def delete_event(self, access_token: str, event_id: str) -> None:
        try:
            self._request("DELETE", f"/calendars/{self.calendar_id}/events/{event_id}", access_token)
        except CollaboratorUnavailable as exc:
            if exc.status_code in (404, 410):
                logger.info("Calendar event %s was already removed", event_id)
                return
            raise


def get_calendar_client() -> GoogleCalendarClient:
    return GoogleCalendarClient()
