# app/services/calendar_client.py
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx

from app.config import get_settings
from app.core.errors import CalendarError
from app.models.host import Host
from app.services.intervals import Interval, to_naive_utc


def _iso(dt: datetime) -> str:
    return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


def _parse(value: str) -> datetime:
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


class CalendarClient:
    """
    Thin wrapper around the Google Calendar REST API.

    - uses each host's stored OAuth tokens, refreshing once on a 401
    - every failure surfaces as CalendarError so callers can log and move on
    - mock in tests by overriding `get_calendar_client` with a fake
    """

    def __init__(
        self,
        api_url: str,
        token_url: str,
        client_id: Optional[str],
        client_secret: Optional[str],
        timeout: float = 10.0,
        http: Optional[httpx.Client] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = http or httpx.Client(timeout=timeout)

    def _refresh_access_token(self, host: Host) -> str:
        if not (self._client_id and self._client_secret and host.google_refresh_token):
            raise CalendarError("Google Calendar refresh not configured")

        response = self._http.post(
            self._token_url,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": host.google_refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            raise CalendarError(f"Token refresh failed: {response.status_code}")

        token = response.json().get("access_token")
        if not token:
            raise CalendarError("No access token in refresh response")

        host.google_access_token = token
        return token

    def _request(self, host: Host, method: str, path: str, **kwargs) -> Dict:
        if not host.has_calendar:
            raise CalendarError(f"Host {host.id} has no calendar connected")

        url = f"{self._api_url}{path}"
        try:
            response = self._http.request(
                method,
                url,
                headers={"Authorization": f"Bearer {host.google_access_token}"},
                **kwargs,
            )
            if response.status_code == 401:
                token = self._refresh_access_token(host)
                response = self._http.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    **kwargs,
                )
        except httpx.HTTPError as e:
            raise CalendarError(f"Calendar request failed: {e}") from e

        if response.status_code >= 400:
            raise CalendarError(
                f"Calendar API {method} {path} returned {response.status_code}"
            )
        return response.json() if response.content else {}

    def free_busy(self, host: Host, start: datetime, end: datetime) -> List[Interval]:
        """Busy intervals on the host's primary calendar in `[start, end)`."""
        data = self._request(
            host,
            "POST",
            "/freeBusy",
            json={
                "timeMin": _iso(start),
                "timeMax": _iso(end),
                "items": [{"id": "primary"}],
            },
        )
        busy = data.get("calendars", {}).get("primary", {}).get("busy", [])

        out: List[Interval] = []
        for block in busy:
            block_start, block_end = _parse(block["start"]), _parse(block["end"])
            if block_end > block_start:
                out.append(Interval(block_start, block_end))
        return out

    def create_event(
        self,
        host: Host,
        *,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_emails: Optional[List[str]] = None,
    ) -> str:
        """Create an event on the host's primary calendar and return its id."""
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": _iso(start), "timeZone": "UTC"},
            "end": {"dateTime": _iso(end), "timeZone": "UTC"},
            "attendees": [{"email": e} for e in (attendee_emails or [])],
        }
        data = self._request(
            host,
            "POST",
            "/calendars/primary/events",
            params={"sendUpdates": "all"},
            json=body,
        )
        event_id = data.get("id")
        if not event_id:
            raise CalendarError("Calendar API returned no event id")
        return event_id

    def add_attendee(self, host: Host, event_id: str, email: str) -> None:
        path = f"/calendars/primary/events/{event_id}"
        current = self._request(host, "GET", path)
        attendees = current.get("attendees", [])
        if any(a.get("email", "").lower() == email.lower() for a in attendees):
            return
        attendees.append({"email": email})
        self._request(
            host,
            "PATCH",
            path,
            params={"sendUpdates": "all"},
            json={"attendees": attendees},
        )


def get_calendar_client() -> CalendarClient:
    """FastAPI dependency to get a configured CalendarClient."""
    settings = get_settings()
    return CalendarClient(
        api_url=settings.GOOGLE_CALENDAR_API_URL,
        token_url=settings.GOOGLE_TOKEN_URL,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        timeout=settings.CALENDAR_TIMEOUT_SECONDS,
    )
