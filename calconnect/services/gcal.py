from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from calconnect.errors import AuthorizationError, EventCreationError, RemoteAPIError
from calconnect.models import AvailableCalendars, EventCreationResult, EventSlot, ProviderToken
from calconnect.services.base import EVENT_CREATED_MESSAGE, CalendarAdapter
from calconnect.utils import adjust_time_by_timezone, to_utc_iso

log = logging.getLogger("calconnect.gcal")

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
DEFAULT_REMINDERS = {
    "useDefault": False,
    "overrides": [
        {"method": "email", "minutes": 24 * 60},
        {"method": "popup", "minutes": 10},
    ],
}


def _expiry_from(token: dict) -> datetime:
    if token.get("expires_at"):
        return datetime.fromtimestamp(float(token["expires_at"]), tz=timezone.utc)
    return datetime.now(timezone.utc) + timedelta(seconds=int(token.get("expires_in", 3600)))


def _event_time(block: Optional[dict]) -> str:
    block = block or {}
    return to_utc_iso(block.get("dateTime") or block["date"])


class GoogleCalendarAdapter(CalendarAdapter):
    provider = AvailableCalendars.google.value
    default_calendar_id = "primary"

    def _flow(self) -> Flow:
        client_config = {
            "web": {
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.credentials.redirect_uri],
            }
        }
        # code exchange happens on a different Flow instance, so no PKCE verifier
        return Flow.from_client_config(
            client_config, SCOPES,
            redirect_uri=self.credentials.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def connect(self) -> str:
        auth_url, _state = self._flow().authorization_url(access_type="offline", prompt="consent")
        log.debug("Google authorization url built")
        return auth_url

    def access(self, code: str, user_id: str) -> dict:
        try:
            token = self._flow().fetch_token(code=code)
        except Exception as e:
            raise AuthorizationError(f"Google rejected the authorization code: {e}") from e
        if not token or not token.get("access_token"):
            raise AuthorizationError("Google token response has no access token")

        scope = token.get("scope") or ""
        if isinstance(scope, (list, tuple)):
            scope = " ".join(scope)
        self.store.upsert_token(user_id, self.provider, ProviderToken(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            scope=scope,
            token_type=token.get("token_type", "Bearer"),
            expiry_date=_expiry_from(token),
            id_token=token.get("id_token"),
        ))
        log.info("Stored Google tokens for user %s", user_id)
        return dict(token)

    def _service(self, token: ProviderToken):
        # access token only: an expired token must fail instead of refreshing silently
        creds = Credentials(token=token.access_token)
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def get_events_in_range(self, user_id: str, start_date: str, end_date: str,
                            timezone: str = "UTC", calendar_id: Optional[str] = None) -> List[EventSlot]:
        token = self._load_token(user_id)
        service = self._service(token)
        time_min = adjust_time_by_timezone(start_date, timezone)
        time_max = adjust_time_by_timezone(end_date, timezone)

        items, page_token = [], None
        try:
            while True:
                resp = service.events().list(
                    calendarId=calendar_id or self.default_calendar_id,
                    timeMin=time_min,
                    timeMax=time_max,
                    singleEvents=True,
                    orderBy="startTime",
                    pageToken=page_token,
                ).execute()
                items.extend(resp.get("items", []))
                page_token = resp.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            raise RemoteAPIError(f"Google events.list failed: {e}", status_code=e.resp.status) from e

        return [
            EventSlot(
                start_date=_event_time(ev.get("start")),
                end_date=_event_time(ev.get("end")),
                summary=ev.get("summary"),
                description=ev.get("description") or "",
                location=ev.get("location") or "",
            )
            for ev in items
        ]

    def create_event(self, user_id: str, summary: str, start: str, end: str, timezone: str,
                     description: Optional[str] = None,
                     attendees: Optional[List[Dict[str, str]]] = None,
                     calendar_id: Optional[str] = None) -> EventCreationResult:
        token = self._load_token(user_id)
        service = self._service(token)
        body = {
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": start, "timeZone": timezone},
            "end":   {"dateTime": end,   "timeZone": timezone},
            "attendees": attendees or [],
            "reminders": DEFAULT_REMINDERS,
        }
        try:
            ev = service.events().insert(calendarId=calendar_id or self.default_calendar_id, body=body).execute()
        except HttpError as e:
            raise EventCreationError(f"Failed to save the event in Google Calendar: {e}",
                                     status_code=e.resp.status) from e

        if not ev or not ev.get("id") or not ev.get("htmlLink"):
            raise EventCreationError("Google Calendar accepted the event but returned no id or link")
        log.info("Event %s created for user %s", ev["id"], user_id)
        return EventCreationResult(message=EVENT_CREATED_MESSAGE, event_id=ev["id"], event_link=ev["htmlLink"])

    def _request_refresh(self, token: ProviderToken) -> ProviderToken:
        creds = Credentials(
            None,
            refresh_token=token.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.credentials.client_id,
            client_secret=self.credentials.client_secret,
        )
        try:
            creds.refresh(Request())
        except (RefreshError, TransportError) as e:
            raise RemoteAPIError(f"Google token refresh failed: {e}") from e

        expiry = creds.expiry
        if expiry is None:
            expiry = datetime.now(timezone.utc) + timedelta(hours=1)
        elif expiry.tzinfo is None:
            # google-auth keeps expiry as naive UTC
            expiry = expiry.replace(tzinfo=timezone.utc)
        return ProviderToken(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            scope=token.scope,
            token_type=token.token_type,
            expiry_date=expiry,
            id_token=getattr(creds, "id_token", None),
        )
