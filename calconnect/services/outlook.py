from __future__ import annotations
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import urlencode

import requests

from calconnect.config import ProviderCredentials
from calconnect.errors import AuthorizationError, EventCreationError, RemoteAPIError
from calconnect.models import AvailableCalendars, EventCreationResult, EventSlot, ProviderToken
from calconnect.services.base import EVENT_CREATED_MESSAGE, CalendarAdapter
from calconnect.utils import adjust_time_by_timezone, normalize_graph_datetime

log = logging.getLogger("calconnect.outlook")

AUTHORITY = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
GRAPH_URL = "https://graph.microsoft.com/v1.0"
SCOPES = "offline_access User.Read Calendars.ReadWrite"


class OutlookCalendarAdapter(CalendarAdapter):
    provider = AvailableCalendars.outlook.value
    default_calendar_id = "me"

    def __init__(self, credentials: ProviderCredentials, store, *args,
                 session: Optional[requests.Session] = None, **kwargs):
        super().__init__(credentials, store, *args, **kwargs)
        self.http = session or requests.Session()

    @property
    def token_url(self) -> str:
        return AUTHORITY.format(tenant=self.credentials.tenant) + "/token"

    def connect(self) -> str:
        params = {
            "client_id": self.credentials.client_id,
            "response_type": "code",
            "redirect_uri": self.credentials.redirect_uri,
            "response_mode": "query",
            "scope": SCOPES,
            "state": secrets.token_urlsafe(16),
        }
        return AUTHORITY.format(tenant=self.credentials.tenant) + "/authorize?" + urlencode(params)

    def _post_token(self, data: dict) -> requests.Response:
        form = {
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "scope": SCOPES,
            **data,
        }
        return self.http.post(
            self.token_url, data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.credentials.http_timeout,
        )

    @staticmethod
    def _token_from(data: dict, fallback_scope: str = SCOPES) -> ProviderToken:
        return ProviderToken(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope") or fallback_scope,
            token_type=data.get("token_type", "Bearer"),
            expiry_date=datetime.now(timezone.utc) + timedelta(seconds=int(data.get("expires_in", 3600))),
            id_token=data.get("id_token"),
        )

    def access(self, code: str, user_id: str) -> dict:
        try:
            resp = self._post_token({
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.credentials.redirect_uri,
            })
        except requests.RequestException as e:
            raise AuthorizationError(f"Outlook token exchange failed: {e}") from e
        if not resp.ok:
            raise AuthorizationError(f"Outlook token exchange failed. Status: {resp.status_code}")
        data = resp.json()
        if not data.get("access_token"):
            raise AuthorizationError("Outlook token response has no access token")

        self.store.upsert_token(user_id, self.provider, self._token_from(data))
        log.info("Stored Outlook tokens for user %s", user_id)
        return data

    def _graph(self, method: str, url: str, token: ProviderToken, **kwargs) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {token.access_token}",
            "Prefer": 'outlook.timezone="UTC"',
            **kwargs.pop("headers", {}),
        }
        return self.http.request(method, url, headers=headers, timeout=self.credentials.http_timeout, **kwargs)

    def _calendar_path(self, calendar_id: Optional[str]) -> str:
        if not calendar_id or calendar_id == self.default_calendar_id:
            return f"{GRAPH_URL}/me"
        return f"{GRAPH_URL}/me/calendars/{calendar_id}"

    def get_events_in_range(self, user_id: str, start_date: str, end_date: str,
                            timezone: str = "UTC", calendar_id: Optional[str] = None) -> List[EventSlot]:
        token = self._load_token(user_id)
        # calendarView expands recurring series into single occurrences
        url = self._calendar_path(calendar_id) + "/calendarView"
        params = {
            "startDateTime": adjust_time_by_timezone(start_date, timezone),
            "endDateTime": adjust_time_by_timezone(end_date, timezone),
            "$orderby": "start/dateTime",
            "$select": "subject,bodyPreview,start,end,location",
        }

        items = []
        try:
            while url:
                resp = self._graph("GET", url, token, params=params)
                if not resp.ok:
                    raise RemoteAPIError(f"Outlook calendarView failed: {resp.text}", status_code=resp.status_code)
                data = resp.json()
                items.extend(data.get("value", []))
                # nextLink already carries the query string
                url, params = data.get("@odata.nextLink"), None
        except requests.RequestException as e:
            raise RemoteAPIError(f"Outlook calendarView failed: {e}") from e

        return [
            EventSlot(
                start_date=normalize_graph_datetime(ev["start"]["dateTime"]),
                end_date=normalize_graph_datetime(ev["end"]["dateTime"]),
                summary=ev.get("subject"),
                description=ev.get("bodyPreview") or "",
                location=(ev.get("location") or {}).get("displayName") or "",
            )
            for ev in items
        ]

    def create_event(self, user_id: str, summary: str, start: str, end: str, timezone: str,
                     description: Optional[str] = None,
                     attendees: Optional[List[Dict[str, str]]] = None,
                     calendar_id: Optional[str] = None) -> EventCreationResult:
        token = self._load_token(user_id)
        body = {
            "subject": summary,
            "body": {"contentType": "HTML", "content": description or ""},
            "start": {"dateTime": start, "timeZone": timezone},
            "end":   {"dateTime": end,   "timeZone": timezone},
            "attendees": [
                {"emailAddress": {"address": a["email"], "name": a.get("name", "")}, "type": "required"}
                for a in (attendees or [])
            ],
        }
        try:
            resp = self._graph("POST", self._calendar_path(calendar_id) + "/events", token, json=body)
        except requests.RequestException as e:
            raise EventCreationError(f"Failed to save the event in Outlook Calendar: {e}") from e
        if not resp.ok:
            raise EventCreationError(f"Failed to save the event in Outlook Calendar: {resp.text}",
                                     status_code=resp.status_code)

        ev = resp.json() or {}
        if not ev.get("id") or not ev.get("webLink"):
            raise EventCreationError("Outlook accepted the event but returned no id or link")
        log.info("Event %s created for user %s", ev["id"], user_id)
        return EventCreationResult(message=EVENT_CREATED_MESSAGE, event_id=ev["id"], event_link=ev["webLink"])

    def _request_refresh(self, token: ProviderToken) -> ProviderToken:
        try:
            resp = self._post_token({"grant_type": "refresh_token", "refresh_token": token.refresh_token})
        except requests.RequestException as e:
            raise RemoteAPIError(f"Outlook token refresh failed: {e}") from e
        if not resp.ok:
            raise RemoteAPIError(f"Failed to refresh access token: {resp.text}", status_code=resp.status_code)
        data = resp.json()
        if not data.get("access_token"):
            raise RemoteAPIError("Outlook refresh response has no access token", status_code=resp.status_code)
        return self._token_from(data, fallback_scope=token.scope)
