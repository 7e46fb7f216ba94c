from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from apscheduler.schedulers.base import BaseScheduler

from calconnect.config import DEFAULT_DATABASE_URL, DEFAULT_REFRESH_INTERVAL, ProviderCredentials
from calconnect.errors import UnsupportedProviderError
from calconnect.models import AvailableCalendars, EventCreationResult, EventSlot, TokenPair
from calconnect.services.base import CalendarAdapter
from calconnect.services.gcal import GoogleCalendarAdapter
from calconnect.services.outlook import OutlookCalendarAdapter
from calconnect.services.storage import CredentialStore

log = logging.getLogger("calconnect.service")

ADAPTERS: Dict[str, Type[CalendarAdapter]] = {
    AvailableCalendars.google.value: GoogleCalendarAdapter,
    AvailableCalendars.outlook.value: OutlookCalendarAdapter,
}


class CalendarService:
    """Provider-agnostic entry point; picks one adapter up front and forwards to it.

    ``store`` wins over ``connection_string``. A store opened here from the
    connection string is closed by :meth:`close`; an injected one is not.
    """

    def __init__(self, provider: Union[str, AvailableCalendars],
                 credentials: Union[ProviderCredentials, Mapping[str, Any]],
                 connection_string: Optional[str] = None, *,
                 store: Optional[CredentialStore] = None,
                 refresh_interval: str = DEFAULT_REFRESH_INTERVAL,
                 scheduler: Optional[BaseScheduler] = None):
        tag = provider.value if isinstance(provider, AvailableCalendars) else str(provider)
        adapter_cls = ADAPTERS.get(tag)
        if adapter_cls is None:
            raise UnsupportedProviderError(tag)
        if not isinstance(credentials, ProviderCredentials):
            credentials = ProviderCredentials.from_mapping(credentials)

        self._owns_store = store is None
        self.store = store or CredentialStore(connection_string or DEFAULT_DATABASE_URL)
        self.adapter: CalendarAdapter = adapter_cls(
            credentials, self.store, refresh_interval, scheduler=scheduler,
        )
        log.info("Calendar service ready for provider %s", tag)

    @property
    def provider(self) -> str:
        return self.adapter.provider

    def connect(self) -> str:
        return self.adapter.connect()

    def access(self, code: str, user_id: str) -> dict:
        return self.adapter.access(code, user_id)

    def get_events_in_range(self, user_id: str, start_date: str, end_date: str,
                            timezone: str = "UTC", calendar_id: Optional[str] = None) -> List[EventSlot]:
        return self.adapter.get_events_in_range(user_id, start_date, end_date, timezone, calendar_id)

    def create_event(self, user_id: str, summary: str, start: str, end: str, timezone: str,
                     description: Optional[str] = None,
                     attendees: Optional[List[Dict[str, str]]] = None,
                     calendar_id: Optional[str] = None) -> EventCreationResult:
        return self.adapter.create_event(user_id, summary, start, end, timezone,
                                         description, attendees, calendar_id)

    def refresh_access_token(self, user_id: str) -> TokenPair:
        return self.adapter.refresh_access_token(user_id)

    def start_job(self) -> None:
        self.adapter.start_job()

    def stop_job(self) -> None:
        self.adapter.stop_job()

    def close(self) -> None:
        self.adapter.stop_job()
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> "CalendarService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
