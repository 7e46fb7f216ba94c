from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional

from apscheduler.schedulers.base import BaseScheduler

from calconnect.config import DEFAULT_REFRESH_INTERVAL, ProviderCredentials
from calconnect.errors import MissingProviderTokenError, MissingRefreshTokenError, NotRegisteredError
from calconnect.models import EventCreationResult, EventSlot, ProviderToken, TokenPair
from calconnect.scheduler import TokenRefreshJob
from calconnect.services.storage import CredentialStore

log = logging.getLogger("calconnect.adapters")

EVENT_CREATED_MESSAGE = "Event successfully booked."


class CalendarAdapter(ABC):
    """Capability set every calendar provider implements.

    The adapter owns its token refresh job; the credential store is passed in
    and never opened or closed here.
    """

    provider: str = ""
    default_calendar_id: str = ""

    def __init__(self, credentials: ProviderCredentials, store: CredentialStore,
                 refresh_interval: str = DEFAULT_REFRESH_INTERVAL,
                 scheduler: Optional[BaseScheduler] = None):
        self.credentials = credentials
        self.store = store
        self.job = TokenRefreshJob(self, refresh_interval, scheduler=scheduler)

    @property
    def refresh_buffer(self) -> timedelta:
        # anything that would expire before the next firing is refreshed now
        return timedelta(milliseconds=self.job.interval_ms)

    @abstractmethod
    def connect(self) -> str:
        """Build the provider's OAuth2 authorize URL."""

    @abstractmethod
    def access(self, code: str, user_id: str) -> dict:
        """Exchange an authorization code and store the resulting tokens for ``user_id``."""

    @abstractmethod
    def get_events_in_range(self, user_id: str, start_date: str, end_date: str,
                            timezone: str = "UTC", calendar_id: Optional[str] = None) -> List[EventSlot]:
        ...

    @abstractmethod
    def create_event(self, user_id: str, summary: str, start: str, end: str, timezone: str,
                     description: Optional[str] = None,
                     attendees: Optional[List[Dict[str, str]]] = None,
                     calendar_id: Optional[str] = None) -> EventCreationResult:
        ...

    @abstractmethod
    def _request_refresh(self, token: ProviderToken) -> ProviderToken:
        """Call the provider's refresh endpoint. ``refresh_token`` may be None if the provider omitted it."""

    def _load_token(self, user_id: str) -> ProviderToken:
        record = self.store.get(user_id)
        if record is None:
            raise NotRegisteredError(user_id)
        token = record.token_for(self.provider)
        if token is None:
            raise MissingProviderTokenError(user_id, self.provider)
        return token

    def refresh_access_token(self, user_id: str) -> TokenPair:
        token = self._load_token(user_id)
        if not token.refresh_token:
            raise MissingRefreshTokenError(user_id, self.provider)

        if not token.expires_within(self.refresh_buffer):
            log.debug("Token is still valid for user %s (%s)", user_id, self.provider)
            return TokenPair(token.access_token, token.refresh_token)

        log.info("Token near expiry, refreshing access token for user %s (%s)", user_id, self.provider)
        fresh = self._request_refresh(token)
        if not fresh.refresh_token:
            fresh.refresh_token = token.refresh_token
        if not fresh.id_token:
            fresh.id_token = token.id_token
        self.store.upsert_token(user_id, self.provider, fresh)
        return TokenPair(fresh.access_token, fresh.refresh_token)

    def start_job(self) -> None:
        self.job.start()

    def stop_job(self) -> None:
        self.job.stop()
