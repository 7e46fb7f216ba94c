from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional


class AvailableCalendars(str, Enum):
    google = "google"
    outlook = "outlook"


@dataclass
class ProviderToken:
    access_token: str
    refresh_token: Optional[str]
    scope: str
    token_type: str
    expiry_date: datetime
    id_token: Optional[str] = None

    def expires_within(self, buffer: timedelta, now: datetime | None = None) -> bool:
        """True once ``now`` has reached ``expiry_date - buffer``."""
        now = now or datetime.now(timezone.utc)
        return now >= self.expiry_date - buffer


@dataclass
class CredentialRecord:
    user_id: str
    tokens: Dict[str, ProviderToken] = field(default_factory=dict)
    legacy: Optional[ProviderToken] = None
    updated_at: Optional[datetime] = None

    def token_for(self, provider: str) -> ProviderToken | None:
        # Records written before per-provider blocks existed hold a flat Google token.
        token = self.tokens.get(provider)
        if token is None and provider == AvailableCalendars.google.value:
            return self.legacy
        return token


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str]

    def to_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@dataclass
class EventSlot:
    start_date: str
    end_date: str
    summary: Optional[str] = None
    description: str = ""
    location: str = ""

    def to_dict(self) -> dict:
        return {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "summary": self.summary,
            "description": self.description,
            "location": self.location,
        }


@dataclass
class EventCreationResult:
    message: str
    event_id: str
    event_link: str

    def to_dict(self) -> dict:
        return {"message": self.message, "eventId": self.event_id, "eventLink": self.event_link}
