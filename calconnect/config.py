from __future__ import annotations
import os
import base64, json
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_DATABASE_URL = "sqlite:///calendar_tokens.db"
DEFAULT_REFRESH_INTERVAL = "55 minute"


@dataclass(frozen=True)
class ProviderCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str
    tenant: str = "common"
    http_timeout: float = 30.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProviderCredentials":
        """Accept both ``client_id`` and ``clientId`` style keys."""
        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            client_id=pick("client_id", "clientId", ""),
            client_secret=pick("client_secret", "clientSecret", ""),
            redirect_uri=pick("redirect_uri", "redirectUri", ""),
            tenant=pick("tenant", "tenant", "common"),
            http_timeout=float(pick("http_timeout", "httpTimeout", 30.0)),
        )


@dataclass(frozen=True)
class Config:
    provider: str
    credentials: ProviderCredentials
    database_url: str
    refresh_interval: str
    auto_start_job: bool
    log_level: str


def _parse_bool(s: str) -> bool:
    return s.strip().lower() in ("1", "true", "yes", "on")


def _google_client_from_b64(client_b64: str) -> dict:
    # client_secret.json as downloaded from the Google console: {"web": {...}} or {"installed": {...}}
    data = json.loads(base64.b64decode(client_b64))
    return data.get("web") or data.get("installed") or data


def load_config() -> Config:
    provider = os.getenv("CALENDAR_PROVIDER", "google").strip().lower()
    client_id = os.getenv("CALENDAR_CLIENT_ID", "")
    client_secret = os.getenv("CALENDAR_CLIENT_SECRET", "")
    redirect_uri = os.getenv("CALENDAR_REDIRECT_URI", "")

    client_b64 = os.getenv("GOOGLE_OAUTH_CLIENT_B64")
    if provider == "google" and client_b64:
        client = _google_client_from_b64(client_b64)
        client_id = client_id or client.get("client_id", "")
        client_secret = client_secret or client.get("client_secret", "")
        redirect_uris = client.get("redirect_uris") or [""]
        redirect_uri = redirect_uri or redirect_uris[0]

    return Config(
        provider=provider,
        credentials=ProviderCredentials(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            tenant=os.getenv("OUTLOOK_TENANT", "common"),
            http_timeout=float(os.getenv("CALENDAR_HTTP_TIMEOUT", "30")),
        ),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        refresh_interval=os.getenv("TOKEN_REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL),
        auto_start_job=_parse_bool(os.getenv("AUTO_START_REFRESH_JOB", "true")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
