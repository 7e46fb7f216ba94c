"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import base64
import json

import pytest

from calconnect.config import DEFAULT_DATABASE_URL, ProviderCredentials, load_config

pytestmark = pytest.mark.unit

_VARS = (
    "CALENDAR_PROVIDER", "CALENDAR_CLIENT_ID", "CALENDAR_CLIENT_SECRET", "CALENDAR_REDIRECT_URI",
    "GOOGLE_OAUTH_CLIENT_B64", "OUTLOOK_TENANT", "DATABASE_URL", "TOKEN_REFRESH_INTERVAL",
    "CALENDAR_HTTP_TIMEOUT", "AUTO_START_REFRESH_JOB", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = load_config()
    assert cfg.provider == "google"
    assert cfg.database_url == DEFAULT_DATABASE_URL
    assert cfg.refresh_interval == "55 minute"
    assert cfg.auto_start_job is True
    assert cfg.log_level == "INFO"
    assert cfg.credentials.tenant == "common"


def test_outlook_from_env(monkeypatch):
    monkeypatch.setenv("CALENDAR_PROVIDER", "Outlook")
    monkeypatch.setenv("CALENDAR_CLIENT_ID", "ms-id")
    monkeypatch.setenv("CALENDAR_CLIENT_SECRET", "ms-secret")
    monkeypatch.setenv("CALENDAR_REDIRECT_URI", "http://localhost/cb")
    monkeypatch.setenv("OUTLOOK_TENANT", "consumers")
    monkeypatch.setenv("AUTO_START_REFRESH_JOB", "no")
    monkeypatch.setenv("TOKEN_REFRESH_INTERVAL", "10 minutes")

    cfg = load_config()
    assert cfg.provider == "outlook"
    assert cfg.credentials == ProviderCredentials("ms-id", "ms-secret", "http://localhost/cb", tenant="consumers")
    assert cfg.auto_start_job is False
    assert cfg.refresh_interval == "10 minutes"


def test_google_client_secrets_b64(monkeypatch):
    client = {"web": {"client_id": "g-id", "client_secret": "g-secret", "redirect_uris": ["http://g/cb"]}}
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_B64", base64.b64encode(json.dumps(client).encode()).decode())

    creds = load_config().credentials
    assert (creds.client_id, creds.client_secret, creds.redirect_uri) == ("g-id", "g-secret", "http://g/cb")


def test_explicit_env_beats_client_secrets(monkeypatch):
    client = {"installed": {"client_id": "g-id", "client_secret": "g-secret"}}
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_B64", base64.b64encode(json.dumps(client).encode()).decode())
    monkeypatch.setenv("CALENDAR_CLIENT_ID", "override")

    creds = load_config().credentials
    assert creds.client_id == "override"
    assert creds.client_secret == "g-secret"
    assert creds.redirect_uri == ""
