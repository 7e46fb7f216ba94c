"""Shared fixtures: in-memory credential stores, adapters with mocked transports."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from calconnect.config import ProviderCredentials
from calconnect.services.gcal import GoogleCalendarAdapter
from calconnect.services.outlook import OutlookCalendarAdapter
from calconnect.services.storage import CredentialStore


@pytest.fixture
def store():
    s = CredentialStore("sqlite://")
    yield s
    s.close()


@pytest.fixture
def credentials() -> ProviderCredentials:
    return ProviderCredentials(
        client_id="client-123",
        client_secret="secret-456",
        redirect_uri="http://localhost:8000/auth/callback",
    )


@pytest.fixture
def google(credentials, store) -> GoogleCalendarAdapter:
    adapter = GoogleCalendarAdapter(credentials, store, "55 minute")
    yield adapter
    adapter.stop_job()


@pytest.fixture
def http_session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def outlook(credentials, store, http_session) -> OutlookCalendarAdapter:
    adapter = OutlookCalendarAdapter(credentials, store, "55 minute", session=http_session)
    yield adapter
    adapter.stop_job()
