"""Unit tests for provider selection and delegation in CalendarService."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from calconnect.config import ProviderCredentials
from calconnect.errors import InvalidIntervalError, NotRegisteredError, UnsupportedProviderError
from calconnect.models import AvailableCalendars
from calconnect.services.calendar import CalendarService
from calconnect.services.gcal import GoogleCalendarAdapter
from calconnect.services.outlook import OutlookCalendarAdapter

pytestmark = pytest.mark.unit


class TestConstruction:
    @pytest.mark.parametrize(
        "tag,adapter_cls",
        [
            ("google", GoogleCalendarAdapter),
            ("outlook", OutlookCalendarAdapter),
            (AvailableCalendars.outlook, OutlookCalendarAdapter),
        ],
    )
    def test_selects_adapter(self, tag, adapter_cls, credentials, store):
        service = CalendarService(tag, credentials, store=store)
        assert isinstance(service.adapter, adapter_cls)
        assert service.adapter.store is store

    def test_unsupported_provider_fails_before_store(self, credentials):
        with patch("calconnect.services.calendar.CredentialStore") as store_cls:
            with pytest.raises(UnsupportedProviderError):
                CalendarService("yahoo", credentials, "sqlite://")
        store_cls.assert_not_called()

    def test_invalid_interval(self, credentials, store):
        with pytest.raises(InvalidIntervalError):
            CalendarService("google", credentials, store=store, refresh_interval="every hour")

    def test_camel_case_credentials(self, store):
        service = CalendarService(
            "google",
            {"clientId": "id", "clientSecret": "secret", "redirectUri": "http://cb"},
            store=store,
        )
        assert service.adapter.credentials == ProviderCredentials("id", "secret", "http://cb")

    def test_opens_and_closes_own_store(self, credentials):
        service = CalendarService("google", credentials, "sqlite://")
        with patch.object(service.store, "close") as close:
            service.close()
        close.assert_called_once()

    def test_leaves_injected_store_open(self, credentials, store):
        with patch.object(store, "close") as close:
            with CalendarService("google", credentials, store=store):
                pass
        close.assert_not_called()


class TestDelegation:
    @pytest.fixture
    def service(self, credentials, store):
        svc = CalendarService("google", credentials, store=store)
        svc.adapter = MagicMock()
        return svc

    def test_forwards_every_call_unchanged(self, service):
        adapter = service.adapter
        assert service.connect() is adapter.connect.return_value
        assert service.access("code", "u1") is adapter.access.return_value
        adapter.access.assert_called_once_with("code", "u1")

        service.get_events_in_range("u1", "a", "b", "Asia/Karachi", "cal")
        adapter.get_events_in_range.assert_called_once_with("u1", "a", "b", "Asia/Karachi", "cal")

        service.create_event("u1", "s", "a", "b", "UTC", "d", [{"email": "x@y"}], "cal")
        adapter.create_event.assert_called_once_with("u1", "s", "a", "b", "UTC", "d", [{"email": "x@y"}], "cal")

        service.refresh_access_token("u1")
        adapter.refresh_access_token.assert_called_once_with("u1")

        service.start_job()
        service.stop_job()
        adapter.start_job.assert_called_once_with()
        adapter.stop_job.assert_called_once_with()

    def test_errors_propagate(self, service):
        service.adapter.refresh_access_token.side_effect = NotRegisteredError("ghost")
        with pytest.raises(NotRegisteredError):
            service.refresh_access_token("ghost")


def test_not_registered_through_real_adapter(credentials, store):
    service = CalendarService("outlook", credentials, store=store)
    for call in (
        lambda: service.get_events_in_range("ghost", "2024-12-10T00:00:00", "2024-12-10T23:59:59"),
        lambda: service.create_event("ghost", "x", "s", "e", "UTC"),
        lambda: service.refresh_access_token("ghost"),
    ):
        with pytest.raises(NotRegisteredError):
            call()
