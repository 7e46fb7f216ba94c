from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from calconnect.models import ProviderToken


def make_token(expires_in: timedelta = timedelta(days=1), refresh_token: str | None = "refresh-1",
               access_token: str = "access-1") -> ProviderToken:
    return ProviderToken(
        access_token=access_token,
        refresh_token=refresh_token,
        scope="calendar",
        token_type="Bearer",
        expiry_date=datetime.now(timezone.utc) + expires_in,
    )


def http_response(status: int = 200, payload: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = payload or {}
    resp.text = str(payload)
    return resp
