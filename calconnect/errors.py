from __future__ import annotations


class CalendarError(Exception):
    """Base class for every failure raised by calconnect."""


class UnsupportedProviderError(CalendarError, ValueError):
    def __init__(self, provider: str):
        super().__init__(f"Unsupported calendar provider: {provider!r}")
        self.provider = provider


class InvalidIntervalError(CalendarError, ValueError):
    def __init__(self, value: str, reason: str = "expected '<integer> <second|minute|hour|day>'"):
        super().__init__(f"Invalid interval {value!r}; {reason}")
        self.value = value


class InvalidDateTimeError(CalendarError, ValueError):
    """A timestamp or timezone name from the caller could not be interpreted."""


class AuthorizationError(CalendarError):
    """The provider rejected the authorization code exchange."""


class NotRegisteredError(CalendarError):
    def __init__(self, user_id: str):
        super().__init__(f"User not registered: {user_id}")
        self.user_id = user_id


class MissingProviderTokenError(CalendarError):
    def __init__(self, user_id: str, provider: str):
        super().__init__(f"User {user_id} has no {provider} token")
        self.user_id = user_id
        self.provider = provider


class MissingRefreshTokenError(CalendarError):
    def __init__(self, user_id: str, provider: str):
        super().__init__(
            f"Refresh token is missing for user {user_id} ({provider}); re-authorization required"
        )
        self.user_id = user_id
        self.provider = provider


class RemoteAPIError(CalendarError):
    """Non-success response (or transport failure) from a provider API."""

    def __init__(self, message: str, status_code: int | None = None):
        # keep provider error bodies short, they can echo request data
        self.message = message[:200]
        self.status_code = status_code
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"{prefix}{self.message}")


class EventCreationError(RemoteAPIError):
    """Event insert failed or came back without an id/link."""
