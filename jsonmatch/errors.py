from __future__ import annotations

"""Failure taxonomy surfaced by the matching pipeline."""


class JsonMatchError(Exception):
    """Base class for errors the caller is expected to act on."""


class NotConfiguredError(JsonMatchError):
    """Raised when a provider call is attempted before a valid configuration."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "AI service not properly configured. Please check your API key and settings."
        )


class UnsupportedProviderError(JsonMatchError, ValueError):
    """Raised when a provider key has no registered adapter."""

    def __init__(self, provider: str | None) -> None:
        self.provider = provider
        super().__init__(f"Unsupported provider '{provider}'")


class InvalidResponseFormatError(JsonMatchError, ValueError):
    """Raised when a provider payload is not JSON of the required shape."""

    def __init__(self, message: str, *, raw_text: str | None = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class NetworkOrProviderError(JsonMatchError, RuntimeError):
    """Transport or authentication failure reported by the provider call."""

    retryable = False

    def __init__(self, message: str, *, provider: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status
        if status is not None and (status == 429 or status >= 500):
            self.retryable = True


class RequestTimeoutError(NetworkOrProviderError):
    """The caller's deadline expired before the provider answered."""

    retryable = True


__all__ = [
    "JsonMatchError",
    "NotConfiguredError",
    "UnsupportedProviderError",
    "InvalidResponseFormatError",
    "NetworkOrProviderError",
    "RequestTimeoutError",
]
