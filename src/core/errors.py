"""Error taxonomy shared by the core and the adapters."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay-specific failures."""


class ConfigurationError(RelayError):
    """Fatal misconfiguration detected at startup."""


class ReadyTimeoutError(RelayError):
    """The chat client did not become ready in time."""


class RateLimitError(RelayError):
    """Transient delivery failure carrying a mandatory wait before retrying."""

    def __init__(self, seconds: int, message: str = "") -> None:
        self.seconds = int(seconds)
        super().__init__(message or f"A wait of {self.seconds} seconds is required")


class ContentRewriteError(RelayError):
    """The optional content rewrite service failed for one message."""
