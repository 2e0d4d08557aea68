from __future__ import annotations

from typing import Optional


class StreamError(Exception):
    """Base class for every error raised by the ingestion & analysis pipeline."""


class DecodeError(StreamError):
    """A frame could not be turned into a Sample."""

    def __init__(self, message: str, fragment: Optional[str] = None) -> None:
        super().__init__(message)
        self.fragment = fragment


class ValidationError(DecodeError):
    """A frame parsed but is not a keyed record carrying the channel fields."""


class FrameOverflow(DecodeError):
    """The accumulation buffer grew past its bound and was discarded."""


class SubscriberDeliveryError(StreamError):
    def __init__(self, subscription_id: int, cause: BaseException) -> None:
        super().__init__(f"delivery to subscriber {subscription_id} failed: {cause!r}")
        self.subscription_id = subscription_id
        self.cause = cause


class InsufficientDataError(StreamError):
    """Raised when a session is too short to analyze."""


class UpstreamDisconnected(StreamError):
    """The hardware link was lost."""


class ConfigError(StreamError, ValueError):
    """Impossible configuration; fatal at startup."""
