"""
Error taxonomy for the chat core.

Every error carries a human-readable message suitable for showing to the
user as-is. Adapters raise these; the request controller is the only place
that catches them.
"""

from typing import Optional


class ChatError(Exception):
    """Base class for failures surfaced to the user as a single message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthError(ChatError):
    """No credential configured; the request was never issued."""


class TransportError(ChatError):
    """Network failure or timeout: no response was received."""


class ProviderError(ChatError):
    """The provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class FormatError(ChatError):
    """2xx response whose body does not have the expected shape."""


class ProviderCapabilityError(ChatError):
    """The active provider cannot serve the requested feature (e.g. images)."""


class BusyError(ChatError):
    """A request is already in flight for this chat session."""


class InvalidImageError(ChatError):
    """The attached image is not decodable, not an image, or too large."""
