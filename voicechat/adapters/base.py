"""
Abstract base class for chat provider adapters.

An adapter translates the internal conversation (a sequence of `Message`)
into the wire payload one provider expects, performs the HTTP call, and
pulls the reply text back out of the provider's response. The request
controller only ever talks to this interface, so swapping providers never
touches orchestration code.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from voicechat.core.errors import ProviderCapabilityError
from voicechat.models import Message, Provider

# Generation policy shared by every provider call. Not user-configurable.
TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 800
TOP_P = 0.95
TOP_K = 40

IMAGE_MIME_TYPE = "image/jpeg"


class ProviderAdapter(ABC):
    """Conversation history → provider payload → assistant reply text."""

    provider: Provider
    # Whether images can ride along with a chat turn (history or pending)
    supports_images: bool = False
    # Whether `describe_image` performs a one-shot vision call
    supports_vision: bool = False

    @abstractmethod
    def serialize(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> dict:
        """
        Build the JSON request body for a chat call.

        Parameters
        ----------
        conversation  : full ordered log, system message included
        pending_image : base64 image to attach to the trailing user message

        Returns
        -------
        Request body as a plain dict, ready for `json=`.
        """
        ...

    @abstractmethod
    def extract_reply(self, raw: dict) -> str:
        """
        Pull the assistant text out of a decoded 2xx response body.

        Raises
        ------
        FormatError when the body does not carry a reply.
        """
        ...

    @abstractmethod
    async def complete(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> str:
        """Serialize, send and extract in one call."""
        ...

    async def describe_image(self, text: str, image_b64: str) -> str:
        """One-shot vision call that bypasses the conversation history."""
        raise ProviderCapabilityError(
            f"Image analysis is not supported by the {self.provider.value} provider"
        )

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        return None
