"""
Chat Adapter: OpenAI chat completions
======================================
Uses the official SDK (AsyncOpenAI) with SDK-level retries disabled: a failed
call surfaces immediately and the user resubmits.

  - Roles pass through unchanged, system message included.
  - Images are not supported on this path: a pending image is rejected with
    ProviderCapabilityError, and images stored on earlier messages (e.g. from
    a Gemini session) are sent as text only.
  - The SDK response is dumped to a plain dict so `extract_reply` works on the
    same JSON shape the endpoint returns.
"""

from typing import List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from voicechat.adapters.base import MAX_OUTPUT_TOKENS, TEMPERATURE, TOP_P, ProviderAdapter
from voicechat.config import get_settings
from voicechat.core.errors import (
    FormatError,
    ProviderCapabilityError,
    ProviderError,
    TransportError,
)
from voicechat.core.logging import get_logger
from voicechat.models import Message, Provider

logger = get_logger(__name__)

CHAT_FALLBACK_ERROR = "Failed to get response from OpenAI API"
CHAT_FORMAT_ERROR = "Invalid response format from OpenAI API"


class OpenAIChatAdapter(ProviderAdapter):
    provider = Provider.OPENAI

    def __init__(
        self,
        api_key: str,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.openai_model
        self._owns_client = client is None
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=settings.openai_base_url,
            timeout=settings.request_timeout_seconds,
            max_retries=0,
        )

    def serialize(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> dict:
        if pending_image:
            raise ProviderCapabilityError("Image attachments are not supported by the OpenAI provider")

        messages: List[dict] = [
            {"role": message.role.value, "content": message.text} for message in conversation
        ]
        return {
            "model": self._model,
            "messages": messages,
            "temperature": TEMPERATURE,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "top_p": TOP_P,
        }

    def extract_reply(self, raw: dict) -> str:
        try:
            message = raw["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise FormatError(CHAT_FORMAT_ERROR) from exc
        if not isinstance(message, dict):
            raise FormatError(CHAT_FORMAT_ERROR)
        # content is null for refusals or empty completions
        return message.get("content") or ""

    async def complete(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> str:
        payload = self.serialize(conversation, pending_image)
        logger.debug("Sending to OpenAI", extra={"turns": len(payload["messages"]), "model": self._model})

        try:
            response = await self._client.chat.completions.create(**payload)
        except openai.APITimeoutError as exc:
            raise TransportError("The OpenAI API did not respond in time") from exc
        except openai.APIConnectionError as exc:
            raise TransportError(f"Could not reach the OpenAI API: {exc}") from exc
        except openai.APIStatusError as exc:
            raise ProviderError(_error_message(exc) or CHAT_FALLBACK_ERROR, status_code=exc.status_code) from exc

        reply = self.extract_reply(response.model_dump())
        logger.debug("OpenAI reply received", extra={"chars": len(reply)})
        return reply

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.close()


def _error_message(exc: "openai.APIStatusError") -> Optional[str]:
    body = exc.body
    if not isinstance(body, dict):
        return None
    # The SDK usually unwraps {"error": {...}}, but not for every status
    if isinstance(body.get("error"), dict):
        body = body["error"]
    message = body.get("message")
    return message if isinstance(message, str) and message else None
