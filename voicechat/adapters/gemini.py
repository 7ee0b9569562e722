"""
Chat Adapter: Google Gemini
============================
Talks to the `generateContent` REST endpoint directly over httpx.

Wire differences handled here:
  - Roles: assistant → "model", everything else → "user".
  - No system role: the system prompt is folded into the first user turn.
  - Images travel as `inlineData` parts inside a turn.
  - Vision is also available as a one-shot call (`describe_image`) that
    ignores the conversation history.
"""

from typing import List, Optional, Sequence

import httpx

from voicechat.adapters.base import (
    IMAGE_MIME_TYPE,
    MAX_OUTPUT_TOKENS,
    TEMPERATURE,
    TOP_K,
    TOP_P,
    ProviderAdapter,
)
from voicechat.config import get_settings
from voicechat.core.errors import FormatError, ProviderError, TransportError
from voicechat.core.logging import get_logger
from voicechat.models import Message, Provider, Role

logger = get_logger(__name__)

SYSTEM_SEPARATOR = "\n\n"

CHAT_FALLBACK_ERROR = "Failed to get response from Gemini API"
VISION_FALLBACK_ERROR = "Failed to get response from Gemini Vision API"
CHAT_FORMAT_ERROR = "Invalid response format from Gemini API"
VISION_FORMAT_ERROR = "Invalid response format from Gemini Vision API"


def generation_config() -> dict:
    return {
        "temperature": TEMPERATURE,
        "maxOutputTokens": MAX_OUTPUT_TOKENS,
        "topP": TOP_P,
        "topK": TOP_K,
    }


def image_part(image_b64: str) -> dict:
    return {"inlineData": {"mimeType": IMAGE_MIME_TYPE, "data": image_b64}}


def extract_candidate_text(raw: dict, format_error: str = CHAT_FORMAT_ERROR) -> str:
    try:
        parts = raw["candidates"][0]["content"]["parts"]
        first = parts[0]
    except (KeyError, IndexError, TypeError) as exc:
        raise FormatError(format_error) from exc
    if not isinstance(first, dict) or not isinstance(first.get("text"), str):
        raise FormatError(format_error)
    return first["text"]


class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI
    supports_images = True
    supports_vision = True

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        model: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key
        self._model = model or settings.gemini_model
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.gemini_base_url,
            timeout=settings.request_timeout_seconds,
        )

    # ── Pure translation ───────────────────────────────────────────────────────

    def serialize(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> dict:
        system_text = next((m.text for m in conversation if m.role is Role.SYSTEM), None)
        folded = system_text is None
        last_index = len(conversation) - 1

        contents: List[dict] = []
        for index, message in enumerate(conversation):
            if message.role is Role.SYSTEM:
                continue

            text = message.text
            if not folded and message.role is Role.USER:
                text = f"{system_text}{SYSTEM_SEPARATOR}{text}" if text else system_text
                folded = True

            # Images already sent on an earlier call are replayed as text only
            parts: List[dict] = [{"text": text}]
            if index == last_index and message.role is Role.USER:
                image = message.image_data or pending_image
                if image:
                    parts.append(image_part(image))

            contents.append({
                "role": "model" if message.role is Role.ASSISTANT else "user",
                "parts": parts,
            })

        return {"contents": contents, "generationConfig": generation_config()}

    def extract_reply(self, raw: dict) -> str:
        return extract_candidate_text(raw, CHAT_FORMAT_ERROR)

    # ── Calls ──────────────────────────────────────────────────────────────────

    async def complete(self, conversation: Sequence[Message], pending_image: Optional[str] = None) -> str:
        payload = self.serialize(conversation, pending_image)
        logger.debug(
            "Sending to Gemini",
            extra={"turns": len(payload["contents"]), "model": self._model},
        )
        raw = await self._post(payload, CHAT_FALLBACK_ERROR, CHAT_FORMAT_ERROR)
        reply = self.extract_reply(raw)
        logger.debug("Gemini reply received", extra={"chars": len(reply)})
        return reply

    async def describe_image(self, text: str, image_b64: str) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": text}, image_part(image_b64)]}],
            "generationConfig": generation_config(),
        }
        logger.debug("Sending one-shot vision request to Gemini", extra={"model": self._model})
        raw = await self._post(payload, VISION_FALLBACK_ERROR, VISION_FORMAT_ERROR)
        reply = extract_candidate_text(raw, VISION_FORMAT_ERROR)
        logger.debug("Gemini vision reply received", extra={"chars": len(reply)})
        return reply

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── Transport ──────────────────────────────────────────────────────────────

    async def _post(self, payload: dict, fallback_error: str, format_error: str) -> dict:
        try:
            response = await self._client.post(
                f"/models/{self._model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self._api_key},
            )
        except httpx.TimeoutException as exc:
            raise TransportError("The Gemini API did not respond in time") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Could not reach the Gemini API: {exc}") from exc

        if not response.is_success:
            raise ProviderError(_error_message(response) or fallback_error, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise FormatError(format_error) from exc


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or None
    return None
