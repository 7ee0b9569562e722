"""
Request Lifecycle Controller
============================
Drives one chat session: owns the provider session, sends user turns, and
appends replies to the conversation store.

State machine
-------------
    IDLE --submit--> SENDING --reply--> IDLE
                             --error--> FAILED --> IDLE

FAILED is transient: the error is recorded in `last_error`, reported to
`on_error`, and the controller is back in IDLE before `submit` returns.
Requests refused up front (no credential, busy, unsupported image, bad
image) never leave IDLE and never touch the store.

Design Decisions
----------------
- Exactly one outbound call per submit and no retries; the user resubmits.
- One request in flight per session: a submit while SENDING is rejected
  with BusyError, so replies are appended in submit order.
- Every ChatError is caught here and turned into a user-facing string. No
  error escapes `submit`.
- `set_provider` while SENDING cancels the in-flight call and replaces the
  session. If the old call still resolves, its result is discarded: the
  session identity captured at submit time no longer matches.
- Provider calls are bounded by `timeout_seconds` (asyncio.wait_for); a
  timeout is reported as a TransportError.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from voicechat.adapters import AdapterFactory, build_adapter
from voicechat.adapters.base import ProviderAdapter
from voicechat.config import Settings, get_settings
from voicechat.core.errors import (
    AuthError,
    BusyError,
    ChatError,
    ProviderCapabilityError,
    TransportError,
)
from voicechat.core.logging import get_logger, new_request_id
from voicechat.metrics.latency import LatencyReport, measure
from voicechat.models import Message, Provider
from voicechat.services.conversation_store import ConversationStore
from voicechat.utils.media import normalize_image
from voicechat.voice.bridge import VoiceBridge

logger = get_logger(__name__)

GENERIC_CHAT_ERROR = "Failed to get a response"
GENERIC_VISION_ERROR = "Failed to analyze the image"


class RequestState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderSession:
    provider: Provider
    credential: str = field(repr=False)
    adapter: ProviderAdapter = field(repr=False, compare=False)


class ChatController:
    def __init__(
        self,
        store: ConversationStore,
        voice: Optional[VoiceBridge] = None,
        adapter_factory: AdapterFactory = build_adapter,
        session_id: str = "",
        timeout_seconds: Optional[float] = None,
        settings: Optional[Settings] = None,
        on_change: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._voice = voice
        self._adapter_factory = adapter_factory
        self._session_id = session_id
        self._timeout = timeout_seconds or settings.request_timeout_seconds
        self._image_prompt = settings.image_prompt
        self._max_image_bytes = settings.max_image_bytes
        self._on_change = on_change
        self._on_error = on_error

        self._provider = Provider(settings.default_provider)
        self._session: Optional[ProviderSession] = None
        self._state = RequestState.IDLE
        self._last_error: Optional[str] = None
        self._pending_image: Optional[str] = None
        self._inflight: Optional[asyncio.Future] = None

    # ── Snapshot ───────────────────────────────────────────────────────────────

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._state is RequestState.SENDING

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def session(self) -> Optional[ProviderSession]:
        return self._session

    @property
    def pending_image(self) -> Optional[str]:
        return self._pending_image

    @property
    def store(self) -> ConversationStore:
        return self._store

    def visible_messages(self) -> list:
        return self._store.visible_messages()

    def snapshot(self) -> dict:
        voice = self._voice
        return {
            "messages": [m.to_dict() for m in self._store.visible_messages()],
            "provider": self._provider.value,
            "has_credential": self._session is not None,
            "state": self._state.value,
            "is_sending": self.is_sending,
            "last_error": self._last_error,
            "has_pending_image": self._pending_image is not None,
            "is_listening": voice.is_listening if voice else False,
            "transcript": voice.state.transcript if voice else "",
            "is_speaking": voice.is_speaking if voice else False,
            "audio_enabled": voice.output_enabled if voice else False,
        }

    # ── Provider session ───────────────────────────────────────────────────────

    async def set_provider(self, provider: Union[Provider, str], credential: str) -> None:
        provider = Provider(provider)
        current = self._session
        if current and current.provider is provider and current.credential == credential:
            return

        self._provider = provider
        self._session = None
        if self._inflight and not self._inflight.done():
            logger.info("Cancelling in-flight request for replaced provider session")
            self._inflight.cancel()
        self._inflight = None
        if self._state is RequestState.SENDING:
            self._state = RequestState.IDLE

        if credential:
            self._session = ProviderSession(
                provider=provider,
                credential=credential,
                adapter=self._adapter_factory(provider, credential),
            )
        logger.info(
            "Provider session replaced",
            extra={"provider": provider.value, "has_credential": bool(credential)},
        )

        if current:
            await current.adapter.aclose()
        self._notify()

    # ── Image slot ─────────────────────────────────────────────────────────────

    def attach_image(self, image: str) -> bool:
        try:
            self._pending_image = normalize_image(image, self._max_image_bytes)
        except ChatError as exc:
            self._refuse(exc)
            return False
        self._notify()
        return True

    def clear_image(self) -> None:
        self._pending_image = None
        self._notify()

    # ── Submit ─────────────────────────────────────────────────────────────────

    async def submit(self, text: str, image: Optional[str] = None) -> Optional[Message]:
        """
        Send one user turn and wait for the reply.

        Returns the appended assistant message, or None when the request was
        refused, failed, or discarded as stale. Failures are reported through
        `last_error` / `on_error`, never raised.
        """
        try:
            session, image = self._admit(text, image)
        except ChatError as exc:
            self._refuse(exc)
            return None
        if session is None:
            return None

        user_message = self._store.append_user(text.strip(), image)
        self._pending_image = None
        self._state = RequestState.SENDING
        self._last_error = None
        self._notify()

        adapter = session.adapter
        vision = user_message.image_data is not None and adapter.supports_vision
        request_id = new_request_id()
        report = LatencyReport(
            session_id=self._session_id,
            request_id=request_id,
            provider=session.provider.value,
            call="vision" if vision else "chat",
        )
        logger.info(
            "Request started",
            extra={"provider": session.provider.value, "call": report.call, "turns": len(self._store)},
        )

        if vision:
            coro = adapter.describe_image(user_message.text or self._image_prompt, user_message.image_data)
        else:
            coro = adapter.complete(self._store.messages)
        call = asyncio.ensure_future(asyncio.wait_for(coro, timeout=self._timeout))
        self._inflight = call

        try:
            async with measure(report, report.call):
                reply = await call
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._is_stale(session) and not (current and current.cancelling()):
                return self._discard(report)
            raise
        except asyncio.TimeoutError:
            if self._is_stale(session):
                return self._discard(report)
            self._fail(
                TransportError(f"{session.provider.label} API did not respond within {self._timeout:g}s"),
                report,
            )
            return None
        except ChatError as exc:
            if self._is_stale(session):
                return self._discard(report)
            self._fail(exc, report)
            return None
        except Exception as exc:
            if self._is_stale(session):
                return self._discard(report)
            logger.exception("Unexpected error from provider adapter", extra={"error": str(exc)})
            self._fail(ChatError(GENERIC_VISION_ERROR if vision else GENERIC_CHAT_ERROR), report)
            return None
        finally:
            if self._inflight is call:
                self._inflight = None
            if not self._is_stale(session) and self._state is RequestState.SENDING:
                self._state = RequestState.IDLE

        if self._is_stale(session):
            return self._discard(report)

        assistant = self._store.append_assistant(reply)
        self._state = RequestState.IDLE
        report.outcome = "ok"
        report.log()
        self._notify()

        if self._voice:
            await self._voice.speak(reply)
        return assistant

    def _admit(self, text: str, image: Optional[str]):
        """Checks that run before SENDING. Returns (session, image)."""
        if self._state is RequestState.SENDING:
            raise BusyError("Please wait for the current response to finish")

        session = self._session
        if session is None:
            raise AuthError(f"{self._provider.label} API key is missing")

        if image:
            image = normalize_image(image, self._max_image_bytes)
        else:
            image = self._pending_image

        if not text.strip() and not image:
            logger.debug("Ignoring empty submit")
            return None, None

        adapter = session.adapter
        if image and not (adapter.supports_vision or adapter.supports_images):
            raise ProviderCapabilityError(
                f"Image attachments are not supported by the {session.provider.label} provider"
            )
        return session, image

    # ── Voice passthrough ──────────────────────────────────────────────────────

    async def toggle_mic(self) -> Optional[str]:
        if self._voice is None:
            return None
        transcript = await self._voice.toggle_mic()
        self._notify()
        return transcript

    async def toggle_audio(self) -> bool:
        if self._voice is None:
            return False
        enabled = await self._voice.toggle_audio()
        self._notify()
        return enabled

    # ── Reset / close ──────────────────────────────────────────────────────────

    def reset(self) -> None:
        if self._state is RequestState.SENDING:
            self._refuse(BusyError("Please wait for the current response to finish"))
            return
        self._store.reset()
        self._pending_image = None
        self._last_error = None
        self._notify()

    async def close(self) -> None:
        if self._inflight and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        session, self._session = self._session, None
        if self._voice:
            await self._voice.close()
        if session:
            await session.adapter.aclose()

    # ── Helpers ────────────────────────────────────────────────────────────────

    def _is_stale(self, session: ProviderSession) -> bool:
        return session is not self._session

    def _discard(self, report: LatencyReport) -> None:
        report.outcome = "discarded"
        report.log()
        logger.info("Discarded reply from replaced provider session")
        return None

    def _refuse(self, exc: ChatError) -> None:
        self._last_error = exc.message
        logger.warning("Request refused", extra={"error_type": type(exc).__name__, "error": exc.message})
        if self._on_error:
            self._on_error(exc.message)
        self._notify()

    def _fail(self, exc: ChatError, report: LatencyReport) -> None:
        self._state = RequestState.FAILED
        self._last_error = exc.message
        report.outcome = "failed"
        report.log()
        logger.error("Request failed", extra={"error_type": type(exc).__name__, "error": exc.message})
        if self._on_error:
            self._on_error(exc.message)
        self._state = RequestState.IDLE
        self._notify()

    def _notify(self) -> None:
        if self._on_change:
            self._on_change()
