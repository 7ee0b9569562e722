"""
WebSocket Gateway Handler
=========================
Connects one browser chat widget to one ChatController.
NO chat logic lives here. This layer only:
  1. Builds the per-connection controller, store and voice bridge.
  2. Decodes JSON commands and dispatches them.
  3. Relays controller / voice events back to the page.
  4. Cleans up on disconnect.

Protocol (JSON text frames)
---------------------------
Client → server `{"cmd": ...}`:
  set_provider {provider, credential} · submit {text, image?} ·
  attach_image {image} · clear_image · toggle_mic · toggle_audio ·
  transcript {text} · recognition_error {message} · speech_ended {utterance} ·
  speech_error {utterance, message} · reset
Binary frames are microphone audio (Whisper recognizer only).

Server → client `{"event": ...}`:
  state {...snapshot} · error {message} · warning {message} · input {text} ·
  speak {text, utterance} · audio {utterance} · cancel_speech ·
  start_recognition · stop_recognition
Binary frames are synthesized reply audio (OpenAI TTS only).

Submits run as background tasks so the loop keeps reading commands while a
reply is pending (provider switches, audio toggles, a rejected second submit).
"""

import asyncio
import json
import uuid
from typing import Optional, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect

from voicechat.adapters import AdapterFactory, build_adapter
from voicechat.adapters.stt import WhisperSpeechRecognizer
from voicechat.adapters.tts import OpenAISpeechSynthesizer
from voicechat.config import Settings, get_settings
from voicechat.core.logging import get_logger, set_logging_context
from voicechat.gateway.client_voice import (
    ClientChannel,
    ClientSpeechRecognizer,
    ClientSpeechSynthesizer,
)
from voicechat.models import Provider
from voicechat.pipeline.controller import ChatController
from voicechat.services.conversation_store import ConversationStore
from voicechat.voice.base import SpeechRecognizer, SpeechSynthesizer
from voicechat.voice.bridge import VoiceBridge

logger = get_logger(__name__)


class WebSocketHandler:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapter_factory: AdapterFactory = build_adapter,
    ) -> None:
        self._settings = settings or get_settings()
        self._adapter_factory = adapter_factory
        self._active = 0

    @property
    def active_connections(self) -> int:
        return self._active

    async def handle(self, websocket: WebSocket) -> None:
        """Entry point for a new WebSocket connection."""
        session_id = str(uuid.uuid4())
        set_logging_context(session_id=session_id)

        await websocket.accept()
        self._active += 1
        logger.info("Chat connected", extra={"session_id": session_id})

        channel = ClientChannel()
        speech_supported = websocket.query_params.get("speech_recognition", "1") != "0"
        recognizer, synthesizer = self._build_speech(channel, speech_supported)
        controller: Optional[ChatController] = None
        tasks: Set[asyncio.Task] = set()
        writer = asyncio.create_task(self._writer(websocket, channel))

        try:
            controller = await self._build_controller(channel, recognizer, synthesizer, session_id)
            channel.send(_state(controller))
            await self._message_loop(websocket, channel, controller, recognizer, tasks)
        except WebSocketDisconnect:
            logger.info("Chat disconnected", extra={"session_id": session_id})
        except Exception as exc:
            logger.exception("Unexpected error in chat handler", extra={"session_id": session_id, "error": str(exc)})
        finally:
            for task in tasks:
                task.cancel()
            if controller:
                await controller.close()
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
            self._active -= 1

    # ── Wiring ─────────────────────────────────────────────────────────────────

    def _build_speech(
        self, channel: ClientChannel, speech_supported: bool
    ) -> Tuple[SpeechRecognizer, SpeechSynthesizer]:
        settings = self._settings
        recognizer: SpeechRecognizer
        synthesizer: SpeechSynthesizer

        if settings.speech_input_engine == "whisper":
            recognizer = WhisperSpeechRecognizer()
        else:
            recognizer = ClientSpeechRecognizer(channel, available=speech_supported)

        if settings.speech_output_engine == "openai":
            synthesizer = OpenAISpeechSynthesizer(play=channel.play, stop=channel.stop_playback)
        else:
            synthesizer = ClientSpeechSynthesizer(channel)
        return recognizer, synthesizer

    async def _build_controller(
        self,
        channel: ClientChannel,
        recognizer: SpeechRecognizer,
        synthesizer: SpeechSynthesizer,
        session_id: str,
    ) -> ChatController:
        settings = self._settings
        voice = VoiceBridge(
            recognizer,
            synthesizer,
            output_enabled=settings.speech_output_enabled,
            on_final_transcript=lambda text: channel.send({"event": "input", "text": text}),
            on_warning=lambda message: channel.send({"event": "warning", "message": message}),
        )
        controller = ChatController(
            ConversationStore(settings.system_prompt),
            voice,
            adapter_factory=self._adapter_factory,
            session_id=session_id,
            settings=settings,
            on_change=lambda: channel.send(_state(controller)),
            on_error=lambda message: channel.send({"event": "error", "message": message}),
        )

        default = Provider(settings.default_provider)
        bootstrap_key = settings.gemini_api_key if default is Provider.GEMINI else settings.openai_api_key
        if bootstrap_key:
            await controller.set_provider(default, bootstrap_key)
        return controller

    # ── Loops ──────────────────────────────────────────────────────────────────

    async def _message_loop(
        self,
        websocket: WebSocket,
        channel: ClientChannel,
        controller: ChatController,
        recognizer: SpeechRecognizer,
        tasks: Set[asyncio.Task],
    ) -> None:
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            chunk = message.get("bytes")
            if chunk is not None:
                if isinstance(recognizer, WhisperSpeechRecognizer):
                    recognizer.feed(chunk)
                continue

            text = message.get("text")
            if not text:
                continue

            try:
                cmd = json.loads(text)
            except json.JSONDecodeError:
                channel.send({"event": "error", "message": "Malformed command"})
                continue
            if not isinstance(cmd, dict):
                channel.send({"event": "error", "message": "Malformed command"})
                continue

            await self._dispatch(cmd, channel, controller, recognizer, tasks)

    async def _dispatch(
        self,
        cmd: dict,
        channel: ClientChannel,
        controller: ChatController,
        recognizer: SpeechRecognizer,
        tasks: Set[asyncio.Task],
    ) -> None:
        name = cmd.get("cmd")

        if name == "submit":
            task = asyncio.create_task(controller.submit(str(cmd.get("text", "")), cmd.get("image") or None))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
        elif name == "set_provider":
            try:
                provider = Provider(cmd.get("provider", controller.provider.value))
            except ValueError:
                channel.send({"event": "error", "message": f"Unknown provider: {cmd.get('provider')!r}"})
                return
            await controller.set_provider(provider, str(cmd.get("credential", "")))
        elif name == "attach_image":
            controller.attach_image(str(cmd.get("image", "")))
        elif name == "clear_image":
            controller.clear_image()
        elif name == "toggle_mic":
            await controller.toggle_mic()
        elif name == "toggle_audio":
            await controller.toggle_audio()
        elif name == "reset":
            controller.reset()
        elif name == "transcript":
            if isinstance(recognizer, ClientSpeechRecognizer):
                recognizer.deliver_transcript(str(cmd.get("text", "")))
                channel.send(_state(controller))
        elif name == "recognition_error":
            if isinstance(recognizer, ClientSpeechRecognizer):
                recognizer.deliver_error(str(cmd.get("message", "unknown error")))
        elif name == "speech_ended":
            if channel.playback_ended(_utterance_id(cmd)):
                # Let the utterance task observe the acknowledgement first
                await asyncio.sleep(0)
                channel.send(_state(controller))
        elif name == "speech_error":
            if channel.playback_ended(_utterance_id(cmd), str(cmd.get("message", "unknown error"))):
                await asyncio.sleep(0)
                channel.send(_state(controller))
        else:
            channel.send({"event": "error", "message": f"Unknown command: {name!r}"})

    @staticmethod
    async def _writer(websocket: WebSocket, channel: ClientChannel) -> None:
        while True:
            frame = await channel.next_frame()
            try:
                if isinstance(frame, bytes):
                    await websocket.send_bytes(frame)
                else:
                    await websocket.send_text(json.dumps(frame))
            except Exception as exc:
                # Socket already closed; the receive loop handles the disconnect
                logger.debug("Dropping outbound frame", extra={"error": str(exc)})
                return


def _state(controller: ChatController) -> dict:
    return {"event": "state", **controller.snapshot()}


def _utterance_id(cmd: dict) -> Optional[int]:
    try:
        return int(cmd["utterance"])
    except (KeyError, TypeError, ValueError):
        return None
