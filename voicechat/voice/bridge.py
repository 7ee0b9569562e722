"""
Voice Bridge
============
Couples two independent speech channels to the chat session.

Speech input
------------
`toggle_mic()` starts or stops a continuous recognition session. The live
transcript is tracked in `VoiceState`; only when the session is stopped is a
non-blank transcript handed to `on_final_transcript` (the input field). It is
never submitted automatically, so the user can correct it first.

Speech output
-------------
`speak()` plays a finished assistant reply as a background task. At most one
utterance is in flight: a new one cancels the previous, and turning output
off cancels the current one and silences the synthesizer.

Engine failures on either channel become warnings (`on_warning`) and never
reach the request controller.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Optional

from voicechat.core.logging import get_logger
from voicechat.voice.base import SpeechRecognizer, SpeechSynthesizer

logger = get_logger(__name__)

UNSUPPORTED_RECOGNITION = "Speech recognition is not supported in this environment."


@dataclass
class VoiceState:
    listening: bool = False
    transcript: str = ""
    speaking: bool = False


class VoiceBridge:
    def __init__(
        self,
        recognizer: SpeechRecognizer,
        synthesizer: SpeechSynthesizer,
        output_enabled: bool = True,
        on_final_transcript: Optional[Callable[[str], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._recognizer = recognizer
        self._synthesizer = synthesizer
        self._output_enabled = output_enabled
        self._on_final_transcript = on_final_transcript
        self._on_warning = on_warning
        self._state = VoiceState()
        self._utterance: Optional[asyncio.Task] = None

        if not recognizer.available:
            self._warn(UNSUPPORTED_RECOGNITION)

    # ── State ──────────────────────────────────────────────────────────────────

    @property
    def state(self) -> VoiceState:
        return replace(self._state)

    @property
    def is_listening(self) -> bool:
        return self._state.listening

    @property
    def is_speaking(self) -> bool:
        return self._state.speaking

    @property
    def output_enabled(self) -> bool:
        return self._output_enabled

    # ── Speech input ───────────────────────────────────────────────────────────

    async def toggle_mic(self) -> Optional[str]:
        """
        Start listening, or stop and finalize.

        Returns the finalized transcript when a session with speech was
        stopped, otherwise None.
        """
        if self._state.listening:
            return await self._stop_listening()
        await self._start_listening()
        return None

    def update_transcript(self, text: str) -> None:
        """Live transcript from the recognizer; ignored when not listening."""
        if self._state.listening:
            self._state.transcript = text

    async def _start_listening(self) -> None:
        if not self._recognizer.available:
            self._warn(UNSUPPORTED_RECOGNITION)
            return

        self._state.transcript = ""
        try:
            await self._recognizer.start(self.update_transcript, self._on_recognition_error)
        except Exception as exc:
            self._warn(f"Speech recognition error: {exc}")
            return

        self._state.listening = True
        logger.info("Speech recognition started")

    async def _stop_listening(self) -> Optional[str]:
        try:
            await self._recognizer.stop()
        except Exception as exc:
            self._warn(f"Speech recognition error: {exc}")

        transcript = self._state.transcript.strip()
        self._state.listening = False
        self._state.transcript = ""
        logger.info("Speech recognition stopped", extra={"chars": len(transcript)})

        if not transcript:
            return None
        if self._on_final_transcript:
            self._on_final_transcript(transcript)
        return transcript

    def _on_recognition_error(self, error: str) -> None:
        self._warn(f"Speech recognition error: {error}")

    # ── Speech output ──────────────────────────────────────────────────────────

    async def speak(self, text: str) -> Optional[asyncio.Task]:
        """Queue `text` for playback; returns the utterance task, if any."""
        if not self._output_enabled or not text.strip():
            return None

        await self.stop_speaking()
        task = asyncio.create_task(self._run_utterance(text))
        self._utterance = task
        self._state.speaking = True
        return task

    async def toggle_audio(self) -> bool:
        self._output_enabled = not self._output_enabled
        if self._state.speaking:
            await self.stop_speaking()
        logger.info("Speech output toggled", extra={"enabled": self._output_enabled})
        return self._output_enabled

    async def stop_speaking(self) -> None:
        task = self._utterance
        was_speaking = self._state.speaking
        self._utterance = None
        self._state.speaking = False

        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if was_speaking:
            try:
                await self._synthesizer.cancel()
            except Exception as exc:
                self._warn(f"Text-to-speech error: {exc}")

    async def _run_utterance(self, text: str) -> None:
        try:
            await self._synthesizer.speak(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._warn(f"Text-to-speech error: {exc}")
        finally:
            if self._utterance is asyncio.current_task():
                self._utterance = None
                self._state.speaking = False

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self.stop_speaking()
        if self._state.listening:
            try:
                await self._recognizer.stop()
            except Exception as exc:
                logger.warning("Recognizer stop failed during close", extra={"error": str(exc)})
            self._state.listening = False
            self._state.transcript = ""

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self._on_warning:
            self._on_warning(message)
