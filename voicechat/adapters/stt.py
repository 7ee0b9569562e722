"""
Speech Recognizer: OpenAI Whisper
==================================
Server-side alternative to the browser's speech recognition. Microphone audio
arrives as binary chunks while the session is open; the buffered clip is
transcribed in one request when the session is stopped, which is also the
only point where the bridge reads the transcript.
"""

from typing import Optional

import openai
from openai import AsyncOpenAI

from voicechat.config import get_settings
from voicechat.core.logging import get_logger
from voicechat.voice.base import ErrorCallback, SpeechRecognizer, TranscriptCallback

logger = get_logger(__name__)

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mp4": "mp4",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
}


class WhisperSpeechRecognizer(SpeechRecognizer):
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        api_key: str = "",
        mime_type: str = "audio/webm",
    ) -> None:
        settings = get_settings()
        key = api_key or settings.openai_api_key
        self._client = client or (AsyncOpenAI(api_key=key, max_retries=0) if key else None)
        self._model = settings.stt_model
        self._language = settings.stt_language
        self._mime_type = mime_type
        self._buffer = bytearray()
        self._listening = False
        self._on_transcript: Optional[TranscriptCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    @property
    def available(self) -> bool:
        return self._client is not None

    def feed(self, chunk: bytes) -> None:
        if self._listening:
            self._buffer.extend(chunk)

    async def start(self, on_transcript: TranscriptCallback, on_error: ErrorCallback) -> None:
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._buffer.clear()
        self._listening = True

    async def stop(self) -> None:
        self._listening = False
        audio_bytes = bytes(self._buffer)
        self._buffer.clear()
        if not audio_bytes or self._client is None:
            return

        ext = _EXTENSIONS.get(self._mime_type, "webm")
        logger.debug("Sending audio to Whisper", extra={"bytes": len(audio_bytes)})
        try:
            response = await self._client.audio.transcriptions.create(
                model=self._model,
                file=(f"audio.{ext}", audio_bytes, self._mime_type),
                language=self._language,
            )
        except openai.OpenAIError as exc:
            if self._on_error:
                self._on_error(str(exc))
            return

        transcript = response.text.strip()
        logger.debug("Whisper transcript received", extra={"length": len(transcript)})
        if self._on_transcript:
            self._on_transcript(transcript)
