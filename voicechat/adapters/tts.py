"""
Speech Synthesizer: OpenAI TTS
===============================
Server-side alternative to the browser's speech synthesis. The reply is
rendered to audio with tts-1 and handed to an audio output (the WebSocket
client), which plays it and reports when playback has ended.
"""

from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI

from voicechat.config import get_settings
from voicechat.core.logging import get_logger
from voicechat.voice.base import SpeechSynthesizer

logger = get_logger(__name__)

PlayAudio = Callable[[bytes], Awaitable[None]]
StopAudio = Callable[[], Awaitable[None]]


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    def __init__(
        self,
        play: PlayAudio,
        stop: StopAudio,
        client: Optional[AsyncOpenAI] = None,
        api_key: str = "",
    ) -> None:
        settings = get_settings()
        self._client = client or AsyncOpenAI(api_key=api_key or settings.openai_api_key, max_retries=0)
        self._model = settings.tts_model
        self._voice = settings.tts_voice
        self._response_format = settings.tts_response_format
        self._play = play
        self._stop = stop

    async def speak(self, text: str) -> None:
        logger.debug("Sending text to TTS", extra={"chars": len(text)})

        response = await self._client.audio.speech.create(
            model=self._model,
            voice=self._voice,  # type: ignore[arg-type]
            input=text,
            response_format=self._response_format,  # type: ignore[arg-type]
        )

        audio_bytes = response.content
        logger.debug("TTS audio received", extra={"bytes": len(audio_bytes)})
        await self._play(audio_bytes)

    async def cancel(self) -> None:
        await self._stop()
