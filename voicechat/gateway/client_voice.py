"""
Browser-side speech engines, relayed over the chat WebSocket.

The browser owns the Web Speech API (recognition and synthesis). These
classes implement the speech capability interfaces by sending events to the
page and reacting to the acknowledgements it sends back:

    server → client   {"event": "start_recognition"} / {"event": "stop_recognition"}
                      {"event": "speak", "text": ..., "utterance": n}
                      {"event": "audio", "utterance": n} followed by a binary frame
                      {"event": "cancel_speech"}
    client → server   {"cmd": "transcript", "text": ...}
                      {"cmd": "recognition_error", "message": ...}
                      {"cmd": "speech_ended", "utterance": n}
                      {"cmd": "speech_error", "utterance": n, "message": ...}

Every playback carries an utterance number. The browser echoes it back when
playback ends, and acknowledgements for anything but the current utterance
are dropped.
"""

import asyncio
from typing import Optional, Union

from voicechat.core.logging import get_logger
from voicechat.voice.base import ErrorCallback, SpeechRecognizer, SpeechSynthesizer, TranscriptCallback

logger = get_logger(__name__)

Frame = Union[dict, bytes]


class PlaybackError(Exception):
    """The browser reported that an utterance could not be played."""


class ClientChannel:
    """Single outbound queue to one browser, plus playback acknowledgements.

    All writes go through the queue so only the gateway's writer task ever
    touches the socket.
    """

    def __init__(self) -> None:
        self._outbox: "asyncio.Queue[Frame]" = asyncio.Queue()
        self._utterance = 0
        self._playback: Optional[asyncio.Event] = None
        self._playback_error: Optional[str] = None

    @property
    def current_utterance(self) -> Optional[int]:
        return self._utterance if self._playback is not None else None

    def send(self, frame: Frame) -> None:
        self._outbox.put_nowait(frame)

    async def next_frame(self) -> Frame:
        return await self._outbox.get()

    async def play(self, frame: Frame) -> None:
        """Send a playback frame and wait until the browser reports the end."""
        self._utterance += 1
        utterance = self._utterance
        done = asyncio.Event()
        self._playback = done
        self._playback_error = None

        if isinstance(frame, bytes):
            self.send({"event": "audio", "utterance": utterance})
            self.send(frame)
        else:
            self.send({**frame, "utterance": utterance})

        await done.wait()
        if self._playback_error:
            raise PlaybackError(self._playback_error)

    async def stop_playback(self) -> None:
        self.send({"event": "cancel_speech"})
        self._finish(None)

    def playback_ended(self, utterance: Optional[int], error: Optional[str] = None) -> bool:
        """Apply a browser acknowledgement; returns False if it was stale."""
        if self._playback is None or utterance != self._utterance:
            logger.debug(
                "Ignoring stale playback acknowledgement",
                extra={"utterance": utterance, "current": self.current_utterance},
            )
            return False
        self._finish(error)
        return True

    def _finish(self, error: Optional[str]) -> None:
        if self._playback is None:
            return
        self._playback_error = error
        self._playback.set()
        self._playback = None


class ClientSpeechRecognizer(SpeechRecognizer):
    def __init__(self, channel: ClientChannel, available: bool = True) -> None:
        self._channel = channel
        self._available = available
        self._on_transcript: Optional[TranscriptCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    @property
    def available(self) -> bool:
        return self._available

    async def start(self, on_transcript: TranscriptCallback, on_error: ErrorCallback) -> None:
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._channel.send({"event": "start_recognition"})

    async def stop(self) -> None:
        self._channel.send({"event": "stop_recognition"})

    def deliver_transcript(self, text: str) -> None:
        if self._on_transcript:
            self._on_transcript(text)

    def deliver_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)


class ClientSpeechSynthesizer(SpeechSynthesizer):
    def __init__(self, channel: ClientChannel) -> None:
        self._channel = channel

    async def speak(self, text: str) -> None:
        await self._channel.play({"event": "speak", "text": text})

    async def cancel(self) -> None:
        await self._channel.stop_playback()
