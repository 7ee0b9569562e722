"""
Speech engine capabilities.

The voice bridge drives these interfaces and never touches a concrete
engine, so it can run against the browser's Web Speech API (relayed over the
WebSocket), server-side OpenAI engines, or test doubles.
"""

from abc import ABC, abstractmethod
from typing import Callable

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class SpeechRecognizer(ABC):
    """Continuous speech-to-text session, started and stopped explicitly."""

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def start(self, on_transcript: TranscriptCallback, on_error: ErrorCallback) -> None:
        """
        Begin listening.

        `on_transcript` receives the full running transcript each time it
        changes; `on_error` receives engine error descriptions.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """
        End the session. Any final transcript must be delivered through
        `on_transcript` before this returns.
        """
        ...


class SpeechSynthesizer(ABC):
    """Text-to-speech sink that plays one utterance at a time."""

    @abstractmethod
    async def speak(self, text: str) -> None:
        """Play `text`; returns once playback has finished."""
        ...

    @abstractmethod
    async def cancel(self) -> None:
        """Stop any audio that is currently playing."""
        ...
