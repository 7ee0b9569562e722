"""
Conversation Store
==================
Holds the ordered message log for one chat session.

Design
------
- Append-only: messages are frozen dataclasses and there is no update or
  per-message delete. `reset()` replaces the whole log at once.
- At most one system message, always at index 0, placed at bootstrap.
- Only the request controller writes to the store; the voice bridge and the
  adapters only ever read snapshots.
"""

from typing import List, Optional, Tuple

from voicechat.core.logging import get_logger
from voicechat.models import Message, Role

logger = get_logger(__name__)


class ConversationStore:
    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._system_prompt = system_prompt
        self._messages: List[Message] = []
        self._bootstrap()

    def _bootstrap(self) -> None:
        self._messages = []
        if self._system_prompt:
            self._messages.append(Message(role=Role.SYSTEM, text=self._system_prompt))

    # ── Writes ─────────────────────────────────────────────────────────────────

    def append_user(self, text: str, image: Optional[str] = None) -> Message:
        if not text.strip() and not image:
            raise ValueError("A user message needs text or an image")
        message = Message(role=Role.USER, text=text, image_data=image or None)
        self._messages.append(message)
        logger.debug(
            "User message appended",
            extra={"position": len(self._messages) - 1, "has_image": message.image_data is not None},
        )
        return message

    def append_assistant(self, text: str) -> Message:
        # An empty reply is still a reply
        message = Message(role=Role.ASSISTANT, text=text)
        self._messages.append(message)
        logger.debug("Assistant message appended", extra={"position": len(self._messages) - 1, "chars": len(text)})
        return message

    def reset(self) -> None:
        """Drop every turn, keeping only the system prompt."""
        dropped = len(self._messages)
        self._bootstrap()
        logger.info("Conversation reset", extra={"dropped": dropped})

    # ── Reads ──────────────────────────────────────────────────────────────────

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def system_prompt(self) -> Optional[str]:
        return self._system_prompt

    def visible_messages(self) -> List[Message]:
        return [m for m in self._messages if m.role is not Role.SYSTEM]

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)
