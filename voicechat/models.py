"""Shared value types for the chat core."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Provider(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"

    @property
    def label(self) -> str:
        return "Gemini" if self is Provider.GEMINI else "OpenAI"


@dataclass(frozen=True)
class Message:
    role: Role
    text: str
    # Base64-encoded image (no data-URL prefix); user messages only
    image_data: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "text": self.text,
            "has_image": self.image_data is not None,
            "created_at": self.created_at,
        }
