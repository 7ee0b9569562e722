"""
Adapter factory.
The controller asks for an adapter by provider identity; nothing else in the
codebase branches on which provider is active.
"""

from typing import Callable, Union

from voicechat.adapters.base import ProviderAdapter
from voicechat.adapters.gemini import GeminiAdapter
from voicechat.adapters.openai_chat import OpenAIChatAdapter
from voicechat.models import Provider

AdapterFactory = Callable[[Provider, str], ProviderAdapter]

_ADAPTERS = {
    Provider.GEMINI: GeminiAdapter,
    Provider.OPENAI: OpenAIChatAdapter,
}


def build_adapter(provider: Union[Provider, str], credential: str) -> ProviderAdapter:
    return _ADAPTERS[Provider(provider)](api_key=credential)


__all__ = [
    "AdapterFactory",
    "GeminiAdapter",
    "OpenAIChatAdapter",
    "ProviderAdapter",
    "build_adapter",
]
