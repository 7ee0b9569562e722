"""
Unit tests for OpenAIChatAdapter.

The AsyncOpenAI client is mocked; no real API calls are made.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from voicechat.adapters.openai_chat import OpenAIChatAdapter
from voicechat.core.errors import (
    FormatError,
    ProviderCapabilityError,
    ProviderError,
    TransportError,
)
from voicechat.models import Message, Role

_REQUEST = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")


# ── Fixtures ───────────────────────────────────────────────────────────────────

def make_adapter(raw=None, side_effect=None):
    response = MagicMock()
    response.model_dump.return_value = raw if raw is not None else completion("ok")
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return OpenAIChatAdapter(api_key="sk-test", client=client, model="gpt-test"), client


def completion(content) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def conversation():
    return [
        Message(role=Role.SYSTEM, text="Be concise"),
        Message(role=Role.USER, text="Hello"),
        Message(role=Role.ASSISTANT, text="Hi"),
        Message(role=Role.USER, text="How are you?"),
    ]


# ── serialize ──────────────────────────────────────────────────────────────────

def test_roles_pass_through_unchanged():
    adapter, _ = make_adapter()
    payload = adapter.serialize(conversation())

    roles = [m["role"] for m in payload["messages"]]
    assert roles == ["system", "user", "assistant", "user"]
    assert [Role(r) for r in roles] == [m.role for m in conversation()]
    assert payload["messages"][0]["content"] == "Be concise"


def test_generation_knobs_use_openai_field_names():
    adapter, _ = make_adapter()
    payload = adapter.serialize(conversation())
    assert payload["model"] == "gpt-test"
    assert payload["temperature"] == 0.7
    assert payload["max_tokens"] == 800
    assert payload["top_p"] == 0.95
    assert "top_k" not in payload


def test_pending_image_is_rejected():
    adapter, _ = make_adapter()
    with pytest.raises(ProviderCapabilityError):
        adapter.serialize(conversation(), pending_image="SU1H")


def test_stored_history_images_are_sent_as_text_only():
    adapter, _ = make_adapter()
    payload = adapter.serialize([Message(role=Role.USER, text="look", image_data="SU1H")])
    assert payload["messages"] == [{"role": "user", "content": "look"}]


# ── extract_reply ──────────────────────────────────────────────────────────────

def test_extract_reply_reads_first_choice():
    adapter, _ = make_adapter()
    assert adapter.extract_reply(completion("Fine, thanks")) == "Fine, thanks"


@pytest.mark.parametrize("raw", [{}, {"choices": []}, {"choices": [{"index": 0}]}])
def test_missing_choice_is_format_error(raw):
    adapter, _ = make_adapter()
    with pytest.raises(FormatError):
        adapter.extract_reply(raw)


def test_null_content_is_empty_reply():
    adapter, _ = make_adapter()
    assert adapter.extract_reply(completion(None)) == ""


# ── complete ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_complete_sends_payload_and_returns_reply():
    adapter, client = make_adapter(raw=completion("Doing well"))

    reply = await adapter.complete(conversation())

    assert reply == "Doing well"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["messages"][-1] == {"role": "user", "content": "How are you?"}
    assert kwargs["max_tokens"] == 800


@pytest.mark.asyncio
async def test_empty_choices_raise_format_error():
    adapter, _ = make_adapter(raw={"choices": []})
    with pytest.raises(FormatError):
        await adapter.complete(conversation())


@pytest.mark.asyncio
async def test_status_error_uses_provider_message():
    exc = openai.APIStatusError(
        "Error code: 401",
        response=httpx.Response(401, request=_REQUEST),
        body={"message": "Incorrect API key provided", "type": "invalid_request_error"},
    )
    adapter, _ = make_adapter(side_effect=exc)

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(conversation())

    assert exc_info.value.message == "Incorrect API key provided"
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_status_error_without_message_uses_fallback():
    exc = openai.APIStatusError("boom", response=httpx.Response(502, request=_REQUEST), body=None)
    adapter, _ = make_adapter(side_effect=exc)

    with pytest.raises(ProviderError) as exc_info:
        await adapter.complete(conversation())

    assert exc_info.value.message == "Failed to get response from OpenAI API"


@pytest.mark.asyncio
async def test_connection_error_is_transport_error():
    adapter, _ = make_adapter(side_effect=openai.APIConnectionError(request=_REQUEST))
    with pytest.raises(TransportError):
        await adapter.complete(conversation())


@pytest.mark.asyncio
async def test_timeout_is_transport_error():
    adapter, _ = make_adapter(side_effect=openai.APITimeoutError(request=_REQUEST))
    with pytest.raises(TransportError):
        await adapter.complete(conversation())


@pytest.mark.asyncio
async def test_describe_image_not_supported():
    adapter, client = make_adapter()
    with pytest.raises(ProviderCapabilityError):
        await adapter.describe_image("what is this?", "SU1H")
    client.chat.completions.create.assert_not_called()
