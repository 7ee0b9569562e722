"""
Unit tests for ConversationStore.
"""

import dataclasses

import pytest

from voicechat.models import Role
from voicechat.services.conversation_store import ConversationStore


def test_system_prompt_is_first_and_hidden():
    store = ConversationStore(system_prompt="Be concise")
    store.append_user("Hello")
    store.append_assistant("Hi!")

    assert store.messages[0].role is Role.SYSTEM
    assert [m.text for m in store.visible_messages()] == ["Hello", "Hi!"]


def test_visible_messages_preserve_insertion_order():
    store = ConversationStore(system_prompt="sys")
    for i in range(3):
        store.append_user(f"q{i}")
        store.append_assistant(f"a{i}")

    visible = store.visible_messages()
    assert [m.text for m in visible] == ["q0", "a0", "q1", "a1", "q2", "a2"]
    assert all(m.role is not Role.SYSTEM for m in visible)


def test_no_system_message_without_prompt():
    store = ConversationStore()
    assert len(store) == 0
    assert store.visible_messages() == []


def test_append_user_rejects_entirely_empty_message():
    store = ConversationStore()
    with pytest.raises(ValueError):
        store.append_user("   ")
    assert len(store) == 0


def test_append_user_accepts_image_without_text():
    store = ConversationStore()
    message = store.append_user("", image="aGVsbG8=")
    assert message.role is Role.USER
    assert message.image_data == "aGVsbG8="


def test_empty_assistant_reply_is_stored():
    store = ConversationStore()
    store.append_user("Hello")
    reply = store.append_assistant("")
    assert store.last is reply
    assert reply.text == ""


def test_messages_are_immutable():
    store = ConversationStore()
    message = store.append_user("Hello")
    with pytest.raises(dataclasses.FrozenInstanceError):
        message.text = "changed"  # type: ignore[misc]


def test_messages_snapshot_cannot_mutate_log():
    store = ConversationStore()
    store.append_user("Hello")
    snapshot = store.messages
    assert isinstance(snapshot, tuple)
    store.append_assistant("Hi")
    assert len(snapshot) == 1
    assert len(store) == 2


def test_reset_keeps_only_system_prompt():
    store = ConversationStore(system_prompt="sys")
    store.append_user("Hello")
    store.append_assistant("Hi")

    store.reset()

    assert len(store) == 1
    assert store.messages[0].role is Role.SYSTEM
    assert store.visible_messages() == []
