"""
Unit tests for the JSON log formatter.
"""

import json
import logging

from voicechat.core.logging import JsonFormatter, set_logging_context


def make_record(msg="hello", **extra):
    record = logging.LogRecord("voicechat.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_context_ids():
    set_logging_context(session_id="sess-1", request_id="req-1")
    try:
        payload = json.loads(JsonFormatter().format(make_record()))
    finally:
        set_logging_context()

    assert payload["level"] == "INFO"
    assert payload["logger"] == "voicechat.test"
    assert payload["msg"] == "hello"
    assert payload["session_id"] == "sess-1"
    assert payload["request_id"] == "req-1"


def test_formatter_carries_extra_fields():
    payload = json.loads(JsonFormatter().format(make_record(provider="gemini", chars=12)))
    assert payload["provider"] == "gemini"
    assert payload["chars"] == 12


def test_explicit_session_id_wins_over_context():
    set_logging_context(session_id="from-context")
    try:
        payload = json.loads(JsonFormatter().format(make_record(session_id="explicit")))
    finally:
        set_logging_context()
    assert payload["session_id"] == "explicit"
