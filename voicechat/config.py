"""
Configuration management: values sourced from environment variables / .env.
Provider credentials are optional here: the browser normally supplies them
at runtime through `set_provider`.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Provider ──────────────────────────────────────────────────────────────
    default_provider: Literal["gemini", "openai"] = "gemini"
    openai_api_key: str = ""
    gemini_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    system_prompt: str = (
        "You are a helpful, friendly assistant. Keep responses concise and engaging."
    )

    # ── Requests ──────────────────────────────────────────────────────────────
    request_timeout_seconds: float = 30.0

    # ── Images ────────────────────────────────────────────────────────────────
    max_image_bytes: int = 5 * 1024 * 1024
    image_prompt: str = "Describe this image."

    # ── Speech ────────────────────────────────────────────────────────────────
    speech_input_engine: Literal["client", "whisper"] = "client"
    speech_output_engine: Literal["client", "openai"] = "client"
    speech_output_enabled: bool = True
    stt_model: str = "whisper-1"
    stt_language: str = "en"
    tts_model: str = "tts-1"
    tts_voice: str = "alloy"  # alloy | echo | fable | onyx | nova | shimmer
    tts_response_format: str = "mp3"

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: str = ""                            # empty = console only
    log_rotation_bytes: int = 10 * 1024 * 1024    # 10 MB
    log_backup_count: int = 5


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
