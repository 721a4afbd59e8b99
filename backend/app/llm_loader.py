"""Text-generation service configuration.

Centralises the settings for the local generate endpoint so they can be
swapped via env vars (or a `.env` file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5-coder:7b"
DEFAULT_TIMEOUT = 30.0


class LLMConfigError(RuntimeError):
    """Raised when the text-generation settings cannot be parsed."""


@dataclass(frozen=True)
class TextGenConfig:
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT
    stream: bool = False

    @property
    def generate_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/generate"

    @property
    def tags_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/tags"


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise LLMConfigError(f"{key} must be a boolean, got '{raw}'")


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise LLMConfigError(f"{key} must be a number, got '{raw}'") from exc
    if value <= 0:
        raise LLMConfigError(f"{key} must be positive, got '{raw}'")
    return value


def get_text_gen_config() -> TextGenConfig:
    """Public entry point used by the rest of the app."""

    return TextGenConfig(
        base_url=_env("LLM_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
        model=_env("LLM_MODEL", DEFAULT_MODEL) or DEFAULT_MODEL,
        timeout=_env_float("LLM_TIMEOUT", DEFAULT_TIMEOUT),
        stream=_env_bool("LLM_STREAM", False),
    )
