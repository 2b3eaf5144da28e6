"""
Environment-driven configuration for the voice actions engine.
Everything is set via environment variables (optionally from a .env file).
"""

import os
import logging
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


@dataclass
class EngineConfig:
    """Fully environment-driven engine configuration."""

    database_url: str = "sqlite:///./data/voice_actions.db"

    # Transcription (OpenAI)
    openai_api_key: str = ""
    transcription_model: str = "whisper-1"
    openai_timeout_seconds: float = 120.0
    openai_max_retries: int = 2

    # Gemini (extraction, preview, content)
    gemini_api_keys: list[str] = field(default_factory=list)
    gemini_model: str = DEFAULT_GEMINI_MODEL
    preview_model: str = DEFAULT_GEMINI_MODEL
    content_model: str = DEFAULT_GEMINI_MODEL

    # User defaults
    default_timezone: str = "UTC"
    default_language: str = "en"

    # Content generation gate
    content_confidence_threshold: float = 0.5
    content_max_predictions: int = 3
    content_explicit_confidence: float = 0.8
    content_generation_mode: str = "inline"   # "inline" or "background"

    # Background notification jobs
    notify_max_attempts: int = 3
    notify_backoff_seconds: float = 2.0

    @property
    def background_content(self) -> bool:
        return self.content_generation_mode == "background"

    def validate(self):
        """Validate the configuration before building AI clients."""
        if not self.gemini_api_keys:
            logger.error("No Gemini API keys configured")
            raise ValueError("At least one Gemini API key is required")
        if not self.openai_api_key:
            logger.error("OpenAI API key required for transcription")
            raise ValueError("OPENAI_API_KEY is required for transcription")
        if self.content_generation_mode not in ("inline", "background"):
            raise ValueError(
                f"CONTENT_GENERATION_MODE must be 'inline' or 'background', "
                f"got '{self.content_generation_mode}'"
            )
        if not 0.0 <= self.content_confidence_threshold <= 1.0:
            raise ValueError("CONTENT_CONFIDENCE_THRESHOLD must be between 0 and 1")


def _parse_keys() -> list[str]:
    keys_str = os.environ.get("GEMINI_API_KEYS", "")
    keys = [k.strip() for k in keys_str.split(",") if k.strip()]
    if not keys:
        single = os.environ.get("GEMINI_API_KEY", "").strip()
        if single:
            keys = [single]
    return keys


def load_config(env_file: str = ".env") -> EngineConfig:
    """Load configuration from environment variables.

    Required for the AI stages (checked by ``validate()``):
        OPENAI_API_KEY   — Whisper transcription
        GEMINI_API_KEYS  — comma-separated Gemini API keys
                           (or GEMINI_API_KEY for a single key)
    """
    load_dotenv(env_file)

    gemini_model = os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)

    config = EngineConfig(
        database_url=os.environ.get("DATABASE_URL", "sqlite:///./data/voice_actions.db"),
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        transcription_model=os.environ.get("TRANSCRIPTION_MODEL", "whisper-1"),
        openai_timeout_seconds=float(os.environ.get("OPENAI_TIMEOUT_SECONDS", "120")),
        openai_max_retries=int(os.environ.get("OPENAI_MAX_RETRIES", "2")),
        gemini_api_keys=_parse_keys(),
        gemini_model=gemini_model,
        preview_model=os.environ.get("PREVIEW_MODEL", gemini_model),
        content_model=os.environ.get("CONTENT_MODEL", gemini_model),
        default_timezone=os.environ.get("DEFAULT_TIMEZONE", "UTC"),
        default_language=os.environ.get("DEFAULT_LANGUAGE", "en"),
        content_confidence_threshold=float(os.environ.get("CONTENT_CONFIDENCE_THRESHOLD", "0.5")),
        content_max_predictions=int(os.environ.get("CONTENT_MAX_PREDICTIONS", "3")),
        content_explicit_confidence=float(os.environ.get("CONTENT_EXPLICIT_CONFIDENCE", "0.8")),
        content_generation_mode=os.environ.get("CONTENT_GENERATION_MODE", "inline").strip().lower(),
        notify_max_attempts=int(os.environ.get("NOTIFY_MAX_ATTEMPTS", "3")),
        notify_backoff_seconds=float(os.environ.get("NOTIFY_BACKOFF_SECONDS", "2")),
    )

    if not config.gemini_api_keys:
        logger.warning("No Gemini API keys configured")
    logger.info(
        f"Config loaded | Model: {config.gemini_model} | Transcription: {config.transcription_model} "
        f"| Content mode: {config.content_generation_mode}"
    )
    return config
