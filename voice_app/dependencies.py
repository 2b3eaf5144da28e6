"""
FastAPI dependency providers for the store and the pipeline.

Tests swap these out through ``app.dependency_overrides``.
"""

from functools import lru_cache

from voice_engine.config import EngineConfig, load_config
from voice_engine.core import VoicePipeline

from .store import SqlVoiceStore


@lru_cache(maxsize=1)
def get_config() -> EngineConfig:
    return load_config()


def get_store() -> SqlVoiceStore:
    return SqlVoiceStore()


@lru_cache(maxsize=1)
def get_pipeline() -> VoicePipeline:
    """One pipeline per process; it holds the AI clients and their key rotation state."""
    return VoicePipeline.from_config(get_config(), SqlVoiceStore())
