"""Typed, validated settings for the recognition engine and transcription."""

import os
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..transcription.base import DEFAULT_VOCABULARY_PROMPT
from ..transcription.whisper_backend import DEFAULT_TRANSCRIPTION_URL

MIN_SILENCE_TIMEOUT_SECONDS = 0.5
MAX_SILENCE_TIMEOUT_SECONDS = 5.0

# silence timeout / no-speech timeout / max recording, in seconds
QUALITY_PRESETS: Dict[str, Dict[str, float]] = {
    "low": {
        "silence_timeout_seconds": 2.0,
        "no_speech_timeout_seconds": 10.0,
        "max_recording_seconds": 30.0,
    },
    "balanced": {
        "silence_timeout_seconds": 1.5,
        "no_speech_timeout_seconds": 8.0,
        "max_recording_seconds": 20.0,
    },
    "high": {
        "silence_timeout_seconds": 1.0,
        "no_speech_timeout_seconds": 5.0,
        "max_recording_seconds": 15.0,
    },
}


class EngineSettings(BaseModel):
    """Capture, voice activity and endpointing parameters."""

    model_config = ConfigDict(extra="forbid")

    silence_threshold: float = Field(default=300.0, ge=0, description="RMS level above which a frame is loud")
    silence_timeout_seconds: float = Field(default=1.5, description="Silence after speech that ends a recording")
    no_speech_timeout_seconds: float = Field(default=8.0, gt=0)
    max_recording_seconds: float = Field(default=20.0, gt=0)
    min_speech_frames_required: int = Field(default=2, ge=1)
    pre_buffer_capacity_bytes: int = Field(default=48000, gt=0)

    capture_backend: Literal["callback", "blocking"] = "callback"
    device_index: Optional[int] = None
    chunk_ms: int = Field(default=100, gt=0, le=1000)
    frame_queue_size: int = Field(default=256, ge=1)

    poll_interval_seconds: float = Field(default=0.1, gt=0)
    initial_check_delay_seconds: float = Field(default=0.8, ge=0)
    extended_silence_after_seconds: float = Field(default=3.0, ge=0)
    extended_silence_seconds: float = Field(default=2.0, ge=0)

    @field_validator("silence_timeout_seconds")
    @classmethod
    def clamp_silence_timeout(cls, value: float) -> float:
        return min(max(value, MIN_SILENCE_TIMEOUT_SECONDS), MAX_SILENCE_TIMEOUT_SECONDS)

    @field_validator("pre_buffer_capacity_bytes")
    @classmethod
    def whole_samples(cls, value: int) -> int:
        if value % 2:
            raise ValueError(f"pre_buffer_capacity_bytes must hold whole 16-bit samples, got {value}")
        return value

    @classmethod
    def for_quality_mode(cls, mode: str, **overrides: Any) -> "EngineSettings":
        """Settings for a named preset (``low``, ``balanced`` or ``high``), with overrides applied."""
        if mode not in QUALITY_PRESETS:
            raise ValueError(f"Unknown quality mode '{mode}', expected one of {sorted(QUALITY_PRESETS)}")
        return cls(**{**QUALITY_PRESETS[mode], **overrides})


class TranscriptionSettings(BaseModel):
    """Which transcription service to call and how long to wait for it."""

    model_config = ConfigDict(extra="forbid")

    backend: Literal["whisper_http", "google"] = "whisper_http"
    url: str = DEFAULT_TRANSCRIPTION_URL
    model: str = "whisper-1"
    api_key: Optional[str] = None
    api_key_env: str = "OPENAI_API_KEY"
    language: str = "en"
    prompt: str = DEFAULT_VOCABULARY_PROMPT
    deadline_seconds: float = Field(default=20.0, gt=0)
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    min_audio_bytes: int = Field(default=1000, ge=0)
    google_credentials_path: Optional[str] = None
    google_language_code: str = "en-US"

    def resolve_api_key(self) -> Optional[str]:
        """The configured key, else the value of the ``api_key_env`` variable."""
        if self.api_key:
            return self.api_key
        return os.environ.get(self.api_key_env) or None
