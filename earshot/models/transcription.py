"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..errors import RecognitionErrorKind


@dataclass(frozen=True)
class TranscriptionRequest:
    """A finalized clip ready for a speech-to-text service."""
    audio: bytes  # Canonical 16 kHz mono 16-bit PCM, no container
    language: str
    prompt: str
    sample_rate: int = 16000


@dataclass
class TranscriptionResult:
    """Result of a transcription dispatch: text, or the reason there is none."""
    text: Optional[str]
    error_kind: Optional[RecognitionErrorKind] = None
    error_message: Optional[str] = None
    processing_time: float = 0.0
    service: str = ""
    audio_bytes: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.error_kind is None and bool(self.text)

    @classmethod
    def failure(cls,
                kind: RecognitionErrorKind,
                message: str,
                **kwargs) -> "TranscriptionResult":
        return cls(text=None, error_kind=kind, error_message=message, **kwargs)
