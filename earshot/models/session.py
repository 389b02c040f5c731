"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import RecognitionErrorKind
from .transcription import TranscriptionResult


class EndpointDecision(Enum):
    """The single stop decision an endpointing run can make."""
    MAX_DURATION = "max_duration"
    NO_SPEECH = "no_speech"
    SILENCE = "silence"
    EXTENDED_SILENCE = "extended_silence"

    @property
    def transcribes(self) -> bool:
        """Whether the captured clip is sent for transcription."""
        return self in (EndpointDecision.MAX_DURATION, EndpointDecision.SILENCE)


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of a capture session read by the endpointing timer."""
    elapsed: float
    silence: float
    speech_confirmed: bool


@dataclass
class SessionOutcome:
    """How a recording session ended. Produced exactly once per session."""
    session_id: str
    reason: str  # EndpointDecision value, "manual" or "cancelled"
    result: TranscriptionResult
    audio_bytes: int
    duration_seconds: float

    @property
    def text(self) -> Optional[str]:
        return self.result.text if self.result.success else None

    @property
    def error_kind(self) -> Optional[RecognitionErrorKind]:
        return self.result.error_kind
