"""Data models for the earshot engine."""

from .audio import (
    AudioFormat,
    AudioFrame,
    AudioStats,
    SampleEncoding,
    CANONICAL_FORMAT,
    CANONICAL_BYTES_PER_SECOND,
)
from .transcription import TranscriptionRequest, TranscriptionResult
from .session import EndpointDecision, SessionSnapshot, SessionOutcome
from .events import (
    RecordingStarted,
    RecordingStopped,
    AudioLevelChanged,
    SpeechRecognized,
    RecognitionError,
    RecognitionComplete,
)

__all__ = [
    "AudioFormat",
    "AudioFrame",
    "AudioStats",
    "SampleEncoding",
    "CANONICAL_FORMAT",
    "CANONICAL_BYTES_PER_SECOND",
    "TranscriptionRequest",
    "TranscriptionResult",
    "EndpointDecision",
    "SessionSnapshot",
    "SessionOutcome",
    # Events
    "RecordingStarted",
    "RecordingStopped",
    "AudioLevelChanged",
    "SpeechRecognized",
    "RecognitionError",
    "RecognitionComplete",
]
