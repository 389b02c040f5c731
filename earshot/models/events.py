"""Event models published to callers over pub/sub."""

from dataclasses import dataclass

from ..errors import RecognitionErrorKind
from .session import SessionOutcome


@dataclass(frozen=True)
class RecordingStarted:
    session_id: str
    device: str


@dataclass(frozen=True)
class RecordingStopped:
    session_id: str
    reason: str
    duration_seconds: float
    audio_bytes: int


@dataclass(frozen=True)
class AudioLevelChanged:
    """Fired once per processed frame, for live level meters."""
    session_id: str
    level: float
    threshold: float
    is_above_threshold: bool


@dataclass(frozen=True)
class SpeechRecognized:
    session_id: str
    text: str


@dataclass(frozen=True)
class RecognitionError:
    """A failure. ``fatal`` is False for capture-side problems the session survived."""
    session_id: str
    kind: RecognitionErrorKind
    message: str
    fatal: bool = True


@dataclass(frozen=True)
class RecognitionComplete:
    """Always the last event of a session, success or failure."""
    session_id: str
    outcome: SessionOutcome

    @property
    def success(self) -> bool:
        return self.outcome.result.success
