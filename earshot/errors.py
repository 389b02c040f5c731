"""Error taxonomy shared by capture, endpointing and transcription."""

from enum import Enum
from typing import Optional


class RecognitionErrorKind(Enum):
    """Why a recognition session did not produce text."""
    DEVICE_UNAVAILABLE = "device_unavailable"
    NO_SPEECH_DETECTED = "no_speech"
    NO_AUDIO_CAPTURED = "no_audio"
    TRANSCRIPTION_TIMEOUT = "transcription_timeout"
    TRANSCRIPTION_SERVICE_ERROR = "transcription_service_error"
    FORMAT_CONVERSION_FAILURE = "format_conversion_failure"
    CAPTURE_FAILURE = "capture_failure"
    CANCELLED = "cancelled"

    @property
    def is_soft(self) -> bool:
        """Recovered locally; callers should just restart listening."""
        return self in (RecognitionErrorKind.NO_SPEECH_DETECTED,
                        RecognitionErrorKind.NO_AUDIO_CAPTURED)

    @property
    def is_retryable(self) -> bool:
        return self in (RecognitionErrorKind.TRANSCRIPTION_TIMEOUT,
                        RecognitionErrorKind.TRANSCRIPTION_SERVICE_ERROR)


class EarshotError(Exception):
    """Base exception carrying a RecognitionErrorKind."""

    kind = RecognitionErrorKind.CAPTURE_FAILURE

    def __init__(self, message: str, kind: Optional[RecognitionErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class DeviceUnavailableError(EarshotError):
    """No usable capture device; fatal to the start call."""
    kind = RecognitionErrorKind.DEVICE_UNAVAILABLE


class TranscriptionServiceError(EarshotError):
    """Non-success response, malformed payload or network fault."""
    kind = RecognitionErrorKind.TRANSCRIPTION_SERVICE_ERROR


class TranscriptionTimeoutError(EarshotError):
    """The transcription provider reported its own deadline as exceeded."""
    kind = RecognitionErrorKind.TRANSCRIPTION_TIMEOUT
