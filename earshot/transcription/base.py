"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.transcription import TranscriptionRequest

logger = logging.getLogger(__name__)

DEFAULT_VOCABULARY_PROMPT = (
    "Voice command for AI assistant. Commands like: open spotify, play music, "
    "open chrome, search for, what time is it, set volume, open notepad, "
    "play Kevin and Perry."
)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    service_name = "transcription"

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    async def transcribe(self, request: TranscriptionRequest) -> str:
        """Send one clip to the service and return the raw transcript.

        Args:
            request: Canonical PCM with language hint and vocabulary prompt

        Returns:
            Transcript text, possibly empty

        Raises:
            TranscriptionServiceError: on a non-success response, malformed
                payload or network fault
            TranscriptionTimeoutError: if the service's own deadline passed
        """
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
