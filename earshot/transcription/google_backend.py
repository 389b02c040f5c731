"""Google Speech-to-Text transcription backend."""

import asyncio
import time
import logging
from typing import List, Optional

from .base import AbstractTranscriptionBackend
from ..errors import TranscriptionServiceError, TranscriptionTimeoutError
from ..models.transcription import TranscriptionRequest

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

# Speech context phrases are limited in length by the API
MAX_PHRASE_LENGTH = 100


def prompt_to_phrases(prompt: str) -> List[str]:
    """Split a free-text vocabulary prompt into speech-context phrases.

    "Commands like: open spotify, play music." gives
    ["Commands like", "open spotify", "play music"].
    """
    phrases = []
    for sentence in prompt.replace(":", ",").replace(".", ",").split(","):
        phrase = sentence.strip()
        if phrase:
            phrases.append(phrase[:MAX_PHRASE_LENGTH])
    return phrases


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend for transcription."""

    service_name = "Google Speech-to-Text"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 language: str = "en-US",
                 request_timeout: float = 15.0,
                 enable_automatic_punctuation: bool = True):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            request_timeout: Per-request deadline passed to the client
            enable_automatic_punctuation: Enable automatic punctuation
        """
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.language = language
        self.request_timeout = request_timeout
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.client = None
        self.project_id = None

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)

        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")
        logger.info("Google Speech-to-Text backend initialized successfully")
        return True

    def _recognition_config(self, request: TranscriptionRequest) -> speech.RecognitionConfig:
        contexts = []
        phrases = prompt_to_phrases(request.prompt) if request.prompt else []
        if phrases:
            contexts.append(speech.SpeechContext(phrases=phrases))
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=request.sample_rate,
            language_code=self.language,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            speech_contexts=contexts,
            # Use model optimized for short audio
            model="latest_short",
        )

    def _recognize(self, request: TranscriptionRequest) -> str:
        if self.client is None:
            raise TranscriptionServiceError("Google Speech backend is not initialized")

        audio = speech.RecognitionAudio(content=request.audio)
        try:
            response = self.client.recognize(config=self._recognition_config(request),
                                             audio=audio,
                                             timeout=self.request_timeout)
        except gax_exceptions.DeadlineExceeded as e:
            logger.error("Google STT recognize deadline exceeded")
            raise TranscriptionTimeoutError(f"Google Speech recognize timeout: {e}") from e
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            raise TranscriptionServiceError(f"Google Speech API error: {e}") from e

        transcripts = [result.alternatives[0].transcript
                       for result in response.results if result.alternatives]
        return " ".join(t.strip() for t in transcripts if t.strip())

    async def transcribe(self, request: TranscriptionRequest) -> str:
        start_time = time.time()
        logger.debug(f"Audio size: {len(request.audio)} bytes; Language: {self.language}")
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self._recognize, request)
        logger.debug(f"Transcript='{text}' (processing_time: {time.time() - start_time:.3f}s)")
        return text

    def cleanup(self) -> None:
        """Clean up Google Speech client resources."""
        self.client = None
