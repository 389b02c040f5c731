"""Transcription backends and dispatch."""

import logging

from .base import AbstractTranscriptionBackend, DEFAULT_VOCABULARY_PROMPT
from .dispatcher import TranscriptionDispatcher
from .whisper_backend import WhisperHttpBackend, DEFAULT_TRANSCRIPTION_URL

logger = logging.getLogger(__name__)


def create_transcription_backend(settings) -> AbstractTranscriptionBackend:
    """Build and initialize the backend named by ``settings.backend``."""
    if settings.backend == "whisper_http":
        backend = WhisperHttpBackend(
            api_key=settings.resolve_api_key(),
            url=settings.url,
            model=settings.model,
            request_timeout=settings.request_timeout_seconds,
        )
    elif settings.backend == "google":
        from .google_backend import GoogleSpeechBackend
        backend = GoogleSpeechBackend(
            credentials_path=settings.google_credentials_path,
            language=settings.google_language_code,
            request_timeout=settings.request_timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown transcription backend: {settings.backend}")

    backend.initialize()
    logger.info(f"Transcription backend: {backend.service_name}")
    return backend


__all__ = [
    'AbstractTranscriptionBackend',
    'DEFAULT_VOCABULARY_PROMPT',
    'DEFAULT_TRANSCRIPTION_URL',
    'TranscriptionDispatcher',
    'WhisperHttpBackend',
    'create_transcription_backend',
]
