"""Whisper-compatible HTTP transcription backend."""

import logging
import time
from typing import Optional

import aiohttp

from .base import AbstractTranscriptionBackend
from ..audio.audio_saver import encode_wav
from ..errors import TranscriptionServiceError
from ..models.transcription import TranscriptionRequest

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"


class WhisperHttpBackend(AbstractTranscriptionBackend):
    """Posts a WAV clip as multipart form data to an OpenAI-compatible endpoint."""

    service_name = "Whisper HTTP"

    def __init__(self,
                 api_key: Optional[str] = None,
                 url: str = DEFAULT_TRANSCRIPTION_URL,
                 model: str = "whisper-1",
                 request_timeout: float = 15.0):
        """Initialize the HTTP backend.

        Args:
            api_key: Bearer token; omitted from the request when None
            url: Transcription endpoint
            model: Model name sent in the ``model`` form field
            request_timeout: Transport timeout for one request, in seconds
        """
        self.api_key = api_key
        self.url = url
        self.model = model
        self.request_timeout = request_timeout

    def initialize(self) -> bool:
        if not self.api_key:
            logger.warning(f"No API key configured for {self.url}; sending unauthenticated requests")
        logger.info(f"{self.service_name} backend ready: {self.url} (model {self.model})")
        return True

    def _build_form(self, request: TranscriptionRequest) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("file", encode_wav(request.audio, sample_rate=request.sample_rate),
                       filename="audio.wav", content_type="audio/wav")
        form.add_field("model", self.model)
        if request.language:
            form.add_field("language", request.language)
        if request.prompt:
            form.add_field("prompt", request.prompt)
        return form

    async def transcribe(self, request: TranscriptionRequest) -> str:
        start_time = time.time()
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.debug(f"Posting {len(request.audio)} bytes to {self.url}; "
                     f"language: {request.language}; model: {self.model}")

        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, data=self._build_form(request), headers=headers) as response:
                    body = await response.text()
                    if response.status < 200 or response.status >= 300:
                        raise TranscriptionServiceError(
                            f"Transcription service returned HTTP {response.status}: {body[:200]}")
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        raise TranscriptionServiceError(f"Malformed transcription response: {e}") from e
        except aiohttp.ClientError as e:
            logger.error(f"Transcription request to {self.url} failed: {e}")
            raise TranscriptionServiceError(f"Transcription request failed: {e}") from e

        if not isinstance(payload, dict) or "text" not in payload:
            raise TranscriptionServiceError("Transcription response has no 'text' field")

        text = payload["text"] or ""
        logger.debug(f"Transcript='{text}' (processing_time: {time.time() - start_time:.3f}s)")
        return str(text)

    def cleanup(self) -> None:
        pass
