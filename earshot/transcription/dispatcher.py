"""Sends finalized clips to a transcription backend under a hard deadline."""

import asyncio
import logging
import time
from threading import Event
from typing import Optional

from .base import AbstractTranscriptionBackend, DEFAULT_VOCABULARY_PROMPT
from ..errors import EarshotError, RecognitionErrorKind
from ..models.transcription import TranscriptionRequest, TranscriptionResult

logger = logging.getLogger(__name__)

NO_SPEECH_MESSAGE = "Couldn't understand"


class TranscriptionDispatcher:
    """Turns a clip into exactly one TranscriptionResult.

    One backend request per clip, no retries. The request is raced against
    the overall deadline and an optional cancel event, so a hung transport
    never holds the caller past the deadline. ``transcribe`` and ``dispatch``
    never raise; every failure is a typed result.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 language: str = "en",
                 prompt: str = DEFAULT_VOCABULARY_PROMPT,
                 deadline_seconds: float = 20.0,
                 min_audio_bytes: int = 1000,
                 cancel_poll_interval: float = 0.05):
        self.backend = backend
        self.language = language
        self.prompt = prompt
        self.deadline_seconds = deadline_seconds
        self.min_audio_bytes = min_audio_bytes
        self.cancel_poll_interval = cancel_poll_interval

    @classmethod
    def from_settings(cls, backend: AbstractTranscriptionBackend, settings) -> "TranscriptionDispatcher":
        return cls(
            backend,
            language=settings.language,
            prompt=settings.prompt,
            deadline_seconds=settings.deadline_seconds,
            min_audio_bytes=settings.min_audio_bytes,
        )

    def dispatch(self, pcm: bytes, cancel_event: Optional[Event] = None) -> TranscriptionResult:
        """Blocking variant of ``transcribe`` with a private event loop on the calling thread."""
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self.transcribe(pcm, cancel_event))
        finally:
            loop.close()

    async def transcribe(self, pcm: bytes, cancel_event: Optional[Event] = None) -> TranscriptionResult:
        start_time = time.time()
        service = self.backend.service_name
        audio_bytes = len(pcm)

        def failure(kind: RecognitionErrorKind, message: str) -> TranscriptionResult:
            logger.warning(f"Transcription failed ({kind.value}): {message}")
            return TranscriptionResult.failure(kind, message,
                                               processing_time=time.time() - start_time,
                                               service=service,
                                               audio_bytes=audio_bytes)

        if audio_bytes < self.min_audio_bytes:
            return failure(RecognitionErrorKind.NO_AUDIO_CAPTURED,
                           f"Only {audio_bytes} bytes of audio captured")
        if cancel_event is not None and cancel_event.is_set():
            return failure(RecognitionErrorKind.CANCELLED, "Cancelled before dispatch")

        request = TranscriptionRequest(audio=pcm, language=self.language, prompt=self.prompt)
        logger.info(f"Dispatching {audio_bytes} bytes to {service} "
                    f"(deadline {self.deadline_seconds:.1f}s)")

        task = asyncio.ensure_future(self.backend.transcribe(request))
        waiters = {task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(self._wait_for_event(cancel_event))
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.deadline_seconds,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self._abandon(waiters)

        if cancel_task is not None and cancel_task in done:
            return failure(RecognitionErrorKind.CANCELLED, "Transcription cancelled")
        if task not in done:
            return failure(RecognitionErrorKind.TRANSCRIPTION_TIMEOUT,
                           f"No transcript within {self.deadline_seconds:.1f}s")

        try:
            text = task.result()
        except EarshotError as e:
            return failure(e.kind, str(e))
        except asyncio.TimeoutError as e:
            return failure(RecognitionErrorKind.TRANSCRIPTION_TIMEOUT, f"Transport timeout: {e}")
        except Exception as e:
            logger.error(f"Unexpected error from {service}: {e}", exc_info=True)
            return failure(RecognitionErrorKind.TRANSCRIPTION_SERVICE_ERROR, str(e) or type(e).__name__)

        text = (text or "").strip()
        if not text:
            return failure(RecognitionErrorKind.NO_SPEECH_DETECTED, NO_SPEECH_MESSAGE)

        processing_time = time.time() - start_time
        logger.info(f"Transcribed {audio_bytes} bytes in {processing_time:.2f}s: '{text}'")
        return TranscriptionResult(text=text,
                                   processing_time=processing_time,
                                   service=service,
                                   audio_bytes=audio_bytes)

    async def _wait_for_event(self, event: Event) -> None:
        while not event.is_set():
            await asyncio.sleep(self.cancel_poll_interval)

    @staticmethod
    async def _abandon(tasks) -> None:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.wait(pending, timeout=0.25)
