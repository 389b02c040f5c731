"""Speech recognizer: runs recording sessions from start to a single outcome."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event, Lock
from typing import Callable, Optional

from ..audio.audio_pub import (
    EventPublisher,
    TOPIC_AUDIO_LEVEL_CHANGED,
    TOPIC_RECOGNITION_COMPLETE,
    TOPIC_RECOGNITION_ERROR,
    TOPIC_RECORDING_STARTED,
    TOPIC_RECORDING_STOPPED,
    TOPIC_SPEECH_RECOGNIZED,
)
from ..audio.audio_saver import save_wav
from ..audio.capture import AbstractCaptureBackend
from ..errors import EarshotError, RecognitionErrorKind
from ..models.events import (
    AudioLevelChanged,
    RecognitionComplete,
    RecognitionError,
    RecordingStarted,
    RecordingStopped,
    SpeechRecognized,
)
from ..models.session import EndpointDecision, SessionOutcome
from ..models.transcription import TranscriptionResult
from ..session.capture_session import CaptureSession
from ..session.endpointing import EndpointingStateMachine, EndpointTimer
from ..transcription.dispatcher import TranscriptionDispatcher

logger = logging.getLogger(__name__)


@dataclass
class _LiveSession:
    session: CaptureSession
    cancel_event: Event = field(default_factory=Event)
    done_event: Event = field(default_factory=Event)
    timer: Optional[EndpointTimer] = None
    outcome: Optional[SessionOutcome] = None


class SpeechRecognizer:
    """Coordinates capture, endpointing and transcription for one session at a time.

    Every started session ends in exactly one SessionOutcome, whichever of
    the endpoint timer, ``stop_and_transcribe`` or ``cancel`` gets there
    first. ``recognition_complete`` is always the last event of a session and
    is published after the recognizer is free to start the next one.
    """

    def __init__(self,
                 settings,
                 capture_backend: AbstractCaptureBackend,
                 dispatcher: TranscriptionDispatcher,
                 publisher: Optional[EventPublisher] = None,
                 clock: Callable[[], float] = time.monotonic,
                 clip_directory: Optional[str] = None):
        """Initialize the recognizer.

        Args:
            settings: EngineSettings
            capture_backend: Microphone source, started and stopped per session
            dispatcher: Sends finalized clips for transcription
            publisher: Event sink; a default ``earshot`` publisher if None
            clock: Monotonic time source shared with sessions
            clip_directory: When set, each finalized clip is saved there as WAV
        """
        self.settings = settings
        self.capture_backend = capture_backend
        self.dispatcher = dispatcher
        self.publisher = publisher or EventPublisher()
        self.clock = clock
        self.clip_directory = clip_directory

        self._lock = Lock()
        self._live: Optional[_LiveSession] = None
        self.sessions_started = 0

    @property
    def is_recording(self) -> bool:
        return self._live is not None

    @property
    def current_session(self) -> Optional[CaptureSession]:
        live = self._live
        return live.session if live else None

    def start_recording(self) -> Optional[str]:
        """Start a new session.

        Returns:
            The session id, or None if a session is already live or the new
            one was cancelled while the device was opening

        Raises:
            DeviceUnavailableError: if the capture device cannot be opened;
                other backend start failures are re-raised as they are
        """
        live = self._start()
        return live.session.session_id if live else None

    def _start(self) -> Optional[_LiveSession]:
        with self._lock:
            if self._live is not None:
                logger.warning("Recording already in progress")
                return None
            session = CaptureSession(self.settings, clock=self.clock)
            live = _LiveSession(session=session)
            session.on_level = lambda level, loud: self._on_level(session, level, loud)
            session.on_error = lambda error: self._on_capture_error(session, error)
            self._live = live
            self.sessions_started += 1

        logger.info(f"Starting recording session {session.session_id}")
        try:
            self.capture_backend.start(session.submit_frame, session.on_error)
        except Exception as e:
            logger.error(f"Cannot start recording: {e}")
            session.seal()
            with self._lock:
                if self._live is live:
                    self._live = None
            live.done_event.set()
            kind = e.kind if isinstance(e, EarshotError) else RecognitionErrorKind.DEVICE_UNAVAILABLE
            self.publisher.publish(TOPIC_RECOGNITION_ERROR, RecognitionError(
                session_id=session.session_id,
                kind=kind,
                message=str(e),
            ))
            raise

        # A cancel during start stopped a backend that was not yet running
        if session.is_sealed:
            logger.info(f"Session {session.session_id} ended while starting, closing capture")
            self._stop_capture(session)
            return None

        self.publisher.publish(TOPIC_RECORDING_STARTED, RecordingStarted(
            session_id=session.session_id,
            device=self.capture_backend.device_description,
        ))

        session.start_worker()
        live.timer = EndpointTimer(
            EndpointingStateMachine.from_settings(self.settings),
            session.snapshot,
            lambda decision: self._on_endpoint(live, decision),
            poll_interval=self.settings.poll_interval_seconds,
            initial_delay=self.settings.initial_check_delay_seconds,
        )
        live.timer.start()
        if session.is_sealed:
            live.timer.cancel()
        return live

    def stop_and_transcribe(self) -> Optional[SessionOutcome]:
        """Stop the live session now and transcribe what was captured.

        Returns:
            The outcome, or None if there was no session or it was already finishing
        """
        live = self._live
        if live is None:
            logger.warning("No recording in progress")
            return None
        return self._finish(live, "manual", transcribe=True)

    def cancel(self) -> bool:
        """Abandon the live session, including an in-flight transcription."""
        live = self._live
        if live is None:
            return False
        logger.info(f"Cancelling session {live.session.session_id}")
        live.cancel_event.set()
        self._finish(live, "cancelled", transcribe=False,
                     failure_kind=RecognitionErrorKind.CANCELLED,
                     failure_message="Recognition cancelled")
        return True

    def listen_once(self, timeout: Optional[float] = None) -> Optional[SessionOutcome]:
        """Record until endpointing decides, then return the session's outcome.

        Args:
            timeout: Give up and cancel after this many seconds

        Returns:
            The outcome, or None if a session was already live
        """
        live = self._start()
        if live is None:
            return None
        if not live.done_event.wait(timeout):
            logger.warning(f"Session {live.session.session_id} did not finish in {timeout}s")
            live.cancel_event.set()
            self._finish(live, "cancelled", transcribe=False,
                         failure_kind=RecognitionErrorKind.CANCELLED,
                         failure_message=f"No outcome within {timeout}s")
            live.done_event.wait(self.dispatcher.deadline_seconds)
        return live.outcome

    def shutdown(self) -> None:
        self.cancel()
        self.dispatcher.backend.cleanup()

    # Callbacks from session, capture and timer threads

    def _on_level(self, session: CaptureSession, level: float, is_loud: bool) -> None:
        self.publisher.publish(TOPIC_AUDIO_LEVEL_CHANGED, AudioLevelChanged(
            session_id=session.session_id,
            level=level,
            threshold=self.settings.silence_threshold,
            is_above_threshold=is_loud,
        ))

    def _on_capture_error(self, session: CaptureSession, error: EarshotError) -> None:
        logger.warning(f"Capture problem in {session.session_id}: {error}")
        self.publisher.publish(TOPIC_RECOGNITION_ERROR, RecognitionError(
            session_id=session.session_id,
            kind=error.kind,
            message=str(error),
            fatal=False,
        ))

    def _on_endpoint(self, live: _LiveSession, decision: EndpointDecision) -> None:
        if decision.transcribes:
            self._finish(live, decision.value, transcribe=True)
            return
        if decision is EndpointDecision.NO_SPEECH:
            message = f"No speech within {self.settings.no_speech_timeout_seconds:.1f}s"
        else:
            message = "Only silence was heard"
        self._finish(live, decision.value, transcribe=False,
                     failure_kind=RecognitionErrorKind.NO_SPEECH_DETECTED,
                     failure_message=message)

    def _finish(self,
                live: _LiveSession,
                reason: str,
                transcribe: bool,
                failure_kind: Optional[RecognitionErrorKind] = None,
                failure_message: str = "") -> Optional[SessionOutcome]:
        session = live.session
        if not session.seal():
            logger.debug(f"Session {session.session_id} already finishing, ignoring '{reason}'")
            return None

        outcome = None
        audio = b""
        try:
            if live.timer is not None:
                live.timer.cancel()
            self._stop_capture(session)
            session.join_worker()

            audio = session.take_audio()
            duration = session.duration_seconds
            stats = session.stats()
            logger.info(f"Session {session.session_id} stopped ({reason}): {duration:.2f}s, "
                        f"{len(audio)} bytes, {stats.frames_dropped} frame(s) dropped, "
                        f"peak level {stats.peak_level:.0f}")
            self.publisher.publish(TOPIC_RECORDING_STOPPED, RecordingStopped(
                session_id=session.session_id,
                reason=reason,
                duration_seconds=duration,
                audio_bytes=len(audio),
            ))

            if self.clip_directory and audio:
                self._save_clip(session.session_id, audio)

            if transcribe:
                result = self.dispatcher.dispatch(audio, live.cancel_event)
            else:
                result = TranscriptionResult.failure(failure_kind, failure_message, audio_bytes=len(audio))

            outcome = SessionOutcome(
                session_id=session.session_id,
                reason=reason,
                result=result,
                audio_bytes=len(audio),
                duration_seconds=duration,
            )
            if result.success:
                self.publisher.publish(TOPIC_SPEECH_RECOGNIZED, SpeechRecognized(
                    session_id=session.session_id,
                    text=result.text,
                ))
            else:
                self.publisher.publish(TOPIC_RECOGNITION_ERROR, RecognitionError(
                    session_id=session.session_id,
                    kind=result.error_kind,
                    message=result.error_message or "",
                ))
        except Exception as e:
            logger.error(f"Session {session.session_id} failed while finishing: {e}", exc_info=True)
            session.join_worker()
            outcome = SessionOutcome(
                session_id=session.session_id,
                reason=reason,
                result=TranscriptionResult.failure(RecognitionErrorKind.CAPTURE_FAILURE, str(e),
                                                   audio_bytes=len(audio)),
                audio_bytes=len(audio),
                duration_seconds=session.duration_seconds,
            )
            self.publisher.publish(TOPIC_RECOGNITION_ERROR, RecognitionError(
                session_id=session.session_id,
                kind=RecognitionErrorKind.CAPTURE_FAILURE,
                message=str(e),
            ))
        finally:
            with self._lock:
                if self._live is live:
                    self._live = None
            live.outcome = outcome
            self.publisher.publish(TOPIC_RECOGNITION_COMPLETE, RecognitionComplete(
                session_id=session.session_id,
                outcome=outcome,
            ))
            live.done_event.set()
        return outcome

    def _stop_capture(self, session: CaptureSession) -> None:
        try:
            self.capture_backend.stop()
        except OSError as e:
            logger.error(f"Error stopping capture for {session.session_id}: {e}")

    def _save_clip(self, session_id: str, audio: bytes) -> None:
        try:
            save_wav(Path(self.clip_directory) / f"{session_id}.wav", audio)
        except OSError as e:
            logger.error(f"Could not save clip for {session_id}: {e}")
