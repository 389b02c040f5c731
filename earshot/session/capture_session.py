"""A single recording session: frame intake, voice activity and audio buffers."""

import logging
import queue
import time
import uuid
from threading import Thread, Event, Lock
from typing import Callable, Optional

from ..audio.buffer import PreBufferRing
from ..audio.level import FrameLevelMeter
from ..audio.normalizer import FormatNormalizer
from ..audio.vad import VoiceActivityDetector, VoiceActivityState
from ..errors import EarshotError, RecognitionErrorKind
from ..models.audio import AudioFrame, AudioStats
from ..models.session import SessionSnapshot

logger = logging.getLogger(__name__)

LevelCallback = Callable[[float, bool], None]
ErrorCallback = Callable[[EarshotError], None]


class CaptureSession:
    """Owns the audio state of one recording, from first frame to seal.

    Frames arrive on the capture thread through ``submit_frame``, which only
    enqueues. A worker thread normalizes, measures and classifies each frame,
    writing to the pre-buffer ring until speech is confirmed and to the
    output buffer afterwards. The endpointing timer reads ``snapshot``.

    ``seal`` ends the session exactly once; after it, the output buffer never
    changes.
    """

    def __init__(self,
                 settings,
                 session_id: Optional[str] = None,
                 clock: Callable[[], float] = time.monotonic,
                 on_level: Optional[LevelCallback] = None,
                 on_error: Optional[ErrorCallback] = None):
        """Initialize the session. Timing starts now.

        Args:
            settings: EngineSettings
            session_id: Identifier used in logs and events
            clock: Monotonic time source in seconds
            on_level: Called on the worker thread with (level, is_loud) per frame
            on_error: Called with non-fatal capture errors
        """
        self.settings = settings
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:8]}"
        self.clock = clock
        self.on_level = on_level
        self.on_error = on_error

        self.normalizer = FormatNormalizer()
        self.meter = FrameLevelMeter()
        self.vad = VoiceActivityDetector(settings.silence_threshold, settings.min_speech_frames_required)
        self.pre_buffer = PreBufferRing(settings.pre_buffer_capacity_bytes)
        self._output = bytearray()

        self._lock = Lock()
        self._sealed = False
        self.recording_start_time = clock()
        self.last_loud_time = self.recording_start_time
        self.sealed_time: Optional[float] = None

        self._queue: "queue.Queue[AudioFrame]" = queue.Queue(maxsize=settings.frame_queue_size)
        self._stop_event = Event()
        self._worker: Optional[Thread] = None
        self._conversion_error_reported = False

        self.frames_received = 0
        self.frames_dropped = 0
        self.frames_processed = 0

        logger.debug(f"CaptureSession {self.session_id} created")

    # Capture thread

    def submit_frame(self, frame: AudioFrame) -> None:
        """Hand a frame to the worker. Never blocks; drops when the queue is full."""
        if self._sealed:
            return
        self.frames_received += 1
        try:
            self._queue.put_nowait(frame)
        except queue.Full:
            self.frames_dropped += 1
            if self.frames_dropped == 1 or self.frames_dropped % 50 == 0:
                logger.warning(f"Frame queue full in {self.session_id}, "
                               f"{self.frames_dropped} frame(s) dropped")

    # Worker thread

    def start_worker(self) -> None:
        if self._worker is not None:
            return
        self._worker = Thread(target=self._worker_loop, daemon=True)
        self._worker.name = f"CaptureSessionWorker-{self.session_id}"
        self._worker.start()

    def join_worker(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning(f"Worker for {self.session_id} did not stop cleanly")

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                frame = self._queue.get(timeout=0.05)
            except queue.Empty:
                continue
            try:
                self.process_frame(frame)
            except Exception as e:
                logger.error(f"Error processing frame #{frame.sequence_number} "
                             f"in {self.session_id}: {e}", exc_info=True)
                self._report(EarshotError(f"Frame processing failed: {e}",
                                          RecognitionErrorKind.CAPTURE_FAILURE))

    def process_frame(self, frame: AudioFrame, now: Optional[float] = None) -> Optional[float]:
        """Run one frame through normalization, level metering and VAD.

        Returns:
            The frame level, or None if the frame carried no usable audio
        """
        now = self.clock() if now is None else now

        converted = self.normalizer.normalize(frame)
        if converted.error and not self._conversion_error_reported:
            self._conversion_error_reported = True
            self._report(EarshotError(f"Cannot convert capture format: {converted.error}",
                                      RecognitionErrorKind.FORMAT_CONVERSION_FAILURE))
        pcm = converted.pcm
        if not pcm:
            return None

        level = self.meter.measure(pcm)
        is_loud = self.vad.is_loud(level)

        with self._lock:
            if self._sealed:
                return level
            was_confirmed = self.vad.is_confirmed
            state = self.vad.update(level)
            if is_loud:
                self.last_loud_time = now
            if state is VoiceActivityState.CONFIRMED:
                if not was_confirmed:
                    onset = self.pre_buffer.drain_in_order()
                    logger.debug(f"Speech onset in {self.session_id}: "
                                 f"splicing {len(onset)} pre-buffered bytes")
                    self._output.extend(onset)
                self._output.extend(pcm)
            else:
                self.pre_buffer.write(pcm)
            self.frames_processed += 1

        if self.on_level is not None:
            self.on_level(level, is_loud)
        return level

    def _report(self, error: EarshotError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            logger.error(f"Session error handler failed: {e}", exc_info=True)

    # Any thread

    def snapshot(self, now: Optional[float] = None) -> SessionSnapshot:
        now = self.clock() if now is None else now
        with self._lock:
            return SessionSnapshot(
                elapsed=now - self.recording_start_time,
                silence=now - self.last_loud_time,
                speech_confirmed=self.vad.is_confirmed,
            )

    def seal(self) -> bool:
        """End the session. Returns True only for the call that actually sealed it."""
        with self._lock:
            if self._sealed:
                return False
            self._sealed = True
            self.sealed_time = self.clock()
        self._stop_event.set()
        logger.info(f"Session {self.session_id} sealed: {len(self._output)} bytes, "
                    f"speech={self.vad.is_confirmed}")
        return True

    def take_audio(self) -> bytes:
        """The recorded canonical PCM (empty if speech was never confirmed)."""
        with self._lock:
            return bytes(self._output)

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    @property
    def is_recording(self) -> bool:
        return not self._sealed

    @property
    def has_detected_speech(self) -> bool:
        return self.vad.is_confirmed

    @property
    def consecutive_loud_frames(self) -> int:
        return self.vad.consecutive_loud_frames

    @property
    def duration_seconds(self) -> float:
        end = self.sealed_time if self.sealed_time is not None else self.clock()
        return end - self.recording_start_time

    def stats(self) -> AudioStats:
        with self._lock:
            captured = len(self._output)
        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=self.duration_seconds,
            frames_received=self.frames_received,
            frames_processed=self.frames_processed,
            frames_dropped=self.frames_dropped,
            bytes_captured=captured,
            peak_level=self.meter.peak_level,
        )
