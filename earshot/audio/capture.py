"""Microphone capture backends built on PyAudio."""

import pyaudio
import time
import logging
from abc import ABC, abstractmethod
from threading import Thread, Event
from typing import Optional, Callable

from ..errors import DeviceUnavailableError, EarshotError, RecognitionErrorKind
from ..models.audio import AudioFormat, AudioFrame, SampleEncoding, CANONICAL_FORMAT


logger = logging.getLogger(__name__)

FrameCallback = Callable[[AudioFrame], None]
ErrorCallback = Callable[[EarshotError], None]


class AbstractCaptureBackend(ABC):
    """A source of audio frames.

    ``start`` begins delivering frames to ``on_frame`` from a backend-owned
    thread. Every frame is an owned copy. Exceptions raised by ``on_frame``
    are caught and logged here and never reach the audio driver.
    """

    name = "capture"

    def __init__(self, device_index: Optional[int] = None, chunk_ms: int = 100):
        self.device_index = device_index
        self.chunk_ms = chunk_ms
        self._on_frame: Optional[FrameCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._sequence = 0
        self._running = False

    @property
    @abstractmethod
    def format(self) -> AudioFormat:
        """Format of the frames this backend delivers."""
        pass

    @abstractmethod
    def start(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback] = None) -> None:
        """Open the device and start delivering frames.

        Raises:
            DeviceUnavailableError: if no usable input device can be opened
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering frames and release the device. Safe to call twice."""
        pass

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def device_description(self) -> str:
        if self.device_index is None:
            return f"{self.name}:default"
        return f"{self.name}:{self.device_index}"

    def _deliver(self, raw: bytes) -> None:
        """Wrap raw driver bytes in an AudioFrame and hand them to the session."""
        if not raw or self._on_frame is None:
            return
        self._sequence += 1
        frame = AudioFrame(
            data=bytes(raw),
            format=self.format,
            timestamp=time.monotonic(),
            sequence_number=self._sequence,
        )
        try:
            self._on_frame(frame)
        except Exception as e:
            logger.error(f"Frame handler failed on frame #{self._sequence}: {e}", exc_info=True)
            self._report(EarshotError(f"Frame handler failed: {e}", RecognitionErrorKind.CAPTURE_FAILURE))

    def _report(self, error: EarshotError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Capture error handler failed: {e}", exc_info=True)


class PyAudioCallbackBackend(AbstractCaptureBackend):
    """Low-latency capture through a PortAudio stream callback.

    Records float32 at the device's native sample rate with up to two
    channels; the session normalizes to canonical PCM.
    """

    name = "pyaudio-callback"

    def __init__(self, device_index: Optional[int] = None, chunk_ms: int = 100):
        super().__init__(device_index, chunk_ms)
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self._format: Optional[AudioFormat] = None

    @property
    def format(self) -> AudioFormat:
        if self._format is None:
            raise RuntimeError("Capture format is unknown until the stream is started")
        return self._format

    def start(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback] = None) -> None:
        if self._running:
            logger.warning("Capture already running")
            return

        self._on_frame = on_frame
        self._on_error = on_error
        self._sequence = 0

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            info = self._device_info()
            max_channels = int(info.get("maxInputChannels", 0))
            if max_channels < 1:
                raise DeviceUnavailableError(f"Device {info.get('name', '?')} has no input channels")

            sample_rate = int(info.get("defaultSampleRate") or CANONICAL_FORMAT.sample_rate)
            channels = min(2, max_channels)
            self._format = AudioFormat(
                sample_rate=sample_rate,
                bits_per_sample=32,
                channels=channels,
                encoding=SampleEncoding.FLOAT,
            )
            frames_per_buffer = max(1, sample_rate * self.chunk_ms // 1000)

            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=channels,
                rate=sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=frames_per_buffer,
                stream_callback=self._stream_callback,
            )
            self.stream.start_stream()
        except DeviceUnavailableError:
            self._release()
            raise
        except (OSError, IOError) as e:
            self._release()
            raise DeviceUnavailableError(f"Cannot open input device: {e}") from e

        self._running = True
        logger.info(f"Audio stream opened: {self._format.sample_rate}Hz, "
                    f"{self._format.channels} channel(s), float32, {frames_per_buffer} samples/chunk")

    def _device_info(self) -> dict:
        try:
            if self.device_index is None:
                return self.pyaudio_instance.get_default_input_device_info()
            return self.pyaudio_instance.get_device_info_by_index(self.device_index)
        except (OSError, IOError) as e:
            raise DeviceUnavailableError(f"No input device available: {e}") from e

    def _stream_callback(self, in_data, frame_count, time_info, status_flags):
        if status_flags:
            logger.debug(f"PortAudio status flags: {status_flags}")
        self._deliver(in_data)
        return (None, pyaudio.paContinue)

    def stop(self) -> None:
        if not self._running:
            return
        logger.info(f"Stopping audio capture. Total frames: {self._sequence}")
        self._running = False
        self._release()

    def _release(self) -> None:
        if self.stream is not None:
            try:
                if self.stream.is_active():
                    self.stream.stop_stream()
                self.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None


class PyAudioBlockingBackend(AbstractCaptureBackend):
    """Legacy capture: blocking reads of canonical PCM on a dedicated thread."""

    name = "pyaudio-blocking"

    def __init__(self, device_index: Optional[int] = None, chunk_ms: int = 100):
        super().__init__(device_index, chunk_ms)
        self.chunk_size = CANONICAL_FORMAT.sample_rate * chunk_ms // 1000
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    @property
    def format(self) -> AudioFormat:
        return CANONICAL_FORMAT

    def start(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback] = None) -> None:
        if self._running:
            logger.warning("Capture already running")
            return

        self._on_frame = on_frame
        self._on_error = on_error
        self._sequence = 0
        self.stop_event.clear()

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=CANONICAL_FORMAT.channels,
                rate=CANONICAL_FORMAT.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=None,
            )
        except (OSError, IOError) as e:
            self._release()
            raise DeviceUnavailableError(f"Cannot open input device: {e}") from e

        logger.info(f"Audio stream opened: {CANONICAL_FORMAT.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self._running = True
        self.recording_thread.start()

    def _record_continuously(self) -> None:
        """Read loop running on the capture thread until stop is requested."""
        try:
            while not self.stop_event.is_set():
                audio_chunk = self.stream.read(self.chunk_size, exception_on_overflow=False)
                self._deliver(audio_chunk)
        except (OSError, IOError) as e:
            if not self.stop_event.is_set():
                logger.error(f"Audio read failed: {e}")
                self._report(EarshotError(f"Audio read failed: {e}", RecognitionErrorKind.CAPTURE_FAILURE))

    def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping audio capture")
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self._running = False
        self._release()
        logger.info(f"Recording stopped. Total chunks: {self._sequence}")

    def _release(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None


def create_capture_backend(settings) -> AbstractCaptureBackend:
    """Build the capture backend named by ``settings.capture_backend``."""
    if settings.capture_backend == "blocking":
        return PyAudioBlockingBackend(settings.device_index, settings.chunk_ms)
    if settings.capture_backend == "callback":
        return PyAudioCallbackBackend(settings.device_index, settings.chunk_ms)
    raise ValueError(f"Unknown capture backend: {settings.capture_backend}")
