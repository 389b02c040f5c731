"""Pytest configuration and fixtures for earshot tests."""

import asyncio
import pytest
import tempfile
import logging
from unittest.mock import Mock, patch
import numpy as np

from earshot.audio.capture import AbstractCaptureBackend
from earshot.config.settings import EngineSettings
from earshot.errors import DeviceUnavailableError
from earshot.models.audio import AudioFormat, AudioFrame, CANONICAL_FORMAT
from earshot.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no I/O")
    config.addinivalue_line("markers", "integration: multi-component tests with threads")
    config.addinivalue_line("markers", "hardware: needs a real microphone")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeCaptureBackend(AbstractCaptureBackend):
    """Capture backend driven by the test through ``emit``."""

    name = "fake"

    def __init__(self, audio_format: AudioFormat = CANONICAL_FORMAT, fail_on_start: bool = False):
        super().__init__()
        self._format = audio_format
        self.fail_on_start = fail_on_start
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def format(self) -> AudioFormat:
        return self._format

    def start(self, on_frame, on_error=None) -> None:
        self.start_calls += 1
        if self.fail_on_start:
            raise DeviceUnavailableError("No microphone connected")
        self._on_frame = on_frame
        self._on_error = on_error
        self._running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False

    def emit(self, pcm: bytes) -> None:
        if self._running:
            self._deliver(pcm)


class RecordingPublisher:
    """Collects published events in order instead of sending them over pubsub."""

    def __init__(self):
        self.events = []
        self.listeners = {}

    def publish(self, name, event):
        self.events.append((name, event))
        for listener in self.listeners.get(name, []):
            listener(event)

    def subscribe(self, name, listener):
        self.listeners.setdefault(name, []).append(listener)

    def names(self):
        return [name for name, _ in self.events]

    def of(self, name):
        return [event for n, event in self.events if n == name]


def constant_pcm(level: float, samples: int = 1600) -> bytes:
    """Canonical PCM whose RMS equals ``level``."""
    return np.full(samples, int(level), dtype="<i2").tobytes()


def make_frame(level: float, samples: int = 1600, sequence_number: int = 0) -> AudioFrame:
    """A 100 ms canonical frame at a constant level."""
    return AudioFrame(data=constant_pcm(level, samples), format=CANONICAL_FORMAT,
                      timestamp=0.0, sequence_number=sequence_number)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_backend():
    return FakeCaptureBackend()


@pytest.fixture
def recording_publisher():
    return RecordingPublisher()


@pytest.fixture
def engine_settings():
    return EngineSettings()


@pytest.fixture
def fast_settings():
    """Short timings so threaded tests finish quickly."""
    return EngineSettings(
        silence_timeout_seconds=0.5,
        no_speech_timeout_seconds=1.0,
        max_recording_seconds=3.0,
        poll_interval_seconds=0.02,
        initial_check_delay_seconds=0.05,
        extended_silence_after_seconds=0.6,
        extended_silence_seconds=0.5,
    )


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 3200  # Silent audio
        mock_stream.is_active.return_value = True
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            'name': 'Mock Microphone',
            'maxInputChannels': 2,
            'defaultSampleRate': 48000.0,
        }

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            numpy array of float samples in [-1, 1]
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            return np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            return np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            return np.zeros(samples)
        raise ValueError(f"Unknown pattern: {pattern}")

    return generate_audio


class ScriptedBackend(AbstractTranscriptionBackend):
    """Transcription backend that returns a fixed text, raises, or hangs."""

    service_name = "scripted"

    def __init__(self, text="open spotify", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.requests = []

    def initialize(self) -> bool:
        return True

    async def transcribe(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text

    def cleanup(self) -> None:
        pass
