"""Audio-related data models."""

from dataclasses import dataclass
from enum import Enum


class SampleEncoding(Enum):
    """How samples are stored in a capture buffer."""
    PCM_INT = "pcm_int"
    FLOAT = "float"


@dataclass(frozen=True)
class AudioFormat:
    """Sample format descriptor reported by a capture backend."""
    sample_rate: int
    bits_per_sample: int
    channels: int
    encoding: SampleEncoding = SampleEncoding.PCM_INT

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        """Bytes per sample frame (one sample for every channel)."""
        return self.bytes_per_sample * self.channels

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.block_align

    def is_canonical(self) -> bool:
        return self == CANONICAL_FORMAT


# 16 kHz mono 16-bit signed PCM, required by the transcription services
CANONICAL_FORMAT = AudioFormat(sample_rate=16000, bits_per_sample=16, channels=1)
CANONICAL_BYTES_PER_SECOND = CANONICAL_FORMAT.bytes_per_second


@dataclass(frozen=True)
class AudioFrame:
    """One capture callback's worth of audio.

    ``data`` is always an owned copy; backends never hand out their own
    buffers.
    """
    data: bytes
    format: AudioFormat
    timestamp: float  # Monotonic time when the frame was captured
    sequence_number: int = 0

    @property
    def duration_seconds(self) -> float:
        if self.format.bytes_per_second <= 0:
            return 0.0
        return len(self.data) / self.format.bytes_per_second


@dataclass
class AudioStats:
    """Capture session statistics."""
    is_recording: bool
    duration_seconds: float
    frames_received: int
    frames_processed: int
    frames_dropped: int
    bytes_captured: int
    peak_level: float
