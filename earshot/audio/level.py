"""Per-frame loudness metric used as the voice activity signal."""

import numpy as np


def frame_rms(pcm: bytes) -> float:
    """Root-mean-square of little-endian 16-bit PCM samples.

    Returns 0.0 for empty input. A trailing odd byte is ignored.
    """
    sample_count = len(pcm) // 2
    if sample_count == 0:
        return 0.0
    samples = np.frombuffer(pcm, dtype="<i2", count=sample_count).astype(np.float64)
    return float(np.sqrt(np.mean(np.square(samples))))


class FrameLevelMeter:
    """Measures frame levels and remembers the loudest one seen."""

    def __init__(self):
        self.peak_level = 0.0
        self.frames_measured = 0

    def measure(self, pcm: bytes) -> float:
        level = frame_rms(pcm)
        self.frames_measured += 1
        if level > self.peak_level:
            self.peak_level = level
        return level

    def reset(self) -> None:
        self.peak_level = 0.0
        self.frames_measured = 0
