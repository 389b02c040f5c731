"""Quick microphone check: record briefly and report the level."""

import logging
import time
from dataclasses import dataclass
from threading import Lock

from ..errors import DeviceUnavailableError
from ..models.audio import AudioFrame
from .capture import AbstractCaptureBackend
from .level import FrameLevelMeter
from .normalizer import FormatNormalizer

logger = logging.getLogger(__name__)

# Even a quiet room produces a noise floor above this
MIN_WORKING_LEVEL = 1.0


@dataclass
class MicrophoneProbe:
    working: bool
    level: float
    bytes_captured: int
    message: str


def probe_microphone(backend: AbstractCaptureBackend,
                     duration_seconds: float = 0.3) -> MicrophoneProbe:
    """Record for ``duration_seconds`` and report whether the mic produced signal.

    Args:
        backend: A stopped capture backend; it is stopped again before returning
        duration_seconds: How long to record

    Returns:
        MicrophoneProbe; never raises for a missing device
    """
    normalizer = FormatNormalizer()
    meter = FrameLevelMeter()
    lock = Lock()
    captured = 0

    def on_frame(frame: AudioFrame) -> None:
        nonlocal captured
        pcm = normalizer.normalize(frame).pcm
        with lock:
            captured += len(pcm)
            meter.measure(pcm)

    try:
        backend.start(on_frame)
    except DeviceUnavailableError as e:
        logger.warning(f"Microphone probe failed: {e}")
        return MicrophoneProbe(working=False, level=0.0, bytes_captured=0, message=str(e))

    try:
        time.sleep(duration_seconds)
    finally:
        backend.stop()

    with lock:
        level = meter.peak_level
        total = captured

    working = level > MIN_WORKING_LEVEL and total > 0
    if working:
        message = f"Microphone working (level {level:.0f})"
    elif total == 0:
        message = "No audio received from the microphone"
    else:
        message = f"Microphone is silent (level {level:.1f}); it may be muted"
    logger.info(f"Microphone probe: {message}, {total} bytes")
    return MicrophoneProbe(working=working, level=level, bytes_captured=total, message=message)
