"""Level-threshold voice activity detection with two-stage hysteresis."""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class VoiceActivityState(Enum):
    QUIET = "quiet"
    ARMING_SPEECH = "arming_speech"
    CONFIRMED = "confirmed"


class VoiceActivityDetector:
    """Confirms speech only after N consecutive frames above the threshold.

    A single loud frame (a click, a door, a cable pop) only arms the detector;
    any quiet frame before confirmation drops it back to QUIET and resets the
    counter. CONFIRMED is terminal until ``reset()``.
    """

    def __init__(self, threshold: float, min_speech_frames: int = 2):
        if min_speech_frames < 1:
            raise ValueError(f"min_speech_frames must be >= 1, got {min_speech_frames}")
        self.threshold = threshold
        self.min_speech_frames = min_speech_frames
        self.state = VoiceActivityState.QUIET
        self.consecutive_loud_frames = 0

    @property
    def is_confirmed(self) -> bool:
        return self.state is VoiceActivityState.CONFIRMED

    def is_loud(self, level: float) -> bool:
        return level > self.threshold

    def update(self, level: float) -> VoiceActivityState:
        """Feed one frame level and return the resulting state."""
        if self.is_loud(level):
            self.consecutive_loud_frames += 1
        else:
            self.consecutive_loud_frames = 0

        if self.state is VoiceActivityState.CONFIRMED:
            return self.state

        if self.consecutive_loud_frames >= self.min_speech_frames:
            self.state = VoiceActivityState.CONFIRMED
            logger.info(f"Speech confirmed at level {level:.0f} after "
                        f"{self.consecutive_loud_frames} frames")
        elif self.consecutive_loud_frames > 0:
            self.state = VoiceActivityState.ARMING_SPEECH
        else:
            self.state = VoiceActivityState.QUIET
        return self.state

    def reset(self) -> None:
        self.state = VoiceActivityState.QUIET
        self.consecutive_loud_frames = 0
