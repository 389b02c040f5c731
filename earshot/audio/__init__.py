"""Audio capture and processing module."""

from .buffer import PreBufferRing
from .capture import (
    AbstractCaptureBackend,
    PyAudioBlockingBackend,
    PyAudioCallbackBackend,
    create_capture_backend,
)
from .level import FrameLevelMeter, frame_rms
from .normalizer import ConversionResult, FormatNormalizer
from .vad import VoiceActivityDetector, VoiceActivityState

__all__ = [
    'PreBufferRing',
    'AbstractCaptureBackend',
    'PyAudioBlockingBackend',
    'PyAudioCallbackBackend',
    'create_capture_backend',
    'FrameLevelMeter',
    'frame_rms',
    'ConversionResult',
    'FormatNormalizer',
    'VoiceActivityDetector',
    'VoiceActivityState',
]
