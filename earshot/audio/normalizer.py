"""Conversion of arbitrary capture formats to canonical 16 kHz mono 16-bit PCM."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..models.audio import AudioFormat, AudioFrame, SampleEncoding, CANONICAL_FORMAT

logger = logging.getLogger(__name__)

_INT16_MIN = -32768
_INT16_MAX = 32767

_FLOAT_DTYPES = {32: "<f4", 64: "<f8"}


@dataclass(frozen=True)
class ConversionResult:
    """Canonical PCM plus what could not be converted."""
    pcm: bytes
    dropped_bytes: int = 0
    error: Optional[str] = None


class FormatNormalizer:
    """Converts capture frames to ``CANONICAL_FORMAT``.

    Resampling is nearest-neighbour (source index ``floor(i * src_rate / 16000)``),
    which is good enough for level detection and speech-to-text, not for
    listening. Channels are averaged. Float samples are scaled by 32767 and
    clamped to the int16 range.

    ``normalize`` never raises: incomplete trailing samples are dropped, and an
    unsupported format yields empty PCM with ``error`` set.
    """

    target = CANONICAL_FORMAT

    def normalize(self, frame: AudioFrame) -> ConversionResult:
        fmt = frame.format
        data = frame.data

        if fmt.is_canonical():
            usable = len(data) - (len(data) % 2)
            pcm = data if usable == len(data) else data[:usable]
            return ConversionResult(pcm=pcm, dropped_bytes=len(data) - usable)

        problem = self._check_format(fmt)
        if problem:
            logger.warning(f"Cannot convert frame #{frame.sequence_number}: {problem}")
            return ConversionResult(pcm=b"", dropped_bytes=len(data), error=problem)

        frame_count = len(data) // fmt.block_align
        usable = frame_count * fmt.block_align
        if frame_count == 0:
            return ConversionResult(pcm=b"", dropped_bytes=len(data))

        samples = self._decode(data[:usable], fmt).reshape(frame_count, fmt.channels)
        mono = samples.mean(axis=1) if fmt.channels > 1 else samples[:, 0]
        mono = self._resample(mono, fmt.sample_rate)

        pcm = np.clip(mono, _INT16_MIN, _INT16_MAX).astype("<i2").tobytes()
        return ConversionResult(pcm=pcm, dropped_bytes=len(data) - usable)

    @staticmethod
    def _check_format(fmt: AudioFormat) -> Optional[str]:
        if fmt.sample_rate <= 0:
            return f"invalid sample rate {fmt.sample_rate}"
        if fmt.channels <= 0:
            return f"invalid channel count {fmt.channels}"
        if fmt.encoding is SampleEncoding.FLOAT:
            if fmt.bits_per_sample not in _FLOAT_DTYPES:
                return f"unsupported float width {fmt.bits_per_sample} bits"
        elif fmt.bits_per_sample not in (8, 16, 24, 32):
            return f"unsupported PCM width {fmt.bits_per_sample} bits"
        return None

    @staticmethod
    def _decode(raw: bytes, fmt: AudioFormat) -> np.ndarray:
        """Decode interleaved samples to float64 on the int16 scale."""
        bits = fmt.bits_per_sample
        if fmt.encoding is SampleEncoding.FLOAT:
            values = np.frombuffer(raw, dtype=_FLOAT_DTYPES[bits]).astype(np.float64)
            values = np.nan_to_num(values, nan=0.0, posinf=1.0, neginf=-1.0)
            return values * 32767.0
        if bits == 8:
            # 8-bit WAV-style PCM is unsigned, centred on 128
            return (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) * 256.0
        if bits == 16:
            return np.frombuffer(raw, dtype="<i2").astype(np.float64)
        if bits == 24:
            triplets = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
            values = triplets[:, 0] | (triplets[:, 1] << 8) | (triplets[:, 2] << 16)
            values = np.where(values & 0x800000, values - 0x1000000, values)
            return values.astype(np.float64) / 256.0
        return np.frombuffer(raw, dtype="<i4").astype(np.float64) / 65536.0

    def _resample(self, mono: np.ndarray, source_rate: int) -> np.ndarray:
        target_rate = self.target.sample_rate
        if source_rate == target_rate:
            return mono
        source_count = len(mono)
        output_count = source_count * target_rate // source_rate
        if output_count == 0:
            return mono[:0]
        indices = (np.arange(output_count, dtype=np.int64) * source_rate) // target_rate
        np.minimum(indices, source_count - 1, out=indices)
        return mono[indices]
