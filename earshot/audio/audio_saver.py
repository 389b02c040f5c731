"""WAV container encoding for finalized clips."""

import io
import wave
import logging
from pathlib import Path
from typing import Union

from ..models.audio import CANONICAL_FORMAT

logger = logging.getLogger(__name__)


def encode_wav(pcm: bytes,
               sample_rate: int = CANONICAL_FORMAT.sample_rate,
               channels: int = CANONICAL_FORMAT.channels,
               sample_width: int = CANONICAL_FORMAT.bytes_per_sample) -> bytes:
    """Wrap raw PCM in a RIFF/WAV container."""
    output = io.BytesIO()
    with wave.open(output, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return output.getvalue()


def save_wav(filepath: Union[str, Path], pcm: bytes) -> Path:
    """Save canonical PCM to a WAV file.

    Args:
        filepath: Path to save the WAV file; parent directories are created
        pcm: 16 kHz mono 16-bit PCM

    Returns:
        The path written
    """
    path = Path(filepath)
    if not pcm:
        logger.warning(f"No audio data to save to {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_bytes(encode_wav(pcm))
    except OSError as e:
        logger.error(f"Error saving audio file: {e}")
        raise
    logger.info(f"Audio saved to {path} ({len(pcm)} bytes)")
    return path
