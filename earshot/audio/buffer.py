"""Circular pre-speech audio buffer."""

import logging

logger = logging.getLogger(__name__)

# ~1.5 seconds of canonical audio (16 kHz, 16-bit, mono)
DEFAULT_PRE_BUFFER_BYTES = 48000


class PreBufferRing:
    """Fixed-capacity ring of the most recent audio captured before speech was confirmed.

    The backing ``bytearray`` is allocated once; writes overwrite the oldest
    bytes in place. When speech is confirmed the session drains the ring and
    splices it in front of the recording, so the first syllable of an
    utterance is not lost.

    Only the session worker thread touches the ring.
    """

    def __init__(self, capacity_bytes: int = DEFAULT_PRE_BUFFER_BYTES):
        """Initialize the ring.

        Args:
            capacity_bytes: Maximum number of bytes retained
        """
        if capacity_bytes <= 0:
            raise ValueError(f"Pre-buffer capacity must be positive, got {capacity_bytes}")
        self.capacity = capacity_bytes
        self._buffer = bytearray(capacity_bytes)
        self._write_pos = 0
        self.is_full = False

        logger.debug(f"PreBufferRing initialized: {capacity_bytes} bytes")

    def __len__(self) -> int:
        return self.capacity if self.is_full else self._write_pos

    @property
    def write_position(self) -> int:
        return self._write_pos

    def write(self, data: bytes) -> None:
        """Append bytes, wrapping around and overwriting the oldest data."""
        size = len(data)
        if size == 0:
            return

        view = memoryview(data)
        if size >= self.capacity:
            # Only the newest `capacity` bytes can survive
            self._buffer[:] = view[size - self.capacity:]
            self._write_pos = 0
            self.is_full = True
            return

        first = min(size, self.capacity - self._write_pos)
        self._buffer[self._write_pos:self._write_pos + first] = view[:first]
        remaining = size - first
        if remaining:
            self._buffer[:remaining] = view[first:]
            self._write_pos = remaining
            self.is_full = True
        else:
            self._write_pos += first
            if self._write_pos == self.capacity:
                self._write_pos = 0
                self.is_full = True

    def drain_in_order(self) -> bytes:
        """Return the buffered bytes oldest-to-newest and empty the ring."""
        if self.is_full:
            data = bytes(self._buffer[self._write_pos:]) + bytes(self._buffer[:self._write_pos])
        else:
            data = bytes(self._buffer[:self._write_pos])
        self.reset()
        return data

    def reset(self) -> None:
        self._write_pos = 0
        self.is_full = False
