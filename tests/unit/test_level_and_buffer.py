"""Unit tests for frame levels and the pre-buffer ring."""

import pytest
import numpy as np

from earshot.audio.buffer import PreBufferRing, DEFAULT_PRE_BUFFER_BYTES
from earshot.audio.level import FrameLevelMeter, frame_rms
from conftest import constant_pcm


@pytest.mark.unit
class TestFrameRms:
    """Test cases for frame_rms."""

    def test_empty_and_single_byte_are_silent(self):
        assert frame_rms(b"") == 0.0
        assert frame_rms(b"\x7f") == 0.0

    def test_constant_signal_level(self):
        assert frame_rms(constant_pcm(300)) == pytest.approx(300.0)
        assert frame_rms(constant_pcm(-300)) == pytest.approx(300.0)

    def test_trailing_odd_byte_ignored(self):
        pcm = constant_pcm(500, samples=10)
        assert frame_rms(pcm + b"\xff") == pytest.approx(500.0)

    def test_sine_rms(self, audio_test_data):
        """A full-scale sine has RMS of amplitude / sqrt(2)."""
        pcm = (audio_test_data("sine") * 10000).astype("<i2").tobytes()
        assert frame_rms(pcm) == pytest.approx(10000 / np.sqrt(2), rel=0.01)

    def test_meter_tracks_peak(self):
        meter = FrameLevelMeter()
        meter.measure(constant_pcm(100))
        meter.measure(constant_pcm(900))
        meter.measure(constant_pcm(50))

        assert meter.peak_level == pytest.approx(900.0)
        assert meter.frames_measured == 3

        meter.reset()
        assert meter.peak_level == 0.0


@pytest.mark.unit
class TestPreBufferRing:
    """Test cases for PreBufferRing."""

    def test_initialization(self):
        ring = PreBufferRing()
        assert ring.capacity == DEFAULT_PRE_BUFFER_BYTES
        assert len(ring) == 0
        assert ring.is_full is False

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            PreBufferRing(0)

    def test_partial_fill_drains_in_write_order(self):
        ring = PreBufferRing(10)
        ring.write(b"abc")
        ring.write(b"def")

        assert len(ring) == 6
        assert ring.drain_in_order() == b"abcdef"
        assert len(ring) == 0

    def test_wraparound_keeps_newest_bytes(self):
        ring = PreBufferRing(8)
        ring.write(b"abcdef")
        ring.write(b"ghij")

        assert ring.is_full is True
        assert ring.write_position == 2
        assert ring.drain_in_order() == b"cdefghij"

    def test_exact_fill(self):
        ring = PreBufferRing(4)
        ring.write(b"ab")
        ring.write(b"cd")

        assert ring.is_full is True
        assert ring.write_position == 0
        assert ring.drain_in_order() == b"abcd"

    def test_oversized_write_keeps_tail(self):
        ring = PreBufferRing(4)
        ring.write(b"xy")
        ring.write(b"0123456789")

        assert ring.drain_in_order() == b"6789"

    def test_drain_equals_last_capacity_bytes_of_stream(self):
        """Whatever the write sizes, the drain is the stream's tail."""
        rng = np.random.default_rng(7)
        ring = PreBufferRing(1000)
        stream = bytearray()
        for size in rng.integers(1, 700, size=40):
            chunk = rng.integers(0, 256, size=int(size), dtype=np.uint8).tobytes()
            stream.extend(chunk)
            ring.write(chunk)

        assert ring.drain_in_order() == bytes(stream[-1000:])

    def test_empty_write_is_noop(self):
        ring = PreBufferRing(4)
        ring.write(b"")
        assert len(ring) == 0

    def test_reset(self):
        ring = PreBufferRing(4)
        ring.write(b"abcdef")
        ring.reset()
        assert len(ring) == 0
        assert ring.drain_in_order() == b""
