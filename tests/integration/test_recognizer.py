"""Integration tests for SpeechRecognizer with a scripted microphone and transcription service."""

import threading
from pathlib import Path

import pytest

from earshot.audio.audio_pub import (
    TOPIC_AUDIO_LEVEL_CHANGED,
    TOPIC_RECOGNITION_COMPLETE,
    TOPIC_RECOGNITION_ERROR,
    TOPIC_RECORDING_STARTED,
    TOPIC_RECORDING_STOPPED,
    TOPIC_SPEECH_RECOGNIZED,
)
from earshot.errors import DeviceUnavailableError, EarshotError, RecognitionErrorKind
from earshot.services.recognizer import SpeechRecognizer
from earshot.transcription.dispatcher import TranscriptionDispatcher
from conftest import FakeCaptureBackend, ScriptedBackend, constant_pcm

QUIET = 30
LOUD = 1200


class Emitter:
    """Feeds 20 ms frames into a fake backend while it is running."""

    def __init__(self, backend, level_at, interval=0.02, samples=320):
        self.backend = backend
        self.level_at = level_at
        self.interval = interval
        self.samples = samples
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *args):
        self._stop.set()
        self._thread.join(1.0)

    def _run(self):
        index = 0
        while not self._stop.wait(self.interval):
            if self.backend.is_running:
                self.backend.emit(constant_pcm(self.level_at(index), self.samples))
                index += 1


def utterance(index):
    """0.2 s of room noise, 0.4 s of speech, then room noise."""
    return LOUD if 10 <= index < 30 else QUIET


def lifecycle(publisher):
    return [name for name in publisher.names() if name != TOPIC_AUDIO_LEVEL_CHANGED]


class ExplodingStopBackend(FakeCaptureBackend):
    """Driver that fails with a non-OS error when the stream is closed."""

    def stop(self) -> None:
        super().stop()
        raise RuntimeError("driver exploded on stop")


class FlakyStartBackend(FakeCaptureBackend):
    """Raises an unexpected error on the first start only."""

    def start(self, on_frame, on_error=None) -> None:
        if self.start_calls == 0:
            self.start_calls += 1
            raise RuntimeError("PortAudio not initialized")
        super().start(on_frame, on_error)


class CancelDuringStartBackend(FakeCaptureBackend):
    """Lets the recognizer be cancelled before the device finishes opening."""

    recognizer = None

    def start(self, on_frame, on_error=None) -> None:
        self.recognizer.cancel()
        super().start(on_frame, on_error)


@pytest.fixture
def transcriber():
    return ScriptedBackend(text=" Open Spotify ")


@pytest.fixture
def recognizer(fast_settings, fake_backend, transcriber, recording_publisher):
    recognizer = SpeechRecognizer(
        fast_settings,
        fake_backend,
        TranscriptionDispatcher(transcriber, deadline_seconds=2.0),
        publisher=recording_publisher,
    )
    yield recognizer
    recognizer.cancel()


@pytest.mark.integration
class TestSpeechRecognizer:
    """End-to-end session behaviour with real threads."""

    def test_speech_then_silence_is_transcribed(self, recognizer, fake_backend, transcriber, recording_publisher):
        with Emitter(fake_backend, utterance):
            outcome = recognizer.listen_once(timeout=5.0)

        assert outcome.reason == "silence"
        assert outcome.text == "Open Spotify"
        assert recognizer.is_recording is False
        assert fake_backend.stop_calls == 1

        # Room noise from before the onset leads the clip
        audio = transcriber.requests[0].audio
        assert audio[:2] == QUIET.to_bytes(2, "little", signed=True)
        assert audio.count(constant_pcm(LOUD, 320)) == 20

        assert lifecycle(recording_publisher) == [
            TOPIC_RECORDING_STARTED,
            TOPIC_RECORDING_STOPPED,
            TOPIC_SPEECH_RECOGNIZED,
            TOPIC_RECOGNITION_COMPLETE,
        ]
        recognized = recording_publisher.of(TOPIC_SPEECH_RECOGNIZED)[0]
        assert recognized.text == "Open Spotify"
        complete = recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)[0]
        assert complete.outcome is outcome

    def test_level_events_published(self, recognizer, fake_backend, recording_publisher):
        with Emitter(fake_backend, utterance):
            recognizer.listen_once(timeout=5.0)

        levels = recording_publisher.of(TOPIC_AUDIO_LEVEL_CHANGED)
        assert any(e.is_above_threshold for e in levels)
        assert any(not e.is_above_threshold for e in levels)
        assert all(e.threshold == 300 for e in levels)

    def test_room_noise_only_is_abandoned(self, recognizer, fake_backend, transcriber):
        with Emitter(fake_backend, lambda i: QUIET):
            outcome = recognizer.listen_once(timeout=5.0)

        assert outcome.reason == "extended_silence"
        assert outcome.error_kind is RecognitionErrorKind.NO_SPEECH_DETECTED
        assert transcriber.requests == []

    def test_isolated_clicks_hit_no_speech_timeout(self, recognizer, fake_backend, transcriber):
        with Emitter(fake_backend, lambda i: LOUD if i % 2 == 0 else QUIET):
            outcome = recognizer.listen_once(timeout=5.0)

        assert outcome.reason == "no_speech"
        assert outcome.error_kind is RecognitionErrorKind.NO_SPEECH_DETECTED
        assert transcriber.requests == []

    def test_continuous_speech_stops_at_max_duration(self, recognizer, fake_backend, fast_settings):
        with Emitter(fake_backend, lambda i: LOUD):
            outcome = recognizer.listen_once(timeout=8.0)

        assert outcome.reason == "max_duration"
        assert outcome.text == "Open Spotify"
        assert fast_settings.max_recording_seconds < outcome.duration_seconds
        assert outcome.duration_seconds <= fast_settings.max_recording_seconds + 0.3

    def test_manual_stop_transcribes(self, recognizer, fake_backend):
        with Emitter(fake_backend, lambda i: LOUD):
            assert recognizer.start_recording() is not None
            threading.Event().wait(0.3)
            outcome = recognizer.stop_and_transcribe()

        assert outcome.reason == "manual"
        assert outcome.text == "Open Spotify"
        assert recognizer.stop_and_transcribe() is None

    def test_cancel_during_transcription(self, fast_settings, fake_backend, recording_publisher):
        recognizer = SpeechRecognizer(
            fast_settings,
            fake_backend,
            TranscriptionDispatcher(ScriptedBackend(delay=30.0), deadline_seconds=20.0),
            publisher=recording_publisher,
        )
        stopped = threading.Event()
        complete = threading.Event()
        recording_publisher.subscribe(TOPIC_RECORDING_STOPPED, lambda e: stopped.set())
        recording_publisher.subscribe(TOPIC_RECOGNITION_COMPLETE, lambda e: complete.set())

        with Emitter(fake_backend, utterance):
            recognizer.start_recording()
            assert stopped.wait(5.0)
            assert recognizer.cancel() is True
            assert complete.wait(2.0)

        outcome = recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)[0].outcome
        assert outcome.error_kind is RecognitionErrorKind.CANCELLED
        assert len(recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)) == 1

    def test_cancel_while_recording(self, recognizer, fake_backend, transcriber, recording_publisher):
        with Emitter(fake_backend, lambda i: LOUD):
            recognizer.start_recording()
            threading.Event().wait(0.1)
            assert recognizer.cancel() is True

        assert transcriber.requests == []
        outcome = recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)[0].outcome
        assert outcome.reason == "cancelled"
        assert outcome.error_kind is RecognitionErrorKind.CANCELLED

    def test_device_unavailable(self, fast_settings, recording_publisher):
        backend = FakeCaptureBackend(fail_on_start=True)
        recognizer = SpeechRecognizer(fast_settings, backend,
                                      TranscriptionDispatcher(ScriptedBackend()),
                                      publisher=recording_publisher)

        with pytest.raises(DeviceUnavailableError):
            recognizer.start_recording()

        errors = recording_publisher.of(TOPIC_RECOGNITION_ERROR)
        assert errors[0].kind is RecognitionErrorKind.DEVICE_UNAVAILABLE
        assert recording_publisher.of(TOPIC_RECOGNITION_COMPLETE) == []
        assert recognizer.is_recording is False

    def test_start_while_recording_is_refused(self, recognizer):
        assert recognizer.start_recording() is not None
        assert recognizer.start_recording() is None
        assert recognizer.sessions_started == 1

    def test_complete_handler_can_start_next_session(self, recognizer, fake_backend, recording_publisher):
        next_ids = []
        recording_publisher.subscribe(TOPIC_RECOGNITION_COMPLETE,
                                      lambda e: next_ids.append(recognizer.start_recording()))

        with Emitter(fake_backend, utterance):
            recognizer.listen_once(timeout=5.0)

        assert next_ids and next_ids[0] is not None
        assert recognizer.is_recording is True

    def test_capture_errors_are_not_fatal(self, recognizer, fake_backend, recording_publisher):
        recognizer.start_recording()
        fake_backend._report(EarshotError("Input overflowed", RecognitionErrorKind.CAPTURE_FAILURE))

        error = recording_publisher.of(TOPIC_RECOGNITION_ERROR)[0]
        assert error.fatal is False
        assert error.kind is RecognitionErrorKind.CAPTURE_FAILURE
        assert recognizer.is_recording is True

    def test_clip_saved(self, fast_settings, fake_backend, temp_data_dir):
        recognizer = SpeechRecognizer(fast_settings, fake_backend,
                                      TranscriptionDispatcher(ScriptedBackend()),
                                      clip_directory=temp_data_dir)
        with Emitter(fake_backend, utterance):
            outcome = recognizer.listen_once(timeout=5.0)

        clip = Path(temp_data_dir) / f"{outcome.session_id}.wav"
        assert clip.exists()
        assert clip.stat().st_size == 44 + outcome.audio_bytes

    def test_nothing_to_stop_or_cancel(self, recognizer):
        assert recognizer.stop_and_transcribe() is None
        assert recognizer.cancel() is False

    def test_recording_started_precedes_level_events(self, recognizer, fake_backend, recording_publisher):
        with Emitter(fake_backend, utterance):
            recognizer.listen_once(timeout=5.0)

        names = recording_publisher.names()
        assert names[0] == TOPIC_RECORDING_STARTED
        assert TOPIC_AUDIO_LEVEL_CHANGED in names

    def test_failing_backend_stop_still_completes_session(self, fast_settings, recording_publisher):
        backend = ExplodingStopBackend()
        recognizer = SpeechRecognizer(fast_settings, backend,
                                      TranscriptionDispatcher(ScriptedBackend()),
                                      publisher=recording_publisher)

        recognizer.start_recording()
        outcome = recognizer.stop_and_transcribe()

        assert outcome.error_kind is RecognitionErrorKind.CAPTURE_FAILURE
        assert "driver exploded" in outcome.result.error_message
        assert lifecycle(recording_publisher) == [
            TOPIC_RECORDING_STARTED,
            TOPIC_RECOGNITION_ERROR,
            TOPIC_RECOGNITION_COMPLETE,
        ]
        assert recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)[0].outcome is outcome
        assert recognizer.is_recording is False

    def test_unexpected_start_failure_frees_recognizer(self, fast_settings, recording_publisher):
        backend = FlakyStartBackend()
        recognizer = SpeechRecognizer(fast_settings, backend,
                                      TranscriptionDispatcher(ScriptedBackend()),
                                      publisher=recording_publisher)

        with pytest.raises(RuntimeError):
            recognizer.start_recording()

        assert recognizer.is_recording is False
        error = recording_publisher.of(TOPIC_RECOGNITION_ERROR)[0]
        assert error.kind is RecognitionErrorKind.DEVICE_UNAVAILABLE
        assert "PortAudio" in error.message

        assert recognizer.start_recording() is not None
        assert backend.is_running is True
        recognizer.cancel()

    def test_cancel_while_device_opening_closes_capture(self, fast_settings, recording_publisher):
        backend = CancelDuringStartBackend()
        recognizer = SpeechRecognizer(fast_settings, backend,
                                      TranscriptionDispatcher(ScriptedBackend()),
                                      publisher=recording_publisher)
        backend.recognizer = recognizer

        assert recognizer.start_recording() is None

        assert backend.is_running is False
        assert recognizer.is_recording is False
        assert TOPIC_RECORDING_STARTED not in recording_publisher.names()
        outcome = recording_publisher.of(TOPIC_RECOGNITION_COMPLETE)[0].outcome
        assert outcome.error_kind is RecognitionErrorKind.CANCELLED
