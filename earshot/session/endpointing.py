"""Endpointing: deciding when a recording session should stop."""

import logging
from threading import Thread, Event
from typing import Callable, Optional

from ..models.session import EndpointDecision, SessionSnapshot

logger = logging.getLogger(__name__)


class EndpointingStateMachine:
    """Evaluates the stop guards for one session.

    Guards are checked in a fixed order and the first that holds wins:

    1. elapsed > max recording time: stop and transcribe
    2. no speech confirmed and elapsed > no-speech timeout: abandon
    3. speech confirmed and silence > silence timeout: stop and transcribe
    4. no speech confirmed, elapsed past the extended-silence window and
       silence > the extended-silence limit: abandon

    ``tick`` fires at most once; later calls return None.
    """

    def __init__(self,
                 max_recording_seconds: float = 20.0,
                 no_speech_timeout_seconds: float = 8.0,
                 silence_timeout_seconds: float = 1.5,
                 extended_silence_after_seconds: float = 3.0,
                 extended_silence_seconds: float = 2.0):
        self.max_recording_seconds = max_recording_seconds
        self.no_speech_timeout_seconds = no_speech_timeout_seconds
        self.silence_timeout_seconds = silence_timeout_seconds
        self.extended_silence_after_seconds = extended_silence_after_seconds
        self.extended_silence_seconds = extended_silence_seconds
        self.fired: Optional[EndpointDecision] = None

    @classmethod
    def from_settings(cls, settings) -> "EndpointingStateMachine":
        return cls(
            max_recording_seconds=settings.max_recording_seconds,
            no_speech_timeout_seconds=settings.no_speech_timeout_seconds,
            silence_timeout_seconds=settings.silence_timeout_seconds,
            extended_silence_after_seconds=settings.extended_silence_after_seconds,
            extended_silence_seconds=settings.extended_silence_seconds,
        )

    def evaluate(self, elapsed: float, silence: float, speech_confirmed: bool) -> Optional[EndpointDecision]:
        if elapsed > self.max_recording_seconds:
            return EndpointDecision.MAX_DURATION
        if not speech_confirmed and elapsed > self.no_speech_timeout_seconds:
            return EndpointDecision.NO_SPEECH
        if speech_confirmed and silence > self.silence_timeout_seconds:
            return EndpointDecision.SILENCE
        if (not speech_confirmed
                and elapsed > self.extended_silence_after_seconds
                and silence > self.extended_silence_seconds):
            return EndpointDecision.EXTENDED_SILENCE
        return None

    def tick(self, elapsed: float, silence: float, speech_confirmed: bool) -> Optional[EndpointDecision]:
        """Evaluate once more; returns a decision only the first time one is reached."""
        if self.fired is not None:
            return None
        decision = self.evaluate(elapsed, silence, speech_confirmed)
        if decision is not None:
            self.fired = decision
            logger.info(f"Endpoint reached: {decision.value} "
                        f"(elapsed {elapsed:.2f}s, silence {silence:.2f}s, speech={speech_confirmed})")
        return decision


class EndpointTimer:
    """Runs an EndpointingStateMachine against a session on a background thread."""

    def __init__(self,
                 machine: EndpointingStateMachine,
                 snapshot_fn: Callable[[], SessionSnapshot],
                 on_decision: Callable[[EndpointDecision], None],
                 poll_interval: float = 0.1,
                 initial_delay: float = 0.8):
        """Initialize the timer.

        Args:
            machine: Guards to evaluate
            snapshot_fn: Returns the session's current elapsed/silence/speech view
            on_decision: Invoked once, on the timer thread, with the first decision
            poll_interval: Seconds between checks after the first
            initial_delay: Seconds before the first check
        """
        self.machine = machine
        self.snapshot_fn = snapshot_fn
        self.on_decision = on_decision
        self.poll_interval = poll_interval
        self.initial_delay = initial_delay
        self.stop_event = Event()
        self.thread: Optional[Thread] = None

    def start(self) -> None:
        if self.thread is not None:
            logger.warning("Endpoint timer already started")
            return
        self.stop_event.clear()
        self.thread = Thread(target=self._run, daemon=True)
        self.thread.name = "EndpointTimerThread"
        self.thread.start()

    def cancel(self) -> None:
        """Stop checking. Returns without waiting when called from the timer thread."""
        self.stop_event.set()

    @property
    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        if self.thread is not None:
            self.thread.join(timeout)

    def _run(self) -> None:
        if self.stop_event.wait(self.initial_delay):
            return
        while not self.stop_event.is_set():
            snapshot = self.snapshot_fn()
            decision = self.machine.tick(snapshot.elapsed, snapshot.silence, snapshot.speech_confirmed)
            if decision is not None:
                try:
                    self.on_decision(decision)
                except Exception as e:
                    logger.error(f"Endpoint handler failed for {decision.value}: {e}", exc_info=True)
                return
            if self.stop_event.wait(self.poll_interval):
                return
