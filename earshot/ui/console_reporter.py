"""Terminal output of recognizer events."""

import logging
from typing import List, Optional

from rich.console import Console
from rich.text import Text

from ..audio.audio_pub import (
    EventPublisher,
    TOPIC_AUDIO_LEVEL_CHANGED,
    TOPIC_RECOGNITION_COMPLETE,
    TOPIC_RECOGNITION_ERROR,
    TOPIC_RECORDING_STARTED,
    TOPIC_RECORDING_STOPPED,
    TOPIC_SPEECH_RECOGNIZED,
)
from ..audio.probe import MicrophoneProbe
from ..models.events import (
    AudioLevelChanged,
    RecognitionComplete,
    RecognitionError,
    RecordingStarted,
    RecordingStopped,
    SpeechRecognized,
)

logger = logging.getLogger(__name__)

LEVEL_BAR_WIDTH = 30


class ConsoleReporter:
    """Prints session progress and results with rich."""

    def __init__(self, publisher: EventPublisher, console: Optional[Console] = None, show_levels: bool = False):
        self.console = console or Console()
        self.show_levels = show_levels
        self.transcripts: List[str] = []

        # pypubsub keeps weak references; these bound methods live as long as the reporter
        publisher.subscribe(TOPIC_RECORDING_STARTED, self.on_recording_started)
        publisher.subscribe(TOPIC_RECORDING_STOPPED, self.on_recording_stopped)
        publisher.subscribe(TOPIC_AUDIO_LEVEL_CHANGED, self.on_audio_level)
        publisher.subscribe(TOPIC_SPEECH_RECOGNIZED, self.on_speech_recognized)
        publisher.subscribe(TOPIC_RECOGNITION_ERROR, self.on_recognition_error)
        publisher.subscribe(TOPIC_RECOGNITION_COMPLETE, self.on_recognition_complete)

    def on_recording_started(self, event: RecordingStarted) -> None:
        self.console.print(f"🎤 Listening ({event.device})...", style="blue")

    def on_recording_stopped(self, event: RecordingStopped) -> None:
        self.console.print(f"⏹  Stopped: {event.reason.replace('_', ' ')} "
                           f"after {event.duration_seconds:.1f}s", style="dim")

    def on_audio_level(self, event: AudioLevelChanged) -> None:
        if not self.show_levels:
            return
        filled = min(LEVEL_BAR_WIDTH, int(LEVEL_BAR_WIDTH * event.level / max(event.threshold * 4, 1.0)))
        bar = Text("█" * filled, style="green" if event.is_above_threshold else "yellow")
        bar.append("░" * (LEVEL_BAR_WIDTH - filled), style="dim")
        bar.append(f" {event.level:6.0f}")
        self.console.print(bar, end="\r")

    def on_speech_recognized(self, event: SpeechRecognized) -> None:
        self.transcripts.append(event.text)
        self.console.print(f"✅ {event.text}", style="bold green")

    def on_recognition_error(self, event: RecognitionError) -> None:
        if not event.fatal:
            self.console.print(f"⚠️  {event.message}", style="yellow")
        elif event.kind.is_soft:
            self.console.print(f"… {event.message}", style="dim")
        else:
            self.console.print(f"❌ {event.kind.value}: {event.message}", style="red")

    def on_recognition_complete(self, event: RecognitionComplete) -> None:
        logger.debug(f"Session {event.session_id} complete, success={event.success}")

    def report_probe(self, probe: MicrophoneProbe) -> None:
        style = "green" if probe.working else "red"
        self.console.print(f"{'✅' if probe.working else '❌'} {probe.message}", style=style)
