"""Main application entry point for earshot."""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

from earshot.audio.audio_pub import EventPublisher
from earshot.audio.capture import create_capture_backend
from earshot.audio.probe import probe_microphone
from earshot.errors import DeviceUnavailableError
from earshot.services.recognizer import SpeechRecognizer
from earshot.transcription import TranscriptionDispatcher, create_transcription_backend
from earshot.ui.console_reporter import ConsoleReporter

from .config import EarshotConfig

logger = logging.getLogger(__name__)


class Listener:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = EarshotConfig(config_path)
        # Command line overrides the config file
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.recognizer: Optional[SpeechRecognizer] = None

    def init(self, clip_directory: Optional[str] = None, show_levels: bool = False):
        logger.info("Initializing services...")

        self.engine_settings = self.config.get_engine_settings()
        self.transcription_settings = self.config.get_transcription_settings()
        logger.info(f"Recognition settings: threshold {self.engine_settings.silence_threshold}, "
                    f"silence {self.engine_settings.silence_timeout_seconds}s, "
                    f"no-speech {self.engine_settings.no_speech_timeout_seconds}s, "
                    f"max {self.engine_settings.max_recording_seconds}s, "
                    f"capture backend {self.engine_settings.capture_backend}")

        self.publisher = EventPublisher(self.config.get('events.topic_prefix', 'earshot'))
        self.reporter = ConsoleReporter(self.publisher, show_levels=show_levels)
        self.capture_backend = create_capture_backend(self.engine_settings)

        backend = create_transcription_backend(self.transcription_settings)
        dispatcher = TranscriptionDispatcher.from_settings(backend, self.transcription_settings)
        self.recognizer = SpeechRecognizer(
            self.engine_settings,
            self.capture_backend,
            dispatcher,
            publisher=self.publisher,
            clip_directory=clip_directory or self.config.get_clips_directory(),
        )

    def test_microphone(self) -> bool:
        probe = probe_microphone(self.capture_backend)
        self.reporter.report_probe(probe)
        return probe.working

    def run(self, sessions: int = 0) -> int:
        """Listen for ``sessions`` utterances (0 means until interrupted).

        Returns:
            Number of sessions that produced text
        """
        recognized = 0
        completed = 0
        session_timeout = (self.engine_settings.max_recording_seconds
                           + self.transcription_settings.deadline_seconds + 5.0)
        try:
            while sessions == 0 or completed < sessions:
                outcome = self.recognizer.listen_once(timeout=session_timeout)
                if outcome is None:
                    logger.error("Could not start a session")
                    break
                completed += 1
                if outcome.result.success:
                    recognized += 1
                elif outcome.error_kind is not None and not outcome.error_kind.is_soft \
                        and not outcome.error_kind.is_retryable:
                    logger.error(f"Stopping after {outcome.error_kind.value}")
                    break
        finally:
            self.cleanup()
        logger.info(f"Listening finished: {recognized}/{completed} session(s) recognized")
        return recognized

    def cleanup(self):
        if self.recognizer is not None:
            self.recognizer.shutdown()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/earshot.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("earshot starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def main() -> None:
    """Main entry point for earshot."""
    parser = argparse.ArgumentParser(
        description="earshot - listen for a spoken command and transcribe it",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Listen for a single utterance, print it and exit"
    )

    parser.add_argument(
        "--sessions",
        type=int,
        default=0,
        help="Number of utterances to listen for (default: 0, until Ctrl+C)"
    )

    parser.add_argument(
        "--test-mic",
        action="store_true",
        help="Record briefly, report the microphone level and exit"
    )

    parser.add_argument(
        "--save-audio",
        type=str,
        metavar="DIR",
        help="Save every finalized clip as a WAV file in DIR"
    )

    parser.add_argument(
        "--show-levels",
        action="store_true",
        help="Draw a live input level meter"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="earshot v0.1.0"
    )

    args = parser.parse_args()
    if args.sessions < 0:
        parser.error("--sessions must be >= 0")

    listener = None
    try:
        listener = Listener(args.config, args.log_level)
        listener.init(clip_directory=args.save_audio, show_levels=args.show_levels)
        if args.test_mic:
            sys.exit(0 if listener.test_microphone() else 1)
        recognized = listener.run(1 if args.once else args.sessions)
        if args.once and recognized == 0:
            sys.exit(1)
    except KeyboardInterrupt:
        if listener is not None:
            listener.cleanup()
        print("\n👋 Goodbye!")
    except DeviceUnavailableError as e:
        print(f"❌ Microphone unavailable: {e}")
        logging.error(f"Microphone unavailable: {e}")
        sys.exit(2)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
