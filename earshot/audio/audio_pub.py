"""Event publishing over pypubsub topics."""

import logging
from typing import Any, Callable

from pubsub import pub

logger = logging.getLogger(__name__)

TOPIC_RECORDING_STARTED = "recording_started"
TOPIC_RECORDING_STOPPED = "recording_stopped"
TOPIC_AUDIO_LEVEL_CHANGED = "audio_level_changed"
TOPIC_SPEECH_RECOGNIZED = "speech_recognized"
TOPIC_RECOGNITION_ERROR = "recognition_error"
TOPIC_RECOGNITION_COMPLETE = "recognition_complete"

ALL_TOPICS = (
    TOPIC_RECORDING_STARTED,
    TOPIC_RECORDING_STOPPED,
    TOPIC_AUDIO_LEVEL_CHANGED,
    TOPIC_SPEECH_RECOGNIZED,
    TOPIC_RECOGNITION_ERROR,
    TOPIC_RECOGNITION_COMPLETE,
)


def _event_prototype(event):
    """Message data signature shared by every topic: one ``event`` argument."""
    pass


class EventPublisher:
    """Publishes engine events to ``<prefix>.<name>`` topics using pubsub.pub."""

    def __init__(self, prefix: str = "earshot"):
        """Initialize the publisher and register all topics.

        Args:
            prefix: Root topic name; topics are ``<prefix>.<name>``
        """
        self.prefix = prefix
        manager = pub.getDefaultTopicMgr()
        for name in ALL_TOPICS:
            manager.getOrCreateTopic(self.topic(name), _event_prototype)
        logger.info(f"EventPublisher initialized with topic prefix: {prefix}")

    def topic(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def publish(self, name: str, event: Any) -> None:
        """Send ``event`` to every listener of topic ``name``.

        A failing listener is logged; it never breaks the engine.
        """
        try:
            pub.sendMessage(self.topic(name), event=event)
        except Exception as e:
            logger.error(f"Listener for {self.topic(name)} failed: {e}", exc_info=True)

    def subscribe(self, name: str, listener: Callable[[Any], None]) -> None:
        """Subscribe ``listener(event)`` to topic ``name``.

        pypubsub holds listeners weakly; keep a reference to bound methods.
        """
        pub.subscribe(listener, self.topic(name))

    def unsubscribe(self, name: str, listener: Callable[[Any], None]) -> None:
        pub.unsubscribe(listener, self.topic(name))
