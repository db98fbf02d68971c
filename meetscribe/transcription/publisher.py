"""Transcript publisher module for pub/sub event publishing."""

import logging
from typing import Callable, List
from pubsub import pub
from ..models.transcription import TranscriptFragment

logger = logging.getLogger(__name__)

TRANSCRIPT_TOPIC = "transcript.flushed"


class TranscriptPublisher:
    """Publishes flushed transcript batches using pubsub.pub."""

    def __init__(self, topic: str = TRANSCRIPT_TOPIC):
        """Initialize transcript publisher.

        Args:
            topic: Pub/sub topic name for flushed fragment batches
        """
        self.topic = topic
        logger.info(f"TranscriptPublisher initialized with topic: {topic}")

    def publish_fragments(self, fragments: List[TranscriptFragment]) -> None:
        """Publish one flushed batch, in arrival order."""
        pub.sendMessage(self.topic, fragments=fragments)
        logger.debug(f"Published {len(fragments)} transcript fragments")

    def get_callback(self) -> Callable[[List[TranscriptFragment]], None]:
        """Get callback function for TranscriptBuffer to use."""
        return self.publish_fragments
