"""Fan-out of captured microphone frames to in-process listeners."""

import logging
from typing import Callable

from pubsub import pub

from ..models.audio import AudioFrame
from ..models.events import AudioEvent

logger = logging.getLogger(__name__)

AUDIO_TOPIC = "audio.frame"

AudioListener = Callable[[AudioEvent], None]


class AudioPublisher:
    """Turns frames from the capture thread into AudioEvents on a pub/sub topic.

    Listeners are called on the capture thread; anything that touches the
    event loop must hop onto it with call_soon_threadsafe.
    """

    def __init__(self, topic: str = AUDIO_TOPIC):
        self.topic = topic
        self.frames_published = 0
        self.last_frame_number = 0
        logger.info(f"AudioPublisher ready on topic: {topic}")

    def publish_frame(self, frame: AudioFrame) -> None:
        """Capture callback: wrap one frame and deliver it to every listener."""
        self.frames_published += 1
        self.last_frame_number = frame.frame_number
        pub.sendMessage(self.topic, event=AudioEvent(frame=frame))

    def subscribe(self, listener: AudioListener) -> Callable[[], None]:
        """Register a listener; returns the call that removes it again."""
        pub.subscribe(listener, self.topic)
        logger.debug(f"Audio listener subscribed: {listener}")

        def unsubscribe() -> None:
            pub.unsubscribe(listener, self.topic)
            logger.debug(f"Audio listener unsubscribed: {listener}")

        return unsubscribe
