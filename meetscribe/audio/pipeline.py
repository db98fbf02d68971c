"""Audio pipeline: captured frame -> voice gate -> PCM encoder -> session sink."""

import asyncio
import logging
from typing import Callable, Optional

from pubsub import pub

from ..models.audio import AudioFrame, EncodedChunk
from ..models.events import AudioEvent
from .audio_pub import AUDIO_TOPIC
from .encoder import encode_frame
from .vad import VoiceActivityGate

logger = logging.getLogger(__name__)


class AudioPipeline:
    """Subscribes to the audio topic and forwards admitted, encoded frames.

    Frames arrive on the capture thread and are handed to the event loop, so
    gating, encoding and the sink always run on the loop thread in capture
    order. The gate is evaluated for every frame; `can_send` decides whether
    an admitted frame actually reaches the sink (not while paused or while no
    connection is open).
    """

    def __init__(self,
                 gate: VoiceActivityGate,
                 sink: Callable[[EncodedChunk], None],
                 can_send: Callable[[], bool],
                 topic: str = AUDIO_TOPIC,
                 clamp: bool = True,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.gate = gate
        self.sink = sink
        self.can_send = can_send
        self.topic = topic
        self.clamp = clamp
        self.loop = loop
        self.attached = False

        self.frames_seen = 0
        self.frames_gated = 0
        self.frames_held = 0
        self.frames_forwarded = 0

    def attach(self) -> None:
        """Start listening to captured audio."""
        if self.attached:
            return
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        pub.subscribe(self._on_audio_event, self.topic)
        self.attached = True
        logger.info(f"Audio pipeline attached to topic: {self.topic}")

    def close(self) -> None:
        """Stop listening; safe to call more than once."""
        if not self.attached:
            return
        pub.unsubscribe(self._on_audio_event, self.topic)
        self.attached = False
        logger.info(f"Audio pipeline detached: seen={self.frames_seen}, "
                    f"gated={self.frames_gated}, held={self.frames_held}, "
                    f"forwarded={self.frames_forwarded}")

    def _on_audio_event(self, event: AudioEvent) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.process, event.frame)

    def process(self, frame: AudioFrame) -> bool:
        """Run one frame through gate and encoder; True if it reached the sink."""
        if not self.attached:
            return False
        self.frames_seen += 1

        if not self.gate.admit(frame.samples, frame.timestamp):
            self.frames_gated += 1
            return False

        if not self.can_send():
            self.frames_held += 1
            return False

        self.sink(encode_frame(frame.samples, clamp=self.clamp))
        self.frames_forwarded += 1
        return True
