"""Energy-based voice activity gate."""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_RMS_THRESHOLD = 0.004
DEFAULT_HANGOVER_MS = 1000


def frame_rms(samples: np.ndarray) -> float:
    """Root-mean-square energy of a block of normalized samples."""
    if len(samples) == 0:
        return 0.0
    samples = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(np.square(samples))))


class VoiceActivityGate:
    """Decides per frame whether audio is worth transmitting.

    Frames louder than the threshold are admitted and refresh the last speech
    time. Quieter frames are admitted only while within the hangover window
    after the last speech, so trailing syllables are not clipped.
    """

    def __init__(self, rms_threshold: float = DEFAULT_RMS_THRESHOLD,
                 hangover_ms: int = DEFAULT_HANGOVER_MS):
        self.rms_threshold = rms_threshold
        self.hangover_seconds = hangover_ms / 1000.0
        self.last_speech_time: Optional[float] = None
        self.frames_admitted = 0
        self.frames_dropped = 0

    def admit(self, samples: np.ndarray, timestamp: float) -> bool:
        """Return True if the frame captured at `timestamp` (seconds) should be sent."""
        rms = frame_rms(samples)
        if rms > self.rms_threshold:
            self.last_speech_time = timestamp
            self.frames_admitted += 1
            return True

        if self.in_hangover(timestamp):
            self.frames_admitted += 1
            return True

        self.frames_dropped += 1
        logger.debug(f"Gated silent frame (rms={rms:.5f})")
        return False

    def in_hangover(self, timestamp: float) -> bool:
        if self.last_speech_time is None:
            return False
        return (timestamp - self.last_speech_time) < self.hangover_seconds

    def reset(self) -> None:
        self.last_speech_time = None
        self.frames_admitted = 0
        self.frames_dropped = 0
