"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np


PCM_MIME_TYPE = "audio/pcm;rate=16000"


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass
class AudioFrame:
    """A single block of mono float32 samples in [-1.0, 1.0]."""
    samples: np.ndarray
    timestamp: float  # Monotonic time when this frame was captured
    frame_number: int
    sample_rate: int = 16000

    @property
    def duration_ms(self) -> float:
        return len(self.samples) * 1000.0 / self.sample_rate


@dataclass(frozen=True)
class EncodedChunk:
    """Wire-ready audio: base64 little-endian int16 PCM plus its type tag."""
    data: str
    mime_type: str = PCM_MIME_TYPE
    sample_count: int = 0
