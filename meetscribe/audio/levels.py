"""Frequency-band audio levels for the visual meter."""

import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Decibel window mapped onto [0, 1], like a browser AnalyserNode
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


class AudioLevelMeter:
    """Keeps the latest frame and turns it into normalized band magnitudes.

    Purely observational: nothing here feeds back into transcription.
    """

    def __init__(self, bins: int = 32):
        self.bins = bins
        self._latest: Optional[np.ndarray] = None

    def update(self, samples: np.ndarray) -> None:
        self._latest = samples

    def clear(self) -> None:
        self._latest = None

    def snapshot(self) -> Tuple[float, ...]:
        """Most recent levels, one value per band; zeros before any audio."""
        if self._latest is None or len(self._latest) == 0:
            return tuple(0.0 for _ in range(self.bins))
        return compute_levels(self._latest, self.bins)


def compute_levels(samples: np.ndarray, bins: int) -> Tuple[float, ...]:
    windowed = np.asarray(samples, dtype=np.float64) * np.hanning(len(samples))
    magnitudes = np.abs(np.fft.rfft(windowed)) / len(samples)
    bands = np.array_split(magnitudes[1:], bins)
    levels = []
    for band in bands:
        peak = float(band.max()) if len(band) else 0.0
        decibels = 20.0 * np.log10(peak) if peak > 0 else MIN_DECIBELS
        level = (decibels - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS)
        levels.append(float(min(max(level, 0.0), 1.0)))
    return tuple(levels)
