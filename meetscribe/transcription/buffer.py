"""Transcript buffer: pending fragments flushed to observable state on a cadence."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ..models.transcription import TranscriptFragment
from .hallucination import HallucinationFilter

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL_MS = 300


class TranscriptBuffer:
    """Decouples fragment arrival from transcript updates.

    `push` filters and queues; `flush` moves everything pending into the
    accumulated transcript in one batch, in arrival order. Accumulated
    fragments are never reordered or modified.
    """

    def __init__(self,
                 fragment_filter: Optional[Callable[[str], bool]] = None,
                 on_flush: Optional[Callable[[List[TranscriptFragment]], None]] = None,
                 flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS):
        self.fragment_filter = fragment_filter or HallucinationFilter()
        self.on_flush = on_flush
        self.flush_interval = flush_interval_ms / 1000.0

        self._pending: List[TranscriptFragment] = []
        self._transcript: List[TranscriptFragment] = []
        self._sequence = 0
        self.flush_count = 0

    @property
    def pending(self) -> Tuple[TranscriptFragment, ...]:
        return tuple(self._pending)

    @property
    def transcript(self) -> Tuple[TranscriptFragment, ...]:
        return tuple(self._transcript)

    @property
    def texts(self) -> List[str]:
        return [fragment.text for fragment in self._transcript]

    def push(self, text: str) -> bool:
        """Queue a fragment if it passes the filter; returns whether it was kept."""
        if not text or not text.strip():
            return False
        if not self.fragment_filter(text):
            return False
        self._append_pending(text, kind="speech")
        return True

    def push_marker(self, text: str) -> None:
        """Queue a gap marker; markers are never filtered."""
        self._append_pending(text, kind="marker")
        logger.info(f"Transcript marker queued: {text.strip()}")

    def _append_pending(self, text: str, kind: str) -> None:
        self._sequence += 1
        self._pending.append(TranscriptFragment(
            text=text,
            received_at=datetime.now(),
            kind=kind,
            sequence_number=self._sequence,
        ))

    def flush(self) -> List[TranscriptFragment]:
        """Move all pending fragments into the transcript; returns the batch."""
        if not self._pending:
            return []
        batch = self._pending
        self._pending = []
        self._transcript.extend(batch)
        self.flush_count += 1
        logger.debug(f"Flushed {len(batch)} fragments "
                     f"(transcript now {len(self._transcript)})")
        if self.on_flush:
            self.on_flush(list(batch))
        return batch

    def clear(self) -> None:
        """Discard pending and accumulated fragments."""
        self._pending.clear()
        self._transcript.clear()
        self._sequence = 0
        self.flush_count = 0

    async def run_periodic_flush(self) -> None:
        """Flush every flush_interval until cancelled."""
        logger.debug(f"Periodic flush every {self.flush_interval:.3f}s")
        try:
            while True:
                await asyncio.sleep(self.flush_interval)
                self.flush()
        finally:
            self.flush()
