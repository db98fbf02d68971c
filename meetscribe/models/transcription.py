"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TranscriptFragment:
    """A piece of transcript text in arrival order."""
    text: str
    received_at: datetime = field(default_factory=datetime.now)
    kind: str = "speech"  # "speech" | "marker"
    sequence_number: int = 0

    @property
    def is_marker(self) -> bool:
        return self.kind == "marker"


@dataclass
class ServerMessage:
    """One inbound message from the streaming transcription backend."""
    setup_complete: bool = False
    transcript_text: Optional[str] = None
    resumption_handle: Optional[str] = None
    go_away: bool = False
    time_left: Optional[str] = None
    raw: Optional[dict] = None
