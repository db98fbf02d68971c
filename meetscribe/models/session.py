"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any, Tuple

from .transcription import TranscriptFragment


class ControllerState(Enum):
    """Lifecycle of the streaming session controller."""
    IDLE = "idle"
    OPENING = "opening"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ConnectionStatus(Enum):
    """Connection status shown to the user."""
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


@dataclass
class TranscriptionSession:
    """One live connection to the transcription backend.

    Replaced, never mutated into a new connection, on reconnect.
    """
    connection: Any
    generation: int
    resumption_handle: Optional[str] = None
    opened_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class RecordingSessionState:
    """Snapshot of everything the UI observes."""
    elapsed_seconds: int = 0
    is_paused: bool = False
    is_recording: bool = False
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    transcript: Tuple[TranscriptFragment, ...] = ()
    audio_levels: Tuple[float, ...] = ()

    @property
    def transcript_texts(self) -> Tuple[str, ...]:
        return tuple(fragment.text for fragment in self.transcript)


@dataclass
class RecordingResult:
    """What finish() hands back for persistence."""
    fragments: Tuple[TranscriptFragment, ...]
    duration_seconds: int
    chunks_sent: int
    reconnect_attempts: int
    started_at: datetime
    finished_at: datetime

    @property
    def texts(self) -> Tuple[str, ...]:
        return tuple(fragment.text for fragment in self.fragments)

    @property
    def text(self) -> str:
        """Concatenation of all fragments in arrival order."""
        return "".join(self.texts)
