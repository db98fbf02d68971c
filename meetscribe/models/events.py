"""Event models for the audio topic and the streaming session dispatcher."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Any

from .audio import AudioFrame


@dataclass
class AudioEvent:
    """Captured audio frame published on the audio topic."""
    frame: AudioFrame


class SessionEventType(Enum):
    """Kinds of events the streaming session controller reacts to."""
    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"
    ERROR = "error"
    RECONNECT_REQUESTED = "reconnect_requested"


@dataclass
class SessionEvent:
    """Typed event fed to StreamingSessionController.dispatch().

    `generation` identifies the connection the event came from; events from a
    connection that has since been replaced or torn down are ignored.
    """
    event_type: SessionEventType
    generation: int
    payload: Optional[Any] = None
    reason: str = ""
