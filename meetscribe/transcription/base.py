"""Abstract base classes for streaming transcription transports."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional
import logging

from ..models.audio import EncodedChunk
from ..models.transcription import ServerMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-native-audio-preview-12-2025"
DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a professional meeting transcriber. Transcribe the conversation "
    "accurately in UK English. Do not add summaries, only transcription."
)


class TransportError(RuntimeError):
    """A streaming connection could not be opened or was rejected."""


@dataclass
class LiveSessionSetup:
    """Everything declared when a streaming connection is opened."""
    model: str = DEFAULT_MODEL
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    response_modalities: tuple = ("AUDIO",)
    transcribe_input: bool = True
    trigger_tokens: int = 100000
    target_tokens: int = 50000
    resumption_handle: Optional[str] = None


class AbstractStreamingConnection(ABC):
    """One open bidirectional streaming connection."""

    close_code: Optional[int] = None
    close_reason: str = ""

    @abstractmethod
    async def send_audio(self, chunk: EncodedChunk) -> None:
        """Send one encoded audio chunk."""
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[ServerMessage]:
        """Iterate inbound messages until the connection closes."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection; safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


class AbstractStreamingTransport(ABC):
    """Factory for streaming connections to a transcription backend."""

    @abstractmethod
    async def connect(self, api_key: str, setup: LiveSessionSetup) -> AbstractStreamingConnection:
        """Open a connection and wait for the backend to acknowledge setup.

        Raises:
            TransportError: If the connection cannot be opened
        """
        pass
