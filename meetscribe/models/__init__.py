"""Data models for the MeetScribe application."""

from .audio import AudioStats, AudioFrame, EncodedChunk, PCM_MIME_TYPE
from .events import AudioEvent, SessionEvent, SessionEventType
from .transcription import TranscriptFragment, ServerMessage
from .session import (
    ControllerState,
    ConnectionStatus,
    TranscriptionSession,
    RecordingSessionState,
    RecordingResult,
)
from .meeting import (
    MEETING_TYPES,
    Attendee,
    MeetingContext,
    PostProcessingResult,
    AttendeeRef,
    MeetingRecord,
    MailMessage,
    MailRecord,
)

__all__ = [
    "AudioStats",
    "AudioFrame",
    "EncodedChunk",
    "PCM_MIME_TYPE",
    "AudioEvent",
    "SessionEvent",
    "SessionEventType",
    "TranscriptFragment",
    "ServerMessage",
    # Session state
    "ControllerState",
    "ConnectionStatus",
    "TranscriptionSession",
    "RecordingSessionState",
    "RecordingResult",
    # Meeting documents
    "MEETING_TYPES",
    "Attendee",
    "MeetingContext",
    "PostProcessingResult",
    "AttendeeRef",
    "MeetingRecord",
    "MailMessage",
    "MailRecord",
]
