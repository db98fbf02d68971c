"""Services layer for MeetScribe application logic."""

from .recording_service import RecordingCoordinator, RecordingStateError
from .meeting_archive import MeetingArchive, format_duration, format_date

__all__ = [
    "RecordingCoordinator",
    "RecordingStateError",
    "MeetingArchive",
    "format_duration",
    "format_date",
]
