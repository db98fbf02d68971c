"""Meeting context and persisted document models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


MEETING_TYPES = [
    "Client - Initial assessment",
    "Client - Design stage kick off",
    "Client - Mid way meeting",
    "Client - Handover meeting",
    "Internal - Team meeting",
    "Internal - Project review",
    "Internal - Other",
]

DEFAULT_TITLE = "Untitled meeting"
DEFAULT_TYPE = "Standard meeting"
NO_TRANSCRIPTION_TEXT = "No transcription was captured during this session."


@dataclass(frozen=True)
class Attendee:
    """A person who may receive the meeting transcript."""
    id: str
    name: str
    email: str
    department: str = ""


@dataclass
class MeetingContext:
    """What the user entered before pressing record."""
    title: str = ""
    meeting_type: str = ""
    attendees: List[Attendee] = field(default_factory=list)
    user_id: Optional[str] = None
    user_email: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title.strip() or DEFAULT_TITLE

    @property
    def display_type(self) -> str:
        return self.meeting_type.strip() or DEFAULT_TYPE

    @property
    def attendee_names(self) -> str:
        return ", ".join(a.name for a in self.attendees)


@dataclass
class PostProcessingResult:
    """Output of the summary/insights/diarization endpoints."""
    summary: str = ""
    insights: Dict[str, List[str]] = field(default_factory=dict)
    diarized_transcription: str = ""


class AttendeeRef(BaseModel):
    """Attendee as stored on a transcription document."""
    id: str
    name: str
    email: str


class MeetingRecord(BaseModel):
    """Document written to the `transcriptions` collection."""
    model_config = ConfigDict(populate_by_name=True)

    title: str
    type: str
    attendees: List[AttendeeRef]
    transcription: List[str]
    diarized_transcription: str = Field(default="", alias="diarizedTranscription")
    summary: str = ""
    insights: Dict[str, List[str]] = Field(default_factory=dict)
    duration: int
    created_at: datetime = Field(alias="createdAt")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    user_email: Optional[str] = Field(default=None, alias="userEmail")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class MailMessage(BaseModel):
    subject: str
    html: str


class MailRecord(BaseModel):
    """Document written to the `mail` collection for the delivery worker."""
    to: str
    message: MailMessage

    def to_document(self) -> dict:
        return self.model_dump(mode="json")
