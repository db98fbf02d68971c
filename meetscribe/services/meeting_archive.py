"""Meeting archive: persists finished recordings and queues attendee emails."""

import html
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from pydantic import ValidationError

from ..config import MeetScribeConfig
from ..models.meeting import (
    AttendeeRef,
    MailMessage,
    MailRecord,
    MeetingContext,
    MeetingRecord,
    PostProcessingResult,
    NO_TRANSCRIPTION_TEXT,
)
from ..models.session import RecordingResult
from ..storage.document_store import DocumentStore, MEETINGS_COLLECTION, MAIL_COLLECTION

logger = logging.getLogger(__name__)

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def format_duration(seconds: int) -> str:
    """65 -> '1m 5s'."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_date(moment: datetime) -> str:
    """Long British date, e.g. '19 October 2026'."""
    return f"{moment.day} {MONTHS[moment.month - 1]} {moment.year}"


def transcription_text(result: RecordingResult) -> str:
    """Joined transcript, or the placeholder when nothing was captured."""
    text = result.text.strip()
    return text if text else NO_TRANSCRIPTION_TEXT


def build_email_html(recipient_name: str, meeting: MeetingContext, date_str: str,
                     duration_str: str, summary: str, transcript: str) -> str:
    rows = [
        ("Meeting", meeting.display_title),
        ("Type", meeting.display_type),
        ("Date", date_str),
        ("Duration", duration_str),
        ("Attendees", meeting.attendee_names),
    ]
    table = "\n".join(
        f'<tr><td style="padding: 8px 0; color: #888; width: 120px;">{label}</td>'
        f'<td style="padding: 8px 0;">{html.escape(value)}</td></tr>'
        for label, value in rows
    )
    summary_block = ""
    if summary:
        summary_block = (
            '<h2 style="font-size: 16px;">Summary</h2>\n'
            f'<p style="font-size: 15px; line-height: 1.6;">{html.escape(summary)}</p>\n'
        )

    return (
        '<div style="font-family: \'Segoe UI\', Arial, sans-serif; max-width: 600px; '
        'margin: 0 auto; color: #121622;">\n'
        '<div style="background: #F36D5B; padding: 24px 32px; border-radius: 16px 16px 0 0;">\n'
        '<h1 style="color: white; margin: 0; font-size: 22px;">Innovate Transcriptions</h1>\n'
        '</div>\n'
        '<div style="background: #ffffff; padding: 32px; border: 1px solid #eee; '
        'border-top: none; border-radius: 0 0 16px 16px;">\n'
        f'<p style="font-size: 16px; margin-top: 0;">Hi {html.escape(recipient_name)},</p>\n'
        '<p style="font-size: 16px;">Here is the transcription from your recent meeting:</p>\n'
        '<table style="width: 100%; border-collapse: collapse; margin: 20px 0; font-size: 14px;">\n'
        f'{table}\n'
        '</table>\n'
        f'{summary_block}'
        '<div style="background: #f8f8f8; border-radius: 12px; padding: 24px; margin: 24px 0; '
        'white-space: pre-wrap; font-size: 15px; line-height: 1.8; color: #333;">\n'
        f'{html.escape(transcript)}\n'
        '</div>\n'
        '<p style="font-size: 13px; color: #aaa; margin-bottom: 0;">'
        'This email was sent automatically by Innovate Transcriptions.</p>\n'
        '</div>\n'
        '</div>\n'
    )


class MeetingArchive:
    """Writes the meeting document and one mail document per attendee."""

    def __init__(self, config: MeetScribeConfig, store: Optional[DocumentStore] = None):
        """Initialize the archive.

        Args:
            config: Application configuration
            store: Document store; defaults to one in the configured data directory
        """
        self.config = config
        self.store = store or DocumentStore(config.get_data_directory())
        logger.info(f"MeetingArchive initialized with data dir: {self.store.data_dir}")

    def build_meeting_record(self, meeting: MeetingContext, result: RecordingResult,
                             processed: PostProcessingResult) -> MeetingRecord:
        texts = [text for text in result.texts if text.strip()]
        return MeetingRecord(
            title=meeting.display_title,
            type=meeting.display_type,
            attendees=[AttendeeRef(id=a.id, name=a.name, email=a.email) for a in meeting.attendees],
            transcription=texts,
            diarized_transcription=processed.diarized_transcription,
            summary=processed.summary,
            insights=processed.insights,
            duration=result.duration_seconds,
            created_at=result.finished_at,
            created_by=meeting.user_id,
            user_email=meeting.user_email,
        )

    def build_mail_records(self, meeting: MeetingContext, result: RecordingResult,
                           processed: PostProcessingResult) -> List[MailRecord]:
        date_str = format_date(result.finished_at)
        duration_str = format_duration(result.duration_seconds)
        transcript = processed.diarized_transcription or transcription_text(result)
        subject = f"Meeting Transcription: {meeting.display_title} — {date_str}"

        return [
            MailRecord(
                to=attendee.email,
                message=MailMessage(
                    subject=subject,
                    html=build_email_html(attendee.name, meeting, date_str, duration_str,
                                          processed.summary, transcript),
                ),
            )
            for attendee in meeting.attendees
            if attendee.email
        ]

    def archive(self, meeting: MeetingContext, result: RecordingResult,
                processed: Optional[PostProcessingResult] = None) -> Dict[str, Any]:
        """Persist a finished recording.

        Returns:
            Result dictionary with success status and the written document ids
        """
        processed = processed or PostProcessingResult()
        try:
            record = self.build_meeting_record(meeting, result, processed)
            mails = self.build_mail_records(meeting, result, processed)

            meeting_id = self.store.add_document(MEETINGS_COLLECTION, record.to_document())
            mail_ids = [self.store.add_document(MAIL_COLLECTION, mail.to_document()) for mail in mails]

            logger.info(f"Archived meeting {meeting_id} with {len(mail_ids)} queued emails")
            return {
                "success": True,
                "meeting_id": meeting_id,
                "mail_ids": mail_ids,
                "mail_count": len(mail_ids),
            }

        except (OSError, TypeError, ValidationError) as e:
            logger.error(f"Error archiving meeting: {e}")
            return {
                "success": False,
                "error": str(e),
            }
