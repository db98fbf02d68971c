"""Terminal status view rendered with rich while a meeting is being recorded."""

import logging
from typing import Optional, Sequence

from rich.align import Align
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.meeting import MeetingContext
from ..models.session import ConnectionStatus, RecordingSessionState


logger = logging.getLogger(__name__)

LEVEL_GLYPHS = " ▁▂▃▄▅▆▇█"

KEY_HINTS = "[p] pause/resume  [f] finish  [c] cancel"

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: ("● Connected", "bold green"),
    ConnectionStatus.RECONNECTING: ("◌ Reconnecting", "bold yellow"),
    ConnectionStatus.DISCONNECTED: ("○ Disconnected", "bold red"),
}


def format_elapsed(seconds: int) -> str:
    """Recording timer: 3725 -> '01:02:05'."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render_levels(levels: Sequence[float]) -> str:
    """One bar glyph per frequency band."""
    top = len(LEVEL_GLYPHS) - 1
    return "".join(LEVEL_GLYPHS[int(round(min(max(level, 0.0), 1.0) * top))] for level in levels)


def render_status(state: RecordingSessionState, meeting: Optional[MeetingContext] = None,
                  transcript_lines: int = 6) -> Panel:
    """Build the whole status panel from one state snapshot."""
    meeting = meeting or MeetingContext()

    status_label, status_style = STATUS_STYLES[state.connection_status]
    if state.is_paused:
        recording_text = Text("⏸  PAUSED", style="bold yellow")
    elif state.is_recording:
        recording_text = Text("🔴 RECORDING", style="bold red")
    else:
        recording_text = Text("⏹  STOPPED", style="bold white")

    header = Text.assemble(
        recording_text, "  |  ",
        (format_elapsed(state.elapsed_seconds), "bold cyan"), "  |  ",
        (status_label, status_style),
    )

    details = Table(show_header=False, box=None, padding=(0, 1))
    details.add_column("Field", style="cyan")
    details.add_column("Value", style="white")
    details.add_row("Meeting", meeting.display_title)
    details.add_row("Type", meeting.display_type)
    if meeting.attendees:
        details.add_row("Attendees", meeting.attendee_names)
    details.add_row("Audio", Text(render_levels(state.audio_levels), style="magenta"))

    joined = "".join(state.transcript_texts).strip()
    if joined:
        lines = joined.splitlines()[-transcript_lines:]
        transcript = Text("\n".join(lines), style="white")
    else:
        transcript = Text("Listening for speech...", style="dim white italic")

    body = Group(
        Align.center(header),
        Text(""),
        details,
        Panel(transcript, title="📝 Transcript", border_style="green"),
    )
    return Panel(body, title="🎙️  MeetScribe", subtitle=Text(KEY_HINTS, style="dim"),
                 border_style="bright_blue")
