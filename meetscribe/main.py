"""Main application entry point for MeetScribe."""

import re
import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.live import Live

from .config import MeetScribeConfig
from .models.meeting import Attendee, MeetingContext, MEETING_TYPES
from .models.session import RecordingResult
from .services.meeting_archive import MeetingArchive, transcription_text
from .services.recording_service import RecordingCoordinator
from .transcription.post_processing import PostProcessingClient
from .ui.keyboard_input import KeyboardInputHandler
from .ui.status_screen import render_status

logger = logging.getLogger(__name__)

ATTENDEE_PATTERN = re.compile(r"^\s*(?P<name>[^<]+?)\s*<(?P<email>[^>]+)>\s*$")


def parse_attendee(value: str) -> Attendee:
    """'Jane Doe <jane@example.com>' -> Attendee."""
    match = ATTENDEE_PATTERN.match(value)
    if not match:
        raise argparse.ArgumentTypeError(f"Attendee must look like 'Name <email>': {value!r}")
    email = match.group("email").strip()
    return Attendee(id=email.lower(), name=match.group("name"), email=email)


KEY_ACTIONS = {
    "p": "toggle_pause",
    " ": "toggle_pause",
    "f": "finish",
    "q": "finish",
    "c": "cancel",
}


class RecordingControls:
    """Maps keys read on the keyboard thread to coordinator commands on the loop."""

    def __init__(self, coordinator: RecordingCoordinator, loop: asyncio.AbstractEventLoop,
                 on_stop: Callable[[str], None]):
        self.coordinator = coordinator
        self.loop = loop
        self.on_stop = on_stop

    def handle_key(self, key: str) -> bool:
        """Keyboard callback; False once the recording is being stopped."""
        action = KEY_ACTIONS.get(key)
        if action is None:
            return True
        self.loop.call_soon_threadsafe(self.apply, action)
        return action == "toggle_pause"

    def apply(self, action: str) -> None:
        if action != "toggle_pause":
            self.on_stop(action)
            return
        if not self.coordinator.is_recording:
            return
        if self.coordinator.is_paused:
            self.coordinator.resume()
        else:
            self.coordinator.pause()


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = MeetScribeConfig(config_path)
        # Set up logging (override config with command line if specified)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()
        self.stop_event: Optional[asyncio.Event] = None
        self.stop_action = "finish"

    def request_stop(self, action: str = "finish") -> None:
        """Finish or cancel the recording; the first request wins."""
        if self.stop_event is not None and not self.stop_event.is_set():
            self.stop_action = action
            self.stop_event.set()

    async def run(self, meeting: MeetingContext, duration: Optional[int],
                  archive: bool) -> Optional[RecordingResult]:
        loop = asyncio.get_running_loop()
        self.stop_event = asyncio.Event()
        self.stop_action = "finish"

        coordinator = RecordingCoordinator(self.config)
        await coordinator.start(meeting)
        loop.add_signal_handler(signal.SIGINT, self.request_stop)
        keyboard = KeyboardInputHandler(RecordingControls(coordinator, loop, self.request_stop).handle_key)
        keyboard.start()
        self.console.print(f"Recording '{meeting.display_title}'. "
                           f"Keys: p pause/resume, f finish, c cancel (Ctrl+C finishes).", style="green")

        try:
            with Live(get_renderable=lambda: render_status(coordinator.state, meeting),
                      console=self.console, refresh_per_second=4, transient=True):
                try:
                    await asyncio.wait_for(self.stop_event.wait(), timeout=duration)
                except asyncio.TimeoutError:
                    logger.info(f"Recording duration of {duration}s reached")
        finally:
            keyboard.stop()
            loop.remove_signal_handler(signal.SIGINT)
            if self.stop_action == "cancel":
                await coordinator.cancel()
                result = None
            else:
                result = await coordinator.finish()

        if result is None:
            self.console.print("🗑  Recording cancelled; nothing was saved", style="yellow")
            return None

        self.console.print(f"⏹  Finished after {result.duration_seconds}s "
                           f"({len(result.fragments)} fragments, "
                           f"{result.reconnect_attempts} reconnects)")
        await self.save(meeting, result, archive)
        return result

    async def save(self, meeting: MeetingContext, result: RecordingResult, archive: bool) -> None:
        text = transcription_text(result)
        self.console.print(text)
        if not archive:
            return

        self.console.print("🔧 Generating summary, insights and speaker labels...", style="blue")
        client = PostProcessingClient(
            self.config.get_backend_url(),
            self.config.get_auth_token(),
            timeout=self.config.get('backend.request_timeout_seconds', 30),
        )
        processed = await client.process(meeting, text)

        outcome = MeetingArchive(self.config).archive(meeting, result, processed)
        if outcome["success"]:
            self.console.print(f"✅ Saved meeting {outcome['meeting_id']} and queued "
                               f"{outcome['mail_count']} emails", style="green")
        else:
            self.console.print(f"❌ Could not save meeting: {outcome['error']}", style="red")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/meetscribe.log')
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("MeetScribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MeetScribe - Live meeting transcription",
        epilog="Meeting types: " + "; ".join(MEETING_TYPES),
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for meetscribe.yaml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    parser.add_argument(
        "--duration",
        type=int,
        help="Stop recording after this many seconds (default: until Ctrl+C)"
    )
    parser.add_argument("--title", type=str, default="", help="Meeting title")
    parser.add_argument("--type", dest="meeting_type", type=str, default="", help="Meeting type")
    parser.add_argument(
        "--attendee",
        dest="attendees",
        type=parse_attendee,
        action="append",
        default=[],
        help="Attendee to email, as 'Name <email>' (repeatable)"
    )
    parser.add_argument(
        "--no-archive",
        action="store_true",
        help="Do not post-process or save the meeting"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="MeetScribe v0.1.0"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for MeetScribe."""
    args = build_parser().parse_args(argv)
    meeting = MeetingContext(
        title=args.title,
        meeting_type=args.meeting_type,
        attendees=args.attendees,
    )

    try:
        server = Server(args.config, args.log_level)
        meeting.user_id = server.config.get('user.id')
        meeting.user_email = server.config.get('user.email')
        asyncio.run(server.run(meeting, args.duration, archive=not args.no_archive))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
