"""Recording coordinator: the facade the application drives a recording through."""

import asyncio
import logging
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..audio.audio_pub import AudioPublisher, AUDIO_TOPIC
from ..audio.capture import AudioCapture
from ..audio.levels import AudioLevelMeter
from ..audio.vad import VoiceActivityGate, DEFAULT_RMS_THRESHOLD, DEFAULT_HANGOVER_MS
from ..config import MeetScribeConfig
from ..models.events import AudioEvent
from ..models.meeting import MeetingContext
from ..models.session import ConnectionStatus, RecordingResult, RecordingSessionState
from ..transcription.base import (
    AbstractStreamingTransport,
    LiveSessionSetup,
    DEFAULT_MODEL,
    DEFAULT_SYSTEM_INSTRUCTION,
)
from ..transcription.buffer import TranscriptBuffer
from ..transcription.controller import StreamingSessionController
from ..transcription.credentials import CredentialClient
from ..transcription.hallucination import HallucinationFilter
from ..transcription.live_backend import GeminiLiveTransport, LIVE_API_URL
from ..transcription.publisher import TranscriptPublisher

logger = logging.getLogger(__name__)


class RecordingStateError(RuntimeError):
    """A recording command was issued in a state that does not allow it."""


class RecordingCoordinator:
    """Starts, pauses, cancels and finishes one recording at a time.

    Everything a recording acquires (microphone, connection, periodic tasks,
    pub/sub subscriptions) is registered on a per-recording AsyncExitStack,
    so it is released together on finish, on cancel, and when start fails
    part way through.
    """

    def __init__(self,
                 config: MeetScribeConfig,
                 transport: Optional[AbstractStreamingTransport] = None,
                 credentials: Optional[CredentialClient] = None,
                 capture_factory: Optional[Callable[..., AudioCapture]] = None):
        """Initialize the coordinator.

        Args:
            config: Application configuration
            transport: Streaming transport; defaults to Gemini Live
            credentials: Credential client; defaults to the configured backend
            capture_factory: Builds the microphone capture; defaults to AudioCapture
        """
        self.config = config
        self.transport = transport or GeminiLiveTransport(
            url=config.get('live.url', LIVE_API_URL))
        self.credentials = credentials or CredentialClient(
            config.get_backend_url(),
            config.get_auth_token(),
            timeout=config.get('backend.request_timeout_seconds', 30),
        )
        self.capture_factory = capture_factory or AudioCapture

        self.audio_publisher = AudioPublisher(AUDIO_TOPIC)
        self.transcript_publisher = TranscriptPublisher()
        self.level_meter = AudioLevelMeter(bins=config.get('session.level_bins', 32))

        # Recording state
        self.is_recording = False
        self.is_paused = False
        self.elapsed_seconds = 0
        self.meeting: Optional[MeetingContext] = None
        self.started_at: Optional[datetime] = None
        self.controller: Optional[StreamingSessionController] = None
        self.buffer: Optional[TranscriptBuffer] = None
        self.audio_levels: Tuple[float, ...] = self.level_meter.snapshot()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._resources: Optional[AsyncExitStack] = None

        logger.info("RecordingCoordinator ready")

    @property
    def state(self) -> RecordingSessionState:
        """Immutable snapshot of what the UI shows."""
        return RecordingSessionState(
            elapsed_seconds=self.elapsed_seconds,
            is_paused=self.is_paused,
            is_recording=self.is_recording,
            connection_status=self.connection_status,
            transcript=self.buffer.transcript if self.buffer else (),
            audio_levels=self.audio_levels,
        )

    @property
    def connection_status(self) -> ConnectionStatus:
        if self.controller is None:
            return ConnectionStatus.DISCONNECTED
        return self.controller.status

    # ------------------------------------------------------------------
    # Commands

    async def start(self, meeting: Optional[MeetingContext] = None) -> None:
        """Open the microphone and the streaming session.

        Raises:
            RecordingStateError: If a recording is already in progress
            MicrophoneError: If the microphone cannot be opened
            CredentialError: If the backend key cannot be fetched
            TransportError: If the streaming session cannot be opened
        """
        if self.is_recording:
            raise RecordingStateError("Recording already in progress")

        meeting = meeting or MeetingContext()
        logger.info(f"Starting recording: {meeting.display_title} ({meeting.display_type})")
        self._loop = asyncio.get_running_loop()

        resources = AsyncExitStack()
        try:
            capture = self.capture_factory(
                self.audio_publisher.publish_frame,
                sample_rate=self.config.get('audio.sample_rate', 16000),
                chunk_size=self.config.get('audio.chunk_size', 4096),
                channels=self.config.get('audio.channels', 1),
            )
            capture.start_recording()

            buffer = TranscriptBuffer(
                fragment_filter=HallucinationFilter(
                    expect_english=self.config.get('transcript.expect_english', True)),
                on_flush=self.transcript_publisher.get_callback(),
                flush_interval_ms=self.config.get('transcript.flush_interval_ms', 300),
            )
            controller = self._build_controller(buffer)
            # The controller owns the capture from here and releases it on failure
            await controller.start(capture)
            resources.push_async_callback(controller.close)

            resources.callback(self.audio_publisher.subscribe(self._on_audio_event))

            self._start_task(resources, buffer.run_periodic_flush())
            self._start_task(resources, self._run_elapsed_ticker())
            self._start_task(resources, self._run_level_sampler())
        except BaseException:
            await resources.aclose()
            raise

        self.meeting = meeting
        self.buffer = buffer
        self.controller = controller
        self._resources = resources
        self.started_at = datetime.now()
        self.elapsed_seconds = 0
        self.is_paused = False
        self.is_recording = True
        logger.info("Recording started")

    def pause(self) -> None:
        """Stop sending audio and stop the clock; the gate keeps running."""
        self._require_recording()
        self.is_paused = True
        self.controller.paused = True
        logger.info("Recording paused")

    def resume(self) -> None:
        self._require_recording()
        self.is_paused = False
        self.controller.paused = False
        logger.info("Recording resumed")

    async def cancel(self) -> None:
        """Tear down and discard everything; nothing is returned or persisted."""
        self._require_recording()
        logger.info("Cancelling recording")
        await self.controller.close(discard=True)
        await self._release_resources()
        self.buffer.clear()
        self._reset()

    async def finish(self) -> RecordingResult:
        """Flush, tear down and hand back the transcript for persistence."""
        self._require_recording()
        logger.info("Finishing recording")

        controller = self.controller
        await controller.drain()
        chunks_sent = controller.chunks_sent
        reconnect_attempts = controller.reconnect_attempts
        duration = self.elapsed_seconds

        await self._release_resources()

        result = RecordingResult(
            fragments=self.buffer.transcript,
            duration_seconds=duration,
            chunks_sent=chunks_sent,
            reconnect_attempts=reconnect_attempts,
            started_at=self.started_at,
            finished_at=datetime.now(),
        )
        self._reset()
        logger.info(f"Recording finished: {len(result.fragments)} fragments, "
                    f"{duration}s, {chunks_sent} chunks sent, {reconnect_attempts} reconnects")
        return result

    # ------------------------------------------------------------------
    # Internals

    def _build_controller(self, buffer: TranscriptBuffer) -> StreamingSessionController:
        gate = VoiceActivityGate(
            rms_threshold=self.config.get('vad.rms_threshold', DEFAULT_RMS_THRESHOLD),
            hangover_ms=self.config.get('vad.hangover_ms', DEFAULT_HANGOVER_MS),
        )
        setup = LiveSessionSetup(
            model=self.config.get('live.model', DEFAULT_MODEL),
            system_instruction=self.config.get('live.system_instruction', DEFAULT_SYSTEM_INSTRUCTION),
            trigger_tokens=self.config.get('live.trigger_tokens', 100000),
            target_tokens=self.config.get('live.target_tokens', 50000),
        )
        return StreamingSessionController(
            transport=self.transport,
            credentials=self.credentials,
            buffer=buffer,
            gate=gate,
            setup=setup,
            max_reconnects=self.config.get('live.max_reconnects', 10),
            clamp_samples=self.config.get('audio.clamp_samples', True),
            on_status_change=self._on_status_change,
        )

    def _require_recording(self) -> None:
        if not self.is_recording:
            raise RecordingStateError("No recording in progress")

    def _start_task(self, resources: AsyncExitStack, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        resources.push_async_callback(self._stop_task, task)
        return task

    @staticmethod
    async def _stop_task(task: asyncio.Task) -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _release_resources(self) -> None:
        resources, self._resources = self._resources, None
        if resources is not None:
            await resources.aclose()

    def _reset(self) -> None:
        self.is_recording = False
        self.is_paused = False
        self.level_meter.clear()
        self.audio_levels = self.level_meter.snapshot()

    async def _run_elapsed_ticker(self) -> None:
        tick = self.config.get('session.tick_seconds', 1.0)
        while True:
            await asyncio.sleep(tick)
            if not self.is_paused:
                self.elapsed_seconds += 1

    async def _run_level_sampler(self) -> None:
        interval = self.config.get('session.level_interval_ms', 50) / 1000.0
        while True:
            await asyncio.sleep(interval)
            self.audio_levels = self.level_meter.snapshot()

    def _on_audio_event(self, event: AudioEvent) -> None:
        """Capture-thread hop: hand the raw frame to the level meter on the loop."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.level_meter.update, event.frame.samples)

    def _on_status_change(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.DISCONNECTED and self.is_recording:
            logger.warning("Transcription disconnected; recording can still be finished")
