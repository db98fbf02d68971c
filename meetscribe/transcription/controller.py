"""Streaming session controller: owns the live connection and its reconnection.

State machine::

    IDLE -> OPENING -> OPEN <-> RECONNECTING
                         \\          /
                          -> CLOSED <-

Every connection is tagged with a generation number. Tearing down or
replacing a connection advances the generation, so events and reconnect
attempts that belong to an older connection are ignored when they arrive
late.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Set

from ..audio.capture import AudioCapture
from ..audio.pipeline import AudioPipeline
from ..audio.vad import VoiceActivityGate
from ..models.audio import EncodedChunk
from ..models.events import SessionEvent, SessionEventType
from ..models.session import ConnectionStatus, ControllerState, TranscriptionSession
from ..models.transcription import ServerMessage
from .base import (
    AbstractStreamingConnection,
    AbstractStreamingTransport,
    LiveSessionSetup,
)
from .buffer import TranscriptBuffer
from .credentials import CredentialClient

logger = logging.getLogger(__name__)

GAP_MARKER = "\n[Connection interrupted - some audio may have been missed]\n"

PipelineFactory = Callable[[Callable[[EncodedChunk], None], Callable[[], bool]], AudioPipeline]


class StreamingSessionController:
    """Drives one recording session's connection to the transcription backend."""

    def __init__(self,
                 transport: AbstractStreamingTransport,
                 credentials: CredentialClient,
                 buffer: TranscriptBuffer,
                 gate: Optional[VoiceActivityGate] = None,
                 setup: Optional[LiveSessionSetup] = None,
                 pipeline_factory: Optional[PipelineFactory] = None,
                 max_reconnects: int = 10,
                 clamp_samples: bool = True,
                 on_status_change: Optional[Callable[[ConnectionStatus], None]] = None):
        """Initialize the controller.

        Args:
            transport: Opens streaming connections
            credentials: Supplies the short-lived backend key
            buffer: Receives transcript fragments
            gate: Voice activity gate used by the audio pipeline
            setup: Connect-time declarations (model, instruction, compression)
            pipeline_factory: Builds the audio pipeline from (sink, can_send)
            max_reconnects: Maximum reconnects per recording session, 0 for unlimited
            clamp_samples: Clamp scaled samples to the int16 range when encoding
            on_status_change: Called whenever the connection status changes
        """
        self.transport = transport
        self.credentials = credentials
        self.buffer = buffer
        self.gate = gate or VoiceActivityGate()
        self.setup = setup or LiveSessionSetup()
        self.pipeline_factory = pipeline_factory or self._default_pipeline
        self.max_reconnects = max_reconnects
        self.clamp_samples = clamp_samples
        self.on_status_change = on_status_change

        self.state = ControllerState.IDLE
        self.status = ConnectionStatus.DISCONNECTED
        self.session: Optional[TranscriptionSession] = None
        self.resumption_token: Optional[str] = None
        self.paused = False
        self.active = False

        # Counters, reset on teardown
        self.chunks_sent = 0
        self.chunks_dropped = 0
        self.reconnect_attempts = 0
        self.pipeline_builds = 0

        self._generation = 0
        self._api_key: Optional[str] = None
        self._capture: Optional[AudioCapture] = None
        self._pipeline: Optional[AudioPipeline] = None
        self._outbound: Optional[asyncio.Queue] = None
        self._receiver_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._torn_down = False

        self._handlers: Dict[SessionEventType, Callable] = {
            SessionEventType.OPENED: self._on_opened,
            SessionEventType.MESSAGE: self._on_message,
            SessionEventType.CLOSED: self._on_closed,
            SessionEventType.ERROR: self._on_error,
            SessionEventType.RECONNECT_REQUESTED: self._on_reconnect_requested,
        }

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pipeline(self) -> Optional[AudioPipeline]:
        return self._pipeline

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self, capture: Optional[AudioCapture] = None) -> None:
        """IDLE -> OPENING -> OPEN.

        Takes ownership of `capture`; it is stopped on teardown, or right away
        if the session cannot be opened.

        Raises:
            CredentialError: If the backend key cannot be fetched
            TransportError: If the first connection cannot be opened
        """
        if self.state is not ControllerState.IDLE:
            raise RuntimeError(f"Cannot start controller in state {self.state.value}")

        self._capture = capture
        try:
            self._api_key = await self.credentials.fetch_key()
            self.state = ControllerState.OPENING
            self.active = True
            generation = self._next_generation()
            logger.info("Opening live transcription session")
            connection = await self.transport.connect(self._api_key, self._build_setup())
        except BaseException:
            self.active = False
            self.state = ControllerState.IDLE
            await self._release_capture()
            raise

        await self.dispatch(SessionEvent(SessionEventType.OPENED, generation, payload=connection))

    async def close(self, discard: bool = False) -> None:
        """Tear everything down: * -> CLOSED. Safe from any state, more than once.

        Args:
            discard: Drop the transcript instead of flushing it
        """
        if self._torn_down:
            return
        self._torn_down = True
        logger.info(f"Closing streaming session (state={self.state.value}, "
                    f"chunks_sent={self.chunks_sent}, reconnects={self.reconnect_attempts})")

        self.active = False
        self._next_generation()

        if discard:
            self.buffer.clear()
        else:
            self.buffer.flush()

        await self._cancel_tasks()

        session, self.session = self.session, None
        if session is not None:
            await self._close_connection(session.connection)

        if self._pipeline is not None:
            self._pipeline.close()
            self._pipeline = None
        await self._release_capture()

        self._outbound = None
        self.chunks_sent = 0
        self.chunks_dropped = 0
        self.reconnect_attempts = 0
        self.resumption_token = None
        self.state = ControllerState.CLOSED
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def drain(self, timeout: float = 2.0) -> None:
        """Wait until queued audio has been handed to the connection."""
        # Frames published from the capture thread land via call_soon_threadsafe
        await asyncio.sleep(0)
        if self._outbound is None:
            return
        try:
            await asyncio.wait_for(self._outbound.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out draining {self._outbound.qsize()} queued audio chunks")

    def request_reconnect(self, reason: str) -> None:
        """Schedule a reconnect of the current connection."""
        self._spawn(self.dispatch(SessionEvent(
            SessionEventType.RECONNECT_REQUESTED, self._generation, reason=reason)))

    # ------------------------------------------------------------------
    # Event dispatch

    async def dispatch(self, event: SessionEvent) -> None:
        """Route one typed event to its handler, ignoring stale generations."""
        if event.generation != self._generation:
            logger.debug(f"Ignoring stale {event.event_type.value} event "
                         f"(generation {event.generation} != {self._generation})")
            if event.event_type is SessionEventType.OPENED and event.payload is not None:
                await self._close_connection(event.payload)
            return
        await self._handlers[event.event_type](event)

    async def _on_opened(self, event: SessionEvent) -> None:
        connection: AbstractStreamingConnection = event.payload
        if not self.active:
            await self._close_connection(connection)
            return

        self.session = TranscriptionSession(
            connection=connection,
            generation=event.generation,
            resumption_handle=self.resumption_token,
        )
        if self._pipeline is None:
            self._build_pipeline()
        self._receiver_task = self._spawn(self._receive_loop(connection, event.generation))

        self.state = ControllerState.OPEN
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info(f"Streaming session open (generation {event.generation})")

    async def _on_message(self, event: SessionEvent) -> None:
        message: ServerMessage = event.payload
        if message.resumption_handle:
            self.resumption_token = message.resumption_handle
            if self.session is not None:
                self.session.resumption_handle = message.resumption_handle
            logger.debug("Stored new resumption handle")
        if message.transcript_text:
            self.buffer.push(message.transcript_text)
        if message.go_away:
            logger.warning(f"Server will disconnect soon (time left: {message.time_left}); reconnecting")
            self.request_reconnect("server go-away")

    async def _on_closed(self, event: SessionEvent) -> None:
        if self.state is not ControllerState.OPEN:
            return
        logger.warning(f"Streaming connection closed unexpectedly: {event.reason}")
        await self._reconnect(f"connection closed: {event.reason}")

    async def _on_error(self, event: SessionEvent) -> None:
        logger.warning(f"Streaming connection error: {event.reason}")

    async def _on_reconnect_requested(self, event: SessionEvent) -> None:
        await self._reconnect(event.reason)

    # ------------------------------------------------------------------
    # Reconnection

    async def _reconnect(self, reason: str) -> None:
        if self.state is ControllerState.RECONNECTING:
            logger.debug(f"Reconnect already in flight; ignoring ({reason})")
            return
        if self.state is not ControllerState.OPEN:
            return
        if not self.active or not self.resumption_token:
            logger.warning(f"Cannot resume session ({reason}): "
                           f"active={self.active}, token={'yes' if self.resumption_token else 'no'}")
            await self._mark_disconnected()
            return
        if self.max_reconnects and self.reconnect_attempts >= self.max_reconnects:
            logger.error(f"Reconnect limit of {self.max_reconnects} exhausted ({reason})")
            await self._mark_disconnected()
            return

        self.state = ControllerState.RECONNECTING
        self._set_status(ConnectionStatus.RECONNECTING)
        self.reconnect_attempts += 1
        generation = self._next_generation()
        logger.info(f"Reconnecting streaming session (attempt {self.reconnect_attempts}): {reason}")

        self.buffer.push_marker(GAP_MARKER)
        await self._drop_current_connection()

        try:
            connection = await self.transport.connect(self._api_key, self._build_setup())
        except Exception as e:
            if generation == self._generation and self.active:
                logger.error(f"Reconnect failed: {e}")
                self.state = ControllerState.CLOSED
                self._set_status(ConnectionStatus.DISCONNECTED)
            return

        if generation != self._generation or not self.active:
            logger.info("Reconnect completed after teardown; discarding the new connection")
            await self._close_connection(connection)
            return

        await self.dispatch(SessionEvent(SessionEventType.OPENED, generation, payload=connection))

    async def _mark_disconnected(self) -> None:
        self._next_generation()
        await self._drop_current_connection()
        self.state = ControllerState.CLOSED
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def _drop_current_connection(self) -> None:
        """Close the connection but keep the pipeline and microphone."""
        session, self.session = self.session, None
        receiver, self._receiver_task = self._receiver_task, None
        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
        if session is not None:
            await self._close_connection(session.connection)

    # ------------------------------------------------------------------
    # Audio path

    def _default_pipeline(self, sink: Callable[[EncodedChunk], None],
                          can_send: Callable[[], bool]) -> AudioPipeline:
        return AudioPipeline(self.gate, sink, can_send, clamp=self.clamp_samples)

    def _build_pipeline(self) -> None:
        self._outbound = asyncio.Queue()
        self._pipeline = self.pipeline_factory(self._enqueue_chunk, self.can_send)
        self._pipeline.attach()
        self.pipeline_builds += 1
        self._spawn(self._send_loop())
        logger.info("Audio pipeline built")

    def can_send(self) -> bool:
        return self.active and not self.paused and self.state is ControllerState.OPEN

    def _enqueue_chunk(self, chunk: EncodedChunk) -> None:
        if self._outbound is not None:
            self._outbound.put_nowait(chunk)

    async def _send_loop(self) -> None:
        """Send queued chunks one at a time, preserving capture order."""
        outbound = self._outbound
        while True:
            chunk = await outbound.get()
            try:
                session = self.session
                if self.can_send() and session is not None and not session.connection.closed:
                    await self._send_chunk(session.connection, chunk)
                else:
                    self.chunks_dropped += 1
            finally:
                outbound.task_done()

    async def _send_chunk(self, connection: AbstractStreamingConnection, chunk: EncodedChunk) -> None:
        try:
            await connection.send_audio(chunk)
        except Exception as e:
            # The receive loop reports the close and drives recovery
            self.chunks_dropped += 1
            logger.warning(f"Audio send failed: {e}")
            return
        self.chunks_sent += 1
        logger.debug(f"Sent audio chunk #{self.chunks_sent} ({chunk.sample_count} samples)")

    async def _receive_loop(self, connection: AbstractStreamingConnection, generation: int) -> None:
        reason = ""
        try:
            async for message in connection.messages():
                await self.dispatch(SessionEvent(SessionEventType.MESSAGE, generation, payload=message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e)
            await self.dispatch(SessionEvent(SessionEventType.ERROR, generation, reason=reason))
        if not reason:
            reason = f"code={connection.close_code} {connection.close_reason}".strip()
        await self.dispatch(SessionEvent(SessionEventType.CLOSED, generation, reason=reason))

    # ------------------------------------------------------------------
    # Helpers

    def _build_setup(self) -> LiveSessionSetup:
        return LiveSessionSetup(
            model=self.setup.model,
            system_instruction=self.setup.system_instruction,
            response_modalities=self.setup.response_modalities,
            transcribe_input=self.setup.transcribe_input,
            trigger_tokens=self.setup.trigger_tokens,
            target_tokens=self.setup.target_tokens,
            resumption_handle=self.resumption_token,
        )

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        logger.info(f"Connection status: {status.value}")
        if self.on_status_change:
            self.on_status_change(status)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._receiver_task = None

    async def _close_connection(self, connection: AbstractStreamingConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error closing streaming connection: {e}")

    async def _release_capture(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            await asyncio.get_running_loop().run_in_executor(None, capture.stop_recording)
