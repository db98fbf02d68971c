"""Unit tests for the streaming session controller state machine."""

import asyncio
from unittest.mock import Mock

import pytest

from meetscribe.models.events import SessionEvent, SessionEventType
from meetscribe.models.session import ConnectionStatus, ControllerState
from meetscribe.transcription.base import TransportError
from meetscribe.transcription.buffer import TranscriptBuffer
from meetscribe.transcription.controller import StreamingSessionController, GAP_MARKER
from meetscribe.transcription.credentials import CredentialError


@pytest.fixture
def make_controller(fake_transport, fake_credentials):
    def _make(credentials=None, **kwargs):
        return StreamingSessionController(
            transport=fake_transport,
            credentials=credentials or fake_credentials,
            buffer=TranscriptBuffer(),
            **kwargs
        )
    return _make


@pytest.mark.unit
class TestStartAndSend:

    def test_start_opens_session(self, make_controller, fake_transport, fake_credentials):
        async def scenario():
            controller = make_controller()
            capture = Mock()
            await controller.start(capture)

            assert controller.state is ControllerState.OPEN
            assert controller.status is ConnectionStatus.CONNECTED
            assert controller.pipeline_builds == 1
            assert controller.pipeline.attached
            assert fake_credentials.calls == 1
            assert fake_transport.connect_calls == 1
            assert fake_transport.current.api_key == "test-key"
            assert fake_transport.setups[0].resumption_handle is None
            capture.stop_recording.assert_not_called()
            await controller.close()

        asyncio.run(scenario())

    def test_cannot_start_twice(self, make_controller):
        async def scenario():
            controller = make_controller()
            await controller.start()
            with pytest.raises(RuntimeError):
                await controller.start()
            await controller.close()

        asyncio.run(scenario())

    def test_admitted_frames_sent_in_order(self, make_controller, fake_transport, make_frame):
        async def scenario():
            controller = make_controller()
            await controller.start()
            for i in range(3):
                controller.pipeline.process(make_frame(amplitude=0.1 * (i + 1), timestamp=float(i)))
            await controller.drain()

            assert controller.chunks_sent == 3
            sent = fake_transport.current.sent
            assert [chunk.sample_count for chunk in sent] == [4096, 4096, 4096]
            assert sent[0].data != sent[1].data
            await controller.close()

        asyncio.run(scenario())

    def test_nothing_sent_while_paused(self, make_controller, fake_transport, make_frame):
        async def scenario():
            controller = make_controller()
            await controller.start()
            controller.paused = True
            controller.pipeline.process(make_frame(amplitude=0.2, timestamp=1.0))
            await controller.drain()

            assert fake_transport.current.sent == []
            assert controller.pipeline.frames_held == 1
            # The gate still saw the speech
            assert controller.gate.last_speech_time == 1.0

            controller.paused = False
            controller.pipeline.process(make_frame(amplitude=0.2, timestamp=2.0))
            await controller.drain()
            assert len(fake_transport.current.sent) == 1
            await controller.close()

        asyncio.run(scenario())


@pytest.mark.unit
class TestStartFailures:

    def test_credential_failure_leaves_idle(self, make_controller, fake_transport):
        async def scenario():
            controller = make_controller(credentials=_failing_credentials("401 Unauthorized"))
            capture = Mock()
            with pytest.raises(CredentialError):
                await controller.start(capture)
            return controller, capture

        controller, capture = asyncio.run(scenario())
        assert controller.state is ControllerState.IDLE
        assert controller.pipeline is None
        assert fake_transport.connect_calls == 0
        capture.stop_recording.assert_called_once()

    def test_transport_failure_leaves_idle(self, make_controller, fake_transport):
        fake_transport.fail_with = TransportError("refused")

        async def scenario():
            controller = make_controller()
            capture = Mock()
            with pytest.raises(TransportError):
                await controller.start(capture)
            return controller, capture

        controller, capture = asyncio.run(scenario())
        assert controller.state is ControllerState.IDLE
        assert controller.status is ConnectionStatus.DISCONNECTED
        capture.stop_recording.assert_called_once()


def _failing_credentials(message):
    credentials = Mock()

    async def fetch_key():
        raise CredentialError(message)

    credentials.fetch_key = fetch_key
    return credentials


@pytest.mark.unit
class TestInboundMessages:

    def test_text_and_resumption_token(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(transcript_text="Hello", resumption_handle="h1")
            fake_transport.current.emit(transcript_text=" there")
            await settle()
            assert controller.resumption_token == "h1"

            fake_transport.current.emit(resumption_handle="h2")
            await settle()
            assert controller.resumption_token == "h2"
            assert controller.session.resumption_handle == "h2"

            controller.buffer.flush()
            assert controller.buffer.texts == ["Hello", " there"]
            await controller.close()

        asyncio.run(scenario())

    def test_hallucinated_text_dropped(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(transcript_text="ннннннннн")
            fake_transport.current.emit(transcript_text="Right")
            await settle()
            await controller.close()
            return controller.buffer.texts

        assert asyncio.run(scenario()) == ["Right"]

    def test_stale_generation_ignored(self, make_controller, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            stale = SessionEvent(SessionEventType.MESSAGE, controller.generation - 1,
                                 payload=Mock(transcript_text="old", resumption_handle="old", go_away=False))
            await controller.dispatch(stale)
            assert controller.resumption_token is None
            assert controller.buffer.pending == ()
            await controller.close()

        asyncio.run(scenario())


@pytest.mark.unit
class TestReconnect:

    def test_go_away_reconnects_with_token(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            first = fake_transport.current
            first.emit(transcript_text="Before", resumption_handle="h1")
            first.emit(go_away=True, time_left="5s")
            await settle(30)

            assert controller.state is ControllerState.OPEN
            assert controller.status is ConnectionStatus.CONNECTED
            assert controller.reconnect_attempts == 1
            assert fake_transport.connect_calls == 2
            assert fake_transport.setups[1].resumption_handle == "h1"
            assert first.close_calls == 1
            assert controller.pipeline_builds == 1
            assert controller.session.connection is fake_transport.current

            controller.buffer.flush()
            assert controller.buffer.texts == ["Before", GAP_MARKER]
            assert controller.buffer.transcript[1].is_marker
            await controller.close()

        asyncio.run(scenario())

    def test_token_retained_across_reconnects(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            fake_transport.current.emit(go_away=True)
            await settle(30)
            fake_transport.current.drop()
            await settle(30)

            assert controller.reconnect_attempts == 2
            assert [s.resumption_handle for s in fake_transport.setups] == [None, "h1", "h1"]
            assert controller.state is ControllerState.OPEN
            await controller.close()

        asyncio.run(scenario())

    def test_unexpected_close_with_token_reconnects(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()
            fake_transport.current.drop(code=1011)
            await settle(30)

            assert controller.state is ControllerState.OPEN
            assert controller.reconnect_attempts == 1
            assert len(fake_transport.connections) == 2
            await controller.close()

        asyncio.run(scenario())

    def test_unexpected_close_without_token_disconnects(self, make_controller, fake_transport,
                                                        make_frame, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.drop()
            await settle(30)

            assert controller.state is ControllerState.CLOSED
            assert controller.status is ConnectionStatus.DISCONNECTED
            assert fake_transport.connect_calls == 1
            assert controller.can_send() is False
            # Audio keeps flowing through the gate but goes nowhere
            controller.pipeline.process(make_frame(amplitude=0.2, timestamp=1.0))
            await controller.drain()
            assert fake_transport.current.sent == []

            await controller.close()
            assert controller.state is ControllerState.CLOSED

        asyncio.run(scenario())

    def test_failed_reconnect_reports_disconnected(self, make_controller, fake_transport, settle):
        async def scenario():
            statuses = []
            controller = make_controller(on_status_change=statuses.append)
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()
            fake_transport.fail_with = TransportError("backend down")
            fake_transport.current.drop()
            await settle(30)

            assert controller.state is ControllerState.CLOSED
            assert controller.status is ConnectionStatus.DISCONNECTED
            assert fake_transport.connect_calls == 2
            assert statuses == [ConnectionStatus.CONNECTED, ConnectionStatus.RECONNECTING,
                                ConnectionStatus.DISCONNECTED]
            await controller.close()

        asyncio.run(scenario())

    def test_reconnect_socket_error_reports_disconnected(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()
            fake_transport.fail_with = ConnectionResetError("Cannot write to closing transport")
            fake_transport.current.drop()
            await settle(30)

            assert controller.state is ControllerState.CLOSED
            assert controller.status is ConnectionStatus.DISCONNECTED
            assert fake_transport.connect_calls == 2
            await controller.close()

        asyncio.run(scenario())

    def test_reconnect_limit(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller(max_reconnects=1)
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()
            fake_transport.current.drop()
            await settle(30)
            assert controller.state is ControllerState.OPEN

            fake_transport.current.drop()
            await settle(30)
            assert controller.state is ControllerState.CLOSED
            assert controller.status is ConnectionStatus.DISCONNECTED
            assert fake_transport.connect_calls == 2
            await controller.close()

        asyncio.run(scenario())

    def test_second_trigger_while_reconnecting_is_ignored(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()

            release = fake_transport.hold_connects()
            controller.request_reconnect("first")
            controller.request_reconnect("second")
            await settle()
            assert controller.state is ControllerState.RECONNECTING
            # A trigger for the current generation hits the in-flight guard
            await controller.dispatch(SessionEvent(SessionEventType.RECONNECT_REQUESTED,
                                                   controller.generation, reason="third"))

            release.set()
            await settle(30)

            assert fake_transport.connect_calls == 2
            assert len(fake_transport.connections) == 2
            assert controller.reconnect_attempts == 1
            assert controller.state is ControllerState.OPEN
            controller.buffer.flush()
            assert controller.buffer.texts.count(GAP_MARKER) == 1
            await controller.close()

        asyncio.run(scenario())

    def test_cancel_during_reconnect_stays_closed(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()

            release = fake_transport.hold_connects()
            controller.request_reconnect("go away")
            await settle()
            assert controller.state is ControllerState.RECONNECTING

            await controller.close(discard=True)
            release.set()
            await settle(30)

            assert controller.state is ControllerState.CLOSED
            assert controller.session is None
            assert controller.status is ConnectionStatus.DISCONNECTED

        asyncio.run(scenario())

    def test_reconnect_resolving_after_teardown_is_discarded(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(resumption_handle="h1")
            await settle()

            release = fake_transport.hold_connects()
            # Not tracked by the controller, so teardown cannot cancel it
            reconnect = asyncio.ensure_future(controller._reconnect("untracked"))
            await settle()
            await controller.close()

            release.set()
            await reconnect

            late = fake_transport.current
            assert len(fake_transport.connections) == 2
            assert late.close_calls == 1
            assert controller.state is ControllerState.CLOSED
            assert controller.session is None

        asyncio.run(scenario())


@pytest.mark.unit
class TestTeardown:

    def test_close_flushes_and_releases_everything(self, make_controller, fake_transport,
                                                   make_frame, settle):
        async def scenario():
            controller = make_controller()
            capture = Mock()
            await controller.start(capture)
            connection = fake_transport.current
            pipeline = controller.pipeline
            controller.pipeline.process(make_frame(amplitude=0.2, timestamp=1.0))
            await controller.drain()
            connection.emit(transcript_text="Last words", resumption_handle="h1")
            await settle()
            assert controller.chunks_sent == 1

            await controller.close()
            await controller.close()

            assert controller.state is ControllerState.CLOSED
            assert controller.buffer.texts == ["Last words"]
            assert controller.chunks_sent == 0
            assert controller.reconnect_attempts == 0
            assert controller.resumption_token is None
            assert controller.pipeline is None
            assert pipeline.attached is False
            assert connection.close_calls == 1
            capture.stop_recording.assert_called_once()

        asyncio.run(scenario())

    def test_close_with_discard(self, make_controller, fake_transport, settle):
        async def scenario():
            controller = make_controller()
            await controller.start()
            fake_transport.current.emit(transcript_text="Secret")
            await settle()
            controller.buffer.flush()
            await controller.close(discard=True)
            return controller.buffer

        buffer = asyncio.run(scenario())
        assert buffer.transcript == ()
        assert buffer.pending == ()

    def test_close_before_start(self, make_controller):
        async def scenario():
            controller = make_controller()
            await controller.close()
            return controller

        assert asyncio.run(scenario()).state is ControllerState.CLOSED
