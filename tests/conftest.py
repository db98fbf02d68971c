"""Pytest configuration and fixtures for MeetScribe tests."""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest
import yaml
from pubsub import pub

from meetscribe.config import MeetScribeConfig
from meetscribe.models.audio import AudioFrame, AudioStats, EncodedChunk
from meetscribe.models.transcription import ServerMessage
from meetscribe.transcription.base import (
    AbstractStreamingConnection,
    AbstractStreamingTransport,
    LiveSessionSetup,
)
from meetscribe.transcription.credentials import CredentialError


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "integration: end-to-end recording scenarios")


class FakeConnection(AbstractStreamingConnection):
    """In-memory streaming connection; the test plays the server."""

    def __init__(self, api_key: str, setup: LiveSessionSetup):
        self.api_key = api_key
        self.setup = setup
        self.sent: List[EncodedChunk] = []
        self.close_calls = 0
        self._closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_audio(self, chunk: EncodedChunk) -> None:
        if self._closed:
            raise ConnectionResetError("connection closed")
        self.sent.append(chunk)

    async def messages(self):
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            yield message

    def emit(self, **fields) -> None:
        """Queue one server message, e.g. emit(transcript_text="hi")."""
        self._inbox.put_nowait(ServerMessage(**fields))

    def drop(self, code: int = 1011, reason: str = "internal error") -> None:
        """Simulate the server closing the connection."""
        self.close_code = code
        self.close_reason = reason
        self._closed = True
        self._inbox.put_nowait(None)

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True
        self._inbox.put_nowait(None)


class FakeTransport(AbstractStreamingTransport):
    """Records every connect; can hold or fail the next ones."""

    def __init__(self):
        self.connections: List[FakeConnection] = []
        self.setups: List[LiveSessionSetup] = []
        self.fail_with: Optional[Exception] = None
        self.hold: Optional[asyncio.Event] = None

    @property
    def connect_calls(self) -> int:
        return len(self.setups)

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]

    def hold_connects(self) -> asyncio.Event:
        """Block connects until the returned event is set."""
        self.hold = asyncio.Event()
        return self.hold

    async def connect(self, api_key: str, setup: LiveSessionSetup) -> FakeConnection:
        self.setups.append(setup)
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_with is not None:
            raise self.fail_with
        connection = FakeConnection(api_key, setup)
        self.connections.append(connection)
        return connection


class FakeCredentials:
    """Stands in for CredentialClient."""

    def __init__(self, key: str = "test-key", error: Optional[str] = None):
        self.key = key
        self.error = error
        self.calls = 0

    async def fetch_key(self) -> str:
        self.calls += 1
        if self.error:
            raise CredentialError(self.error)
        return self.key


class FakeCapture:
    """Microphone stand-in; frames are pushed by the test with emit()."""

    def __init__(self, callback, sample_rate=16000, chunk_size=4096, channels=1):
        self.callback = callback
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.is_recording = False
        self.start_calls = 0
        self.stop_calls = 0
        self.total_chunks = 0

    def start_recording(self) -> None:
        self.start_calls += 1
        self.is_recording = True

    def stop_recording(self) -> None:
        if self.is_recording:
            self.stop_calls += 1
        self.is_recording = False

    def emit(self, frame: AudioFrame) -> None:
        self.total_chunks += 1
        self.callback(frame)

    def get_recording_stats(self) -> AudioStats:
        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=0.0,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop subscribers left behind by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Silent float32 audio, one 4096-sample frame per read
        mock_stream.read.return_value = np.zeros(4096, dtype=np.float32).tobytes()
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def make_frame():
    """Build AudioFrames of a 440 Hz tone at a given amplitude."""
    def _make_frame(amplitude: float = 0.1, timestamp: float = 0.0,
                    samples: int = 4096, frame_number: int = 1) -> AudioFrame:
        t = np.arange(samples) / 16000.0
        data = (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
        return AudioFrame(samples=data, timestamp=timestamp, frame_number=frame_number)
    return _make_frame


@pytest.fixture
def test_config(temp_data_dir):
    """A MeetScribeConfig backed by a YAML file in a temp directory."""
    settings = {
        "backend": {"base_url": "http://localhost:3001", "auth_token": "user-token"},
        "live": {"max_reconnects": 10},
        "audio": {"sample_rate": 16000, "chunk_size": 4096, "channels": 1, "clamp_samples": True},
        "vad": {"rms_threshold": 0.004, "hangover_ms": 1000},
        "transcript": {"flush_interval_ms": 300, "expect_english": True},
        "session": {"tick_seconds": 1.0, "level_bins": 32, "level_interval_ms": 50},
        "storage": {"data_directory": "data"},
        "logging": {"level": "DEBUG", "file_path": "data/logs/meetscribe.log"},
    }
    config_path = Path(temp_data_dir) / "meetscribe.yaml"
    with open(config_path, 'w') as f:
        yaml.safe_dump(settings, f)
    return MeetScribeConfig(str(config_path))


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_credentials():
    return FakeCredentials()


@pytest.fixture
def capture_factory():
    """Capture factory that remembers every FakeCapture it built."""
    built: List[FakeCapture] = []

    def _factory(callback, **kwargs) -> FakeCapture:
        capture = FakeCapture(callback, **kwargs)
        built.append(capture)
        return capture

    _factory.built = built
    return _factory


@pytest.fixture
def settle():
    """Let scheduled callbacks and tasks run."""
    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle
