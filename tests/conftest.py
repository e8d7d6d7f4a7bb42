"""Pytest configuration and fixtures for LiveQuiz tests."""

import pytest
import logging
from unittest.mock import Mock, patch
import numpy as np
from pubsub import pub

from livequiz.models.audio import AudioFrame
from livequiz.models.events import StrategyError, StrategyReady, TranscriptEvent
from livequiz.models.transcription import TranscriptChunk, TranscriptionMode
from livequiz.transcription.base import TranscriptionStrategy


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: several components wired together")
    config.addinivalue_line("markers", "hardware: needs a real microphone")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop listeners left behind by a test."""
    yield
    pub.unsubAll()


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float) -> float:
        self.now += amount
        return self.now


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def make_frame(sample_audio_chunk):
    """Factory for AudioFrames carrying the sine chunk (2048 bytes each)."""
    counter = {"n": 0}

    def _make(data: bytes = None, timestamp: float = None) -> AudioFrame:
        counter["n"] += 1
        return AudioFrame(
            data=data if data is not None else sample_audio_chunk,
            timestamp=timestamp if timestamp is not None else float(counter["n"]),
            sequence_number=counter["n"],
        )

    return _make


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def mock_audio_capture():
    """Mock AudioCapture for testing."""
    mock = Mock()
    mock.is_recording = False
    mock.open.return_value = None
    mock.start_recording.return_value = None
    mock.stop_recording.return_value = None
    return mock


@pytest.fixture
def test_config():
    """Test configuration settings."""
    return {
        "instructor": {"id": "instructor-1"},
        "audio": {
            "sample_rate": 16000,
            "chunk_size": 1024,
            "channels": 1
        },
        "transcription": {
            "default_mode": "streaming",
            "chunked": {"clip_duration_seconds": 8.0, "max_consecutive_failures": 5},
        },
        "rate_limit": {"cooldown_seconds": 60, "daily_limit": 200},
        "distribution": {"batch_size": 15},
        "storage": {"database_path": ":memory:"},
    }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)  # 440 Hz sine wave
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        # Convert to 16-bit integers
        audio_data = (wave_data * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


class FakeStrategy(TranscriptionStrategy):
    """In-process strategy: records fed frames and emits events on demand."""

    def __init__(self, mode, emit, ready_on_start=True):
        super().__init__(emit)
        self.mode = mode
        self.ready_on_start = ready_on_start
        self.fed = []
        self.stopped = False
        self.flush_on_stop = None

    def start(self, session_id, generation):
        self.session_id = session_id
        self.generation = generation
        if self.ready_on_start:
            self.ready()

    def feed(self, frame):
        self.fed.append(frame)

    def stop(self):
        self.stopped = True
        if self.flush_on_stop:
            self.say(self.flush_on_stop)

    def ready(self):
        self.emit(StrategyReady(**self._envelope()))

    def say(self, text, is_final=True):
        chunk = TranscriptChunk(text=text, captured_at=0.0, is_final=is_final)
        self.emit(TranscriptEvent(chunk=chunk, **self._envelope()))

    def fail(self, error="connection reset"):
        self.emit(StrategyError(error=error, **self._envelope()))


class FakeStrategyFactory:
    """Strategy factory for RecordingController that keeps every strategy it built."""

    def __init__(self):
        self.created = []
        self.ready_on_start = {TranscriptionMode.STREAMING: True, TranscriptionMode.CHUNKED: True}
        self.unavailable = set()

    def __call__(self, mode, emit):
        if mode in self.unavailable:
            raise ConnectionError(f"{mode.value} backend unreachable")
        strategy = FakeStrategy(mode, emit, self.ready_on_start[mode])
        self.created.append(strategy)
        return strategy

    @property
    def current(self):
        return self.created[-1]


@pytest.fixture
def strategy_factory():
    return FakeStrategyFactory()
