"""Abstract base classes for transcription backends and strategies."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator, Optional
import logging

from ..models.audio import AudioFrame
from ..models.events import TranscriptionEvent
from ..models.transcription import TranscriptionMode, TranscriptionResult

logger = logging.getLogger(__name__)

NO_SPEECH_DETECTED = "[NO_SPEECH_DETECTED]"

EventSink = Callable[[TranscriptionEvent], None]


class AbstractTranscriptionBackend(ABC):
    """Request/response speech-to-text: one encoded clip in, one transcript out."""

    def __init__(self, language: str = "en-US"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    def transcribe_clip(self, chunk_id: str, audio_clip: bytes,
                        timeout: Optional[float] = None) -> TranscriptionResult:
        """Transcribe an encoded audio clip.

        Args:
            chunk_id: Identifier used for logging and correlation
            audio_clip: Encoded (WAV) audio
            timeout: Per-request deadline in seconds

        Returns:
            TranscriptionResult with transcription and metadata

        Raises:
            TranscriptionError: On timeout, service errors or bad responses
        """

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration."""

    def cleanup(self) -> None:
        """Clean up backend resources."""


@dataclass(frozen=True)
class StreamingUpdate:
    """One transcript event from a streaming connection."""
    text: str
    is_final: bool
    confidence: float = 0.0


class AbstractStreamingBackend(ABC):
    """Duplex speech-to-text: audio frames out, transcript updates in."""

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration."""

    @abstractmethod
    def stream(self, audio_chunks: Iterator[bytes]) -> Iterator[StreamingUpdate]:
        """Open a streaming call fed by ``audio_chunks``.

        The returned iterator yields updates until the request iterator is
        exhausted. Errors are raised as TranscriptionError while iterating.
        """


class TranscriptionStrategy(ABC):
    """A transcription channel the RecordingController can activate.

    Strategies never mutate the recording session. They report everything
    through ``emit`` as typed events tagged with the session id and the
    generation they were started with.
    """

    mode: TranscriptionMode

    def __init__(self, emit: EventSink):
        self.emit = emit
        self.session_id: Optional[str] = None
        self.generation = 0

    @abstractmethod
    def start(self, session_id: str, generation: int) -> None:
        """Begin accepting audio for ``session_id``."""

    @abstractmethod
    def feed(self, frame: AudioFrame) -> None:
        """Accept one captured audio frame (called on the capture thread)."""

    @abstractmethod
    def stop(self) -> None:
        """Stop accepting audio and finish in-flight work (bounded wait)."""

    def _envelope(self) -> dict:
        return {"session_id": self.session_id, "generation": self.generation, "mode": self.mode}
