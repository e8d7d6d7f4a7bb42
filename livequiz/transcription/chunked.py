"""Chunked transcription: fixed-length clips submitted one at a time."""

import io
import time
import wave
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future, wait
from enum import Enum
from typing import Callable, List, Optional

from .base import AbstractTranscriptionBackend, EventSink, TranscriptionStrategy, NO_SPEECH_DETECTED
from ..errors import TranscriptionError
from ..models.audio import AudioFrame
from ..models.events import CircuitOpen, StrategyClosed, StrategyError, StrategyReady, TranscriptEvent, TranscriptionFailed
from ..models.transcription import TranscriptChunk, TranscriptionMode

logger = logging.getLogger(__name__)

SAMPLE_WIDTH_BYTES = 2  # paInt16


class ChunkedState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    ENCODING = "encoding"
    SUBMITTING = "submitting"
    BACKOFF = "backoff"


def encode_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw 16-bit PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def backoff_delay(consecutive_failures: int, base: float, cap: float) -> float:
    """Exponential backoff after ``consecutive_failures`` failures (1-based)."""
    return min(base * (2 ** (consecutive_failures - 1)), cap)


class ChunkedTranscriber(TranscriptionStrategy):
    """Records back-to-back clips from the live frame stream and transcribes each one.

    Frames are accumulated on the capture thread. A full clip is handed to a
    single worker thread which encodes it, submits it to the backend and emits
    the outcome as an event. Failures back off exponentially; after
    ``max_consecutive_failures`` in a row the circuit opens and the
    transcriber stops accepting audio. Clips still queued on the worker are
    dropped while backing off or once the circuit is open.
    """

    mode = TranscriptionMode.CHUNKED

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 emit: EventSink,
                 sample_rate: int = 16000,
                 channels: int = 1,
                 clip_duration_seconds: float = 8.0,
                 min_clip_bytes: int = 1000,
                 submit_timeout_seconds: float = 10.0,
                 backoff_base_seconds: float = 1.0,
                 backoff_cap_seconds: float = 30.0,
                 max_consecutive_failures: int = 5,
                 stop_timeout_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize chunked transcriber.

        Args:
            backend: Request/response speech-to-text backend
            emit: Sink for transcription events (the controller's queue)
            clip_duration_seconds: Length of each recorded clip
            min_clip_bytes: Clips shorter than this are not submitted
            submit_timeout_seconds: Deadline for a single backend call
            backoff_base_seconds: First backoff delay
            backoff_cap_seconds: Upper bound for the backoff delay
            max_consecutive_failures: Failures in a row that open the circuit
            stop_timeout_seconds: How long stop() waits for in-flight work
            clock: Monotonic clock in seconds
        """
        super().__init__(emit)
        self.backend = backend
        self.sample_rate = sample_rate
        self.channels = channels
        self.clip_bytes = int(clip_duration_seconds * sample_rate * channels * SAMPLE_WIDTH_BYTES)
        self.min_clip_bytes = min_clip_bytes
        self.submit_timeout_seconds = submit_timeout_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_cap_seconds = backoff_cap_seconds
        self.max_consecutive_failures = max_consecutive_failures
        self.stop_timeout_seconds = (stop_timeout_seconds if stop_timeout_seconds is not None
                                     else submit_timeout_seconds + 1.0)
        self.clock = clock

        self.state = ChunkedState.IDLE
        self.consecutive_failures = 0
        self.backoff_until = 0.0
        self.accepting = False
        self.halted = False
        self.clips_submitted = 0

        self._clip = bytearray()
        self._clip_started_at: Optional[float] = None
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []

    def start(self, session_id: str, generation: int) -> None:
        with self._lock:
            self.session_id = session_id
            self.generation = generation
            self.consecutive_failures = 0
            self.backoff_until = 0.0
            self._clip = bytearray()
            self._clip_started_at = None
            self._pending = []
            self.halted = False
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chunked-stt")
            self.accepting = True
            self.state = ChunkedState.RECORDING

        logger.info(f"Chunked transcription started (session={session_id}, generation={generation}, "
                    f"clip={self.clip_bytes} bytes)")
        # No connection to establish: ready as soon as started
        self.emit(StrategyReady(**self._envelope()))

    def feed(self, frame: AudioFrame) -> None:
        clip = None
        with self._lock:
            if not self.accepting:
                return

            if self.state == ChunkedState.BACKOFF:
                if self.clock() < self.backoff_until:
                    return
                logger.debug("Backoff elapsed, recording next clip")
                self.state = ChunkedState.RECORDING

            if self._clip_started_at is None:
                self._clip_started_at = frame.timestamp
            self._clip.extend(frame.data)

            if len(self._clip) >= self.clip_bytes:
                clip = (bytes(self._clip), self._clip_started_at)
                self._clip = bytearray()
                self._clip_started_at = None

        if clip:
            self._submit(*clip)

    def _submit(self, pcm: bytes, captured_at: float) -> None:
        if self._executor is None:
            return
        future = self._executor.submit(self.process_clip, pcm, captured_at)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def process_clip(self, pcm: bytes, captured_at: float) -> None:
        """Encode, submit and report one clip (runs on the worker thread)."""
        if len(pcm) < self.min_clip_bytes:
            logger.debug(f"Skipping short clip ({len(pcm)} bytes)")
            return

        with self._lock:
            if self.halted:
                logger.info(f"Dropping queued clip ({len(pcm)} bytes): transcription halted")
                return
            remaining = self.backoff_until - self.clock()
            if remaining > 0:
                logger.info(f"Dropping queued clip ({len(pcm)} bytes): backing off for {remaining:.1f}s")
                return
            self.state = ChunkedState.ENCODING
        audio = encode_wav(pcm, self.sample_rate, self.channels)

        with self._lock:
            self.state = ChunkedState.SUBMITTING
            self.clips_submitted += 1
            chunk_id = f"{self.session_id}-{self.generation}-{self.clips_submitted}"

        try:
            result = self.backend.transcribe_clip(chunk_id, audio, timeout=self.submit_timeout_seconds)
        except TranscriptionError as e:
            self._on_failure(e)
            return
        except Exception as e:
            logger.error(f"Unexpected transcription failure for {chunk_id}: {e}", exc_info=True)
            self._on_failure(TranscriptionError(str(e)))
            return

        self._on_success(result.text, captured_at)

    def _on_success(self, text: str, captured_at: float) -> None:
        with self._lock:
            self.consecutive_failures = 0
            self.state = ChunkedState.RECORDING if self.accepting else ChunkedState.IDLE

        text = text.strip()
        if not text or text == NO_SPEECH_DETECTED:
            return
        chunk = TranscriptChunk(text=text, captured_at=captured_at, is_final=True)
        self.emit(TranscriptEvent(chunk=chunk, **self._envelope()))

    def _on_failure(self, error: TranscriptionError) -> None:
        if not error.retryable:
            logger.error(f"Chunked transcription cannot continue: {error}")
            with self._lock:
                self.accepting = False
                self.halted = True
                self.state = ChunkedState.IDLE
            self.emit(StrategyError(error=str(error), **self._envelope()))
            return

        with self._lock:
            self.consecutive_failures += 1
            failures = self.consecutive_failures
            # Audio recorded while the failed clip was in flight belongs to the abandoned cycle
            self._clip = bytearray()
            self._clip_started_at = None

            if failures >= self.max_consecutive_failures:
                self.accepting = False
                self.halted = True
                self.state = ChunkedState.IDLE
                delay = 0.0
            else:
                delay = backoff_delay(failures, self.backoff_base_seconds, self.backoff_cap_seconds)
                self.backoff_until = self.clock() + delay
                self.state = ChunkedState.BACKOFF

        if failures >= self.max_consecutive_failures:
            logger.error(f"Circuit open after {failures} consecutive transcription failures")
            self.emit(CircuitOpen(consecutive_failures=failures, **self._envelope()))
            return

        logger.warning(f"Transcription failed ({failures}/{self.max_consecutive_failures}), "
                       f"backing off {delay:.1f}s: {error}")
        self.emit(TranscriptionFailed(consecutive_failures=failures, backoff_seconds=delay,
                                      error=str(error), **self._envelope()))

    def stop(self) -> None:
        with self._lock:
            if self._executor is None:
                return
            was_accepting = self.accepting
            self.accepting = False
            partial = (bytes(self._clip), self._clip_started_at)
            self._clip = bytearray()
            self._clip_started_at = None

        if was_accepting and len(partial[0]) >= self.min_clip_bytes:
            logger.debug(f"Flushing partial clip ({len(partial[0])} bytes)")
            self._submit(*partial)

        with self._lock:
            pending = list(self._pending)
        done, not_done = wait(pending, timeout=self.stop_timeout_seconds)
        if not_done:
            logger.warning(f"{len(not_done)} clip submission(s) still in flight after "
                           f"{self.stop_timeout_seconds}s; their results will be discarded")

        self._executor.shutdown(wait=False)
        with self._lock:
            self._executor = None
            self._pending = []
            self.state = ChunkedState.IDLE

        logger.info(f"Chunked transcription stopped (session={self.session_id})")
        self.emit(StrategyClosed(**self._envelope()))
