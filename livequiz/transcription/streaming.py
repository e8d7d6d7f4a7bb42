"""Streaming transcription over one long-lived duplex connection."""

import time
import logging
import threading
from enum import Enum
from queue import Queue
from typing import Iterator, Optional

from .base import AbstractStreamingBackend, EventSink, TranscriptionStrategy
from ..models.audio import AudioFrame
from ..models.events import StrategyClosed, StrategyError, StrategyReady, TranscriptEvent
from ..models.transcription import TranscriptChunk, TranscriptionMode

logger = logging.getLogger(__name__)

_END_OF_STREAM = None


class StreamingState(Enum):
    CONNECTING = "connecting"
    READY = "ready"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERROR = "error"


class StreamingTranscriber(TranscriptionStrategy):
    """Sends live frames to a streaming backend and emits its final results.

    Partial results are dropped. Any failure or an end of stream that was not
    requested by ``stop()`` moves to ERROR and emits ``StrategyError``; the
    controller decides what to do next.
    """

    mode = TranscriptionMode.STREAMING

    def __init__(self, backend: AbstractStreamingBackend, emit: EventSink,
                 stop_timeout_seconds: float = 5.0):
        super().__init__(emit)
        self.backend = backend
        self.stop_timeout_seconds = stop_timeout_seconds
        self.state = StreamingState.CLOSED
        self.frames_sent = 0
        self._frames: Queue = Queue()
        self._closing = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, session_id: str, generation: int) -> None:
        self.session_id = session_id
        self.generation = generation
        self.frames_sent = 0
        self._frames = Queue()
        self._closing.clear()
        self.state = StreamingState.CONNECTING

        self._thread = threading.Thread(target=self._run, name="streaming-stt", daemon=True)
        self._thread.start()
        logger.info(f"Streaming transcription connecting (session={session_id}, generation={generation})")

    def feed(self, frame: AudioFrame) -> None:
        if self.state in (StreamingState.CONNECTING, StreamingState.READY, StreamingState.STREAMING):
            self._frames.put(frame.data)

    def _request_audio(self) -> Iterator[bytes]:
        while True:
            data = self._frames.get()
            if data is _END_OF_STREAM:
                return
            self.frames_sent += 1
            yield data

    def _run(self) -> None:
        try:
            responses = self.backend.stream(self._request_audio())
            self.state = StreamingState.READY
            self.emit(StrategyReady(**self._envelope()))

            for update in responses:
                if self._closing.is_set() and not update.is_final:
                    continue
                self.state = StreamingState.STREAMING
                if not update.is_final:
                    logger.debug(f"Discarding partial result: '{update.text[:50]}'")
                    continue
                text = update.text.strip()
                if text:
                    chunk = TranscriptChunk(text=text, captured_at=time.time(), is_final=True)
                    self.emit(TranscriptEvent(chunk=chunk, **self._envelope()))

            if self._closing.is_set():
                self._close()
            else:
                self._fail("stream ended unexpectedly")
        except Exception as e:
            if self._closing.is_set():
                logger.debug(f"Stream error during shutdown ignored: {e}")
                self._close()
            else:
                logger.error(f"Streaming transcription error: {e}")
                self._fail(str(e))

    def _fail(self, error: str) -> None:
        self.state = StreamingState.ERROR
        self.emit(StrategyError(error=error, **self._envelope()))

    def _close(self) -> None:
        self.state = StreamingState.CLOSED
        self.emit(StrategyClosed(**self._envelope()))

    def stop(self) -> None:
        if self._thread is None:
            return
        self._closing.set()
        self._frames.put(_END_OF_STREAM)
        self._thread.join(timeout=self.stop_timeout_seconds)
        if self._thread.is_alive():
            logger.warning(f"Streaming worker did not finish within {self.stop_timeout_seconds}s")
            self.state = StreamingState.CLOSED
        self._thread = None
        logger.info(f"Streaming transcription stopped (session={self.session_id}, frames_sent={self.frames_sent})")
