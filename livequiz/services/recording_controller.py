"""Recording lifecycle and transcription-strategy routing for one instructor."""

import time
import logging
import threading
from collections import deque
from queue import Queue, Empty
from typing import Callable, Deque, Optional

from pubsub import pub

from ..audio.audio_pub import AUDIO_FRAME_TOPIC
from ..audio.capture import AudioCapture
from ..errors import RecordingError, RecordingPausedError
from ..models.audio import AudioFrame
from ..models.events import (
    CircuitOpen,
    StrategyClosed,
    StrategyError,
    StrategyReady,
    TranscriptEvent,
    TranscriptionEvent,
    TranscriptionFailed,
)
from ..models.session import RecordingSession
from ..models.transcription import TranscriptChunk, TranscriptionMode
from ..transcription.base import EventSink, TranscriptionStrategy
from .interval_scheduler import IntervalScheduler

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[TranscriptionMode, EventSink], TranscriptionStrategy]


class RecordingController:
    """Owns the recording session and the active transcription strategy.

    Audio frames arrive on the capture thread through the ``audio.frame``
    topic and are routed to exactly one strategy (or held while a switch is
    in progress). Strategies report back through ``events``; everything that
    touches the session happens in :meth:`pump_events`, on the caller's loop.
    """

    def __init__(self,
                 capture: AudioCapture,
                 strategy_factory: StrategyFactory,
                 scheduler: Optional[IntervalScheduler] = None,
                 default_mode: TranscriptionMode = TranscriptionMode.STREAMING,
                 ready_timeout_seconds: float = 5.0,
                 on_recording_paused: Optional[Callable[[RecordingError], None]] = None,
                 on_transcript: Optional[Callable[[TranscriptChunk], None]] = None,
                 frame_topic: str = AUDIO_FRAME_TOPIC,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the controller.

        Args:
            capture: Audio device wrapper; its frames must be published on ``frame_topic``
            strategy_factory: Builds a strategy for a mode, wired to an event sink
            scheduler: Auto-question scheduler re-anchored on every (re)start
            default_mode: Mode used when start() is called without one
            ready_timeout_seconds: How long a strategy may take to report ready
            on_recording_paused: Called when transcription gives up and recording stops
            on_transcript: Called for every ingested chunk
            clock: Monotonic clock in seconds
        """
        self.capture = capture
        self.strategy_factory = strategy_factory
        self.scheduler = scheduler
        self.default_mode = default_mode
        self.ready_timeout_seconds = ready_timeout_seconds
        self.on_recording_paused = on_recording_paused
        self.on_transcript = on_transcript
        self.frame_topic = frame_topic
        self.clock = clock

        self.events: Queue = Queue()
        self.session: Optional[RecordingSession] = None
        self.strategy: Optional[TranscriptionStrategy] = None
        self.generation = 0
        self.last_error: Optional[RecordingError] = None

        self._ingesting = False
        self._holding = False
        self._held_frames: Deque[AudioFrame] = deque()
        self._frame_lock = threading.Lock()
        self._ready_deadline: Optional[float] = None
        self._started_monotonic: Optional[float] = None
        self._subscribed = False

    @property
    def is_recording(self) -> bool:
        return self.session is not None

    @property
    def mode(self) -> Optional[TranscriptionMode]:
        return self.session.mode if self.session else None

    def recording_duration(self) -> float:
        if self._started_monotonic is None or self.session is None:
            return 0.0
        return self.clock() - self._started_monotonic

    def start(self, mode: Optional[TranscriptionMode] = None) -> RecordingSession:
        """Open the device and begin a new session.

        Raises:
            RecordingError: A session is already active
            DeviceError: The microphone could not be acquired
        """
        if self.session is not None:
            raise RecordingError("Recording already in progress")

        mode = mode or self.default_mode
        self.capture.open()

        self.session = RecordingSession.create(started_at=time.time(), mode=mode)
        self._started_monotonic = self.clock()
        self.last_error = None
        logger.info(f"Recording session {self.session.session_id} started ({mode.value})")

        if not self._subscribed:
            pub.subscribe(self.on_audio_frame, self.frame_topic)
            self._subscribed = True

        self._activate(mode)
        self.capture.start_recording()

        if self.scheduler:
            self.scheduler.attach(self.session.interval_buffer)
            self.scheduler.reanchor()
        return self.session

    def stop(self) -> None:
        """Tear down strategy, device and session. Safe to call when stopped."""
        if self.session is None:
            return

        session = self.session
        logger.info(f"Stopping recording session {session.session_id}")

        if self._subscribed:
            pub.unsubscribe(self.on_audio_frame, self.frame_topic)
            self._subscribed = False
        with self._frame_lock:
            self._holding = False
            self._held_frames.clear()

        self.capture.stop_recording()

        if self.strategy is not None:
            self.strategy.stop()
            self._drain(self.generation)
            self.strategy = None

        self._ingesting = False
        self._ready_deadline = None
        # Anything still queued belongs to the old session and will be discarded
        self.generation += 1
        self.session = None
        self._started_monotonic = None
        if self.scheduler:
            self.scheduler.attach(None)

        logger.info(f"Recording session {session.session_id} stopped "
                    f"({session.chunks_ingested} chunks, {len(session.transcript_buffer)} chars)")

    def switch_mode(self, target: TranscriptionMode) -> None:
        """Swap the active strategy without losing audio or ingesting anything twice."""
        if self.session is None:
            raise RecordingError("No active recording to switch")
        if self.strategy is not None and self.session.mode == target:
            logger.debug(f"Already in {target.value} mode")
            return

        logger.info(f"Switching transcription mode {self.session.mode.value} -> {target.value}")
        with self._frame_lock:
            self._holding = True

        if self.strategy is not None:
            self.strategy.stop()
            self._drain(self.generation)
            self.strategy = None

        self._activate(target)

    def _activate(self, mode: TranscriptionMode) -> None:
        with self._frame_lock:
            self._holding = True
        self._ingesting = False
        self.generation += 1
        self.session.mode = mode

        try:
            strategy = self.strategy_factory(mode, self.events.put)
            strategy.start(self.session.session_id, self.generation)
        except Exception as e:
            if mode is TranscriptionMode.STREAMING:
                logger.warning(f"Streaming transcription unavailable ({e}); falling back to chunked")
                self._activate(TranscriptionMode.CHUNKED)
                return
            raise

        self.strategy = strategy
        self._ready_deadline = self.clock() + self.ready_timeout_seconds

    def on_audio_frame(self, frame: AudioFrame) -> None:
        """Route one frame to the active strategy (pubsub listener, capture thread)."""
        with self._frame_lock:
            if self._holding:
                self._held_frames.append(frame)
                return
            strategy = self.strategy
            if strategy is not None:
                strategy.feed(frame)

    def _release_held_frames(self) -> None:
        with self._frame_lock:
            replayed = len(self._held_frames)
            while self._held_frames:
                self.strategy.feed(self._held_frames.popleft())
            self._holding = False
        if replayed:
            logger.debug(f"Replayed {replayed} held frames to {self.session.mode.value} strategy")

    def pump_events(self, timeout: float = 0.1) -> int:
        """Apply queued strategy events on the caller's thread.

        Waits up to ``timeout`` for the first event, then drains what is queued.

        Returns:
            Number of events taken off the queue
        """
        handled = 0
        try:
            event = self.events.get(timeout=timeout) if timeout else self.events.get_nowait()
            while True:
                self._handle(event)
                handled += 1
                event = self.events.get_nowait()
        except Empty:
            pass

        self._check_ready_timeout()
        return handled

    def run_once(self, timeout: float = 0.1) -> int:
        """One iteration of the control loop: apply events, then tick the scheduler.

        Returns:
            Seconds left until the next auto-question
        """
        self.pump_events(timeout)
        if self.scheduler is None or self.session is None:
            return 0
        return self.scheduler.tick()

    def _drain(self, generation: int) -> None:
        """Apply whatever the stopped strategy left on the queue."""
        while True:
            try:
                event = self.events.get_nowait()
            except Empty:
                return
            if event.generation == generation and isinstance(event, (TranscriptEvent, TranscriptionFailed)):
                self._handle(event)
            else:
                logger.debug(f"Dropping {type(event).__name__} from stopped strategy")

    def _is_current(self, event: TranscriptionEvent) -> bool:
        if self.session is None or event.session_id != self.session.session_id:
            logger.debug(f"Discarding {type(event).__name__} from stale session {event.session_id}")
            return False
        if event.generation != self.generation:
            logger.debug(f"Discarding {type(event).__name__} from stale generation {event.generation}")
            return False
        return True

    def _handle(self, event: TranscriptionEvent) -> None:
        if not self._is_current(event):
            return

        if isinstance(event, TranscriptEvent):
            self._ingest(event)
        elif isinstance(event, StrategyReady):
            self._ready_deadline = None
            self._release_held_frames()
            self._ingesting = True
            logger.info(f"{event.mode.value.capitalize()} transcription ready")
        elif isinstance(event, TranscriptionFailed):
            self.session.consecutive_failures = event.consecutive_failures
        elif isinstance(event, CircuitOpen):
            self.session.consecutive_failures = event.consecutive_failures
            self._pause(RecordingPausedError(event.consecutive_failures))
        elif isinstance(event, StrategyError):
            if event.mode is TranscriptionMode.STREAMING:
                logger.warning(f"Streaming transcription failed ({event.error}); falling back to chunked")
                self.switch_mode(TranscriptionMode.CHUNKED)
            else:
                self._pause(RecordingError(f"Transcription unavailable: {event.error}"))
        elif isinstance(event, StrategyClosed):
            logger.debug(f"{event.mode.value} strategy closed")

    def _ingest(self, event: TranscriptEvent) -> None:
        chunk = event.chunk
        if chunk is None or not chunk.is_final:
            return
        if not self._ingesting:
            logger.debug("Ingestion disabled, dropping chunk")
            return
        self.session.ingest(chunk)
        if event.mode is TranscriptionMode.CHUNKED:
            self.session.consecutive_failures = 0
        logger.debug(f"Ingested chunk: '{chunk.text[:50]}'")
        if self.on_transcript:
            self.on_transcript(chunk)

    def _check_ready_timeout(self) -> None:
        if self._ready_deadline is None or self.session is None:
            return
        if self.clock() < self._ready_deadline:
            return
        if self.session.mode is TranscriptionMode.STREAMING:
            logger.warning(f"Streaming not ready after {self.ready_timeout_seconds}s; falling back to chunked")
            self.switch_mode(TranscriptionMode.CHUNKED)
        else:
            self._ready_deadline = None

    def _pause(self, error: RecordingError) -> None:
        logger.error(str(error))
        self.last_error = error
        self.stop()
        if self.on_recording_paused:
            self.on_recording_paused(error)
