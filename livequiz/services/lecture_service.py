"""Lecture service: the instructor-facing actions on top of the pipeline."""

import time
import asyncio
import logging
import threading
from concurrent import futures
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence, Set

from ..distribution.dispatcher import DistributionDispatcher
from ..distribution.rate_limiter import RateLimiter
from ..errors import DeviceError, InferenceError, RateLimitRejection, RecordingError
from ..models.distribution import DistributionJob, SendSource
from ..models.presenter import LastQuestionSent, PresenterStatus
from ..models.questions import QuestionPayload, QuestionType, RawQuestion, question_preview
from ..models.transcription import TranscriptChunk, TranscriptionMode
from ..presenter.broadcast import PresenterBroadcastChannel
from ..questions.formatter import QuestionFormatter
from ..questions.generator import QuestionGenerator, MIN_EXTRACTION_CHARS
from .async_runner import AsyncRunner
from .interval_scheduler import IntervalScheduler
from .recording_controller import RecordingController
from .voice_commands import VoiceCommandDetector

logger = logging.getLogger(__name__)

MANUAL_CONTEXT_CHARS = 1500


class LectureService:
    """High-level service for running a live lecture.

    This service provides the four instructor actions:
    1. start / stop recording
    2. send a question now (button or voice command)
    3. toggle automatic interval questions

    and a control loop (:meth:`run`) that applies transcription events, ticks
    the auto-question timer and keeps the presenter view up to date. Action
    methods return a dict with ``success`` and either the result or ``error``.
    """

    def __init__(self,
                 controller: RecordingController,
                 scheduler: IntervalScheduler,
                 generator: QuestionGenerator,
                 formatter: QuestionFormatter,
                 dispatcher: DistributionDispatcher,
                 rate_limiter: RateLimiter,
                 presenter: PresenterBroadcastChannel,
                 roster_provider: Callable[[], Sequence[str]],
                 instructor_id: str,
                 voice_detector: Optional[VoiceCommandDetector] = None,
                 runner: Optional[AsyncRunner] = None,
                 format_preference: QuestionType = QuestionType.MULTIPLE_CHOICE,
                 force_send: bool = True,
                 send_timeout_seconds: float = 90.0):
        """Initialize lecture service.

        Args:
            controller: Recording controller (owns the session)
            scheduler: Auto-question timer; its callback is wired to this service
            generator: Question extraction and interval generation
            formatter: Turns raw questions into payloads
            dispatcher: Delivers payloads to the roster
            rate_limiter: Gates every send
            presenter: Status channel to the presenter view
            roster_provider: Returns the student ids linked to the instructor
            instructor_id: Rate-limit and ownership key
            voice_detector: Enables spoken "send question" commands when given
            runner: Event loop thread for async work
            format_preference: Question type used for auto questions
            force_send: Lower the content bar for auto questions
            send_timeout_seconds: Upper bound for one complete send
        """
        self.controller = controller
        self.scheduler = scheduler
        self.generator = generator
        self.formatter = formatter
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter
        self.presenter = presenter
        self.roster_provider = roster_provider
        self.instructor_id = instructor_id
        self.voice_detector = voice_detector
        self.runner = runner or AsyncRunner()
        self.format_preference = format_preference
        self.force_send = force_send
        self.send_timeout_seconds = send_timeout_seconds

        self.last_question_sent: Optional[LastQuestionSent] = None
        self.last_message: Optional[str] = None
        self._control_lock = threading.RLock()
        self._voice_send_in_flight = False
        self._upgrade_tasks: Set[asyncio.Task] = set()
        self._last_sent_key: Optional[str] = None

        self.scheduler.on_interval = self._on_interval
        self.controller.on_recording_paused = self._on_recording_paused
        self.controller.on_transcript = self._on_transcript

        logger.info(f"LectureService initialized for instructor {instructor_id}")

    @property
    def auto_question_enabled(self) -> bool:
        return self.scheduler.enabled

    def _recording_mode(self) -> TranscriptionMode:
        # Auto questions read the interval buffer built from discrete clips
        if self.auto_question_enabled:
            return TranscriptionMode.CHUNKED
        return self.controller.default_mode

    def start_recording(self) -> Dict[str, Any]:
        """Start a recording session.

        Returns:
            Dict with session_id and success status
        """
        with self._control_lock:
            try:
                session = self.controller.start(self._recording_mode())
            except (DeviceError, RecordingError) as e:
                logger.error(f"Error starting recording: {e}")
                self.last_message = str(e)
                self.publish_status()
                return {"success": False, "error": str(e)}

        self.last_message = None
        self.publish_status()
        return {"success": True, "session_id": session.session_id, "mode": session.mode.value}

    def stop_recording(self) -> Dict[str, Any]:
        with self._control_lock:
            session = self.controller.session
            self.controller.stop()
        self.publish_status()
        if session is None:
            return {"success": True, "session_id": None}
        return {
            "success": True,
            "session_id": session.session_id,
            "transcript_length": len(session.transcript_buffer),
        }

    def toggle_auto_question(self) -> Dict[str, Any]:
        """Turn interval questions on or off, switching transcription mode mid-recording."""
        with self._control_lock:
            if self.scheduler.enabled:
                self.scheduler.disable()
                target = self.controller.default_mode
            else:
                self.scheduler.enable()
                target = TranscriptionMode.CHUNKED

            if self.controller.is_recording:
                try:
                    self.controller.switch_mode(target)
                except RecordingError as e:
                    logger.error(f"Mode switch failed: {e}")

        self.publish_status()
        return {"success": True, "auto_question_enabled": self.scheduler.enabled}

    def send_now(self, source: SendSource = SendSource.MANUAL_BUTTON) -> Dict[str, Any]:
        """Extract the instructor's latest question from the transcript and send it."""
        try:
            return self.runner.run(self.send_from_transcript(source), timeout=self.send_timeout_seconds)
        except futures.TimeoutError:
            return self._failure_message(f"Sending the question timed out after {self.send_timeout_seconds:.0f}s")

    async def send_from_transcript(self, source: SendSource) -> Dict[str, Any]:
        session = self.controller.session
        if session is None:
            return {"success": False, "error": "Start recording before sending a question"}

        transcript = session.transcript_buffer.recent_text(MANUAL_CONTEXT_CHARS)
        if len(transcript.strip()) < MIN_EXTRACTION_CHARS:
            return {"success": False,
                    "error": "Not enough transcript yet. Keep talking and try again in a few seconds."}

        try:
            raw = await self.generator.extract_question(transcript)
        except InferenceError as e:
            return self._failure(e)
        if raw is None:
            return self._failure_message("Could not find a clear question in the recent transcript")

        return await self.deliver(raw, raw.suggested_type, transcript, source)

    async def send_interval_question(self, interval_transcript: str) -> Dict[str, Any]:
        minutes = self.scheduler.interval_ms / 60000
        try:
            raw = await self.generator.generate_interval_question(
                interval_transcript, minutes, self.format_preference, self.force_send)
        except InferenceError as e:
            return self._failure(e)
        if raw is None:
            logger.info("Auto-question skipped for this interval")
            return {"success": False, "skipped": True, "error": "No question generated for this interval"}

        return await self.deliver(raw, self.format_preference, interval_transcript, SendSource.AUTO_INTERVAL)

    async def deliver(self, raw: RawQuestion, desired_type: QuestionType, context: str,
                      source: SendSource) -> Dict[str, Any]:
        """Admit, format and dispatch one question.

        With the formatter's fast path a provisional payload is dispatched
        while the full version is generated; unanswered records are upgraded
        in the background once it is ready. Admission is refunded when
        nothing reached any student.
        """
        try:
            admitted = await self.rate_limiter.admit(self.instructor_id, datetime.now(timezone.utc))
        except RateLimitRejection as e:
            return self._failure_message(str(e), reason=e.reason.value,
                                         retry_after_seconds=e.retry_after_seconds)

        upgrade_task = None
        try:
            payload, upgrade = self.formatter.format_fast(raw.question_text, desired_type, context)
            if payload is None:
                payload = await upgrade
            else:
                upgrade_task = asyncio.ensure_future(upgrade)
        except InferenceError as e:
            await self.rate_limiter.refund(admitted)
            return self._failure(e)

        job = DistributionJob.create(payload, self.roster_provider(), instructor_id=self.instructor_id,
                                     source=source)
        try:
            result = await self.dispatcher.dispatch(job)
        except asyncio.CancelledError:
            if upgrade_task is not None:
                upgrade_task.cancel()
            raise
        if result.delivered == 0:
            await self.rate_limiter.refund(admitted)
            if upgrade_task is not None:
                upgrade_task.cancel()
            return self._failure_message(f"Question reached no students ({len(result.failed)} failed)",
                                         idempotency_key=job.idempotency_key)

        if upgrade_task is not None:
            task = asyncio.ensure_future(self._upgrade(job, upgrade_task))
            self._upgrade_tasks.add(task)
            task.add_done_callback(self._upgrade_tasks.discard)

        self._last_sent_key = job.idempotency_key
        self._record_sent(payload, source)
        response = {
            "success": True,
            "idempotency_key": job.idempotency_key,
            "question": payload.to_dict(),
            "delivered": result.delivered,
            "failed": list(result.failed),
            "mismatches": list(result.mismatches),
        }
        if result.partial_failure:
            response["partial_failure"] = result.partial_failure
        return response

    async def _upgrade(self, job: DistributionJob, upgrade: asyncio.Future) -> None:
        try:
            upgraded = await upgrade
        except InferenceError as e:
            logger.warning(f"Multiple-choice upgrade failed, keeping short answer: {e}")
            return
        try:
            count = await self.dispatcher.store.upgrade_unanswered(job.idempotency_key, upgraded.to_dict())
        except Exception as e:
            logger.error(f"Could not upgrade records of {job.idempotency_key}: {e}", exc_info=True)
            return
        logger.info(f"Upgraded {count} unanswered records of {job.idempotency_key} to multiple choice")
        if self._last_sent_key == job.idempotency_key:
            self._show_last_question(upgraded)
            self.publish_status()

    async def wait_for_upgrades(self) -> None:
        """Wait for background record upgrades started by earlier sends."""
        if self._upgrade_tasks:
            await asyncio.gather(*self._upgrade_tasks, return_exceptions=True)

    def _show_last_question(self, payload: QuestionPayload) -> None:
        self.last_question_sent = LastQuestionSent(
            question=question_preview(payload),
            type=payload.question_type.value,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def _record_sent(self, payload: QuestionPayload, source: SendSource) -> None:
        self._show_last_question(payload)
        self.last_message = None
        if source is not SendSource.AUTO_INTERVAL and self.scheduler.enabled:
            self.scheduler.reanchor()
        logger.info(f"Question sent ({source.value}): {self.last_question_sent.question}")
        self.publish_status()

    def _failure(self, error: InferenceError) -> Dict[str, Any]:
        logger.error(f"Question generation failed: {error}")
        return self._failure_message(str(error), category=error.category.value)

    def _failure_message(self, message: str, **extra) -> Dict[str, Any]:
        self.last_message = message
        self.publish_status()
        return {"success": False, "error": message, **extra}

    def _on_interval(self, snapshot: str) -> None:
        # Runs on the scheduler worker; blocking keeps the scheduler's re-entry guard up
        try:
            result = self.runner.run(self.send_interval_question(snapshot), timeout=self.send_timeout_seconds)
        except futures.TimeoutError:
            logger.warning(f"Auto-question timed out after {self.send_timeout_seconds:.0f}s")
            return
        if not result["success"] and not result.get("skipped"):
            logger.warning(f"Auto-question failed: {result['error']}")

    def _on_transcript(self, chunk: TranscriptChunk) -> None:
        if self.voice_detector is None or self.controller.session is None:
            return
        segments = self.controller.session.transcript_buffer.recent_segments(self.voice_detector.recent_chunks)
        if not self.voice_detector.check_transcript(segments):
            return
        if self._voice_send_in_flight:
            logger.info("Voice command ignored: a send is already in progress")
            return

        self._voice_send_in_flight = True
        future = self.runner.submit(self.send_from_transcript(SendSource.VOICE_COMMAND))
        future.add_done_callback(self._voice_send_done)

    def _voice_send_done(self, future) -> None:
        self._voice_send_in_flight = False
        try:
            result = future.result()
        except Exception as e:
            logger.error(f"Voice-triggered send crashed: {e}", exc_info=True)
            return
        if not result["success"]:
            logger.warning(f"Voice-triggered send failed: {result['error']}")

    def _on_recording_paused(self, error: RecordingError) -> None:
        self.last_message = str(error)
        self.publish_status()

    def status(self) -> PresenterStatus:
        session = self.controller.session
        return PresenterStatus(
            is_recording=session is not None,
            seconds_left=self.scheduler.seconds_left() if session else 0,
            auto_question_enabled=self.scheduler.enabled,
            mode=session.mode.value if session else None,
            last_question_sent=self.last_question_sent,
            recording_duration=int(self.controller.recording_duration()),
            transcript_length=len(session.transcript_buffer) if session else 0,
            message=self.last_message,
        )

    def publish_status(self) -> None:
        self.presenter.publish(self.status())

    def run_once(self, timeout: float = 0.1) -> int:
        """One control-loop iteration: transcription events, then the timer."""
        with self._control_lock:
            return self.controller.run_once(timeout)

    def run(self, stop_event: threading.Event, status_interval: float = 1.0) -> None:
        """Control loop until ``stop_event`` is set."""
        logger.info("Lecture control loop started")
        last_status = 0.0
        while not stop_event.is_set():
            self.run_once(timeout=0.1)
            now = time.monotonic()
            if now - last_status >= status_interval:
                self.publish_status()
                last_status = now
        logger.info("Lecture control loop stopped")

    def shutdown(self) -> None:
        """Stop recording and the timer, then let pending record upgrades finish."""
        self.stop_recording()
        self.scheduler.shutdown()
        try:
            self.runner.run(self.wait_for_upgrades(), timeout=self.send_timeout_seconds)
        except futures.TimeoutError:
            logger.warning("Pending record upgrades abandoned at shutdown")

    def close(self) -> None:
        self.shutdown()
        self.runner.close()
