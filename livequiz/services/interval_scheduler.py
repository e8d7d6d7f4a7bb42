"""Auto-question countdown anchored to the last fire."""

import math
import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Callable, Optional

from ..models.session import TranscriptBuffer

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class IntervalScheduler:
    """Fires ``on_interval`` every ``interval_ms`` with the transcript gathered since the last fire.

    The countdown is derived from a single anchor timestamp instead of a
    decrementing counter, so it cannot drift and never shows a negative value.
    The anchor moves only on a fire, on recording (re)start, when auto mode is
    turned on, and on a manual send while auto mode is on.
    """

    def __init__(self,
                 on_interval: Callable[[str], None],
                 interval_minutes: float = 15,
                 clock: Callable[[], float] = monotonic_ms,
                 run_in_background: bool = True):
        """Initialize the scheduler.

        Args:
            on_interval: Called with the interval transcript snapshot when the timer fires
            interval_minutes: Interval length
            clock: Monotonic clock in milliseconds
            run_in_background: Run ``on_interval`` on a single worker thread instead of inline
        """
        self.on_interval = on_interval
        self.interval_ms = interval_minutes * 60 * 1000
        self.clock = clock
        self.enabled = False
        self.anchor_timestamp: Optional[float] = None
        self.is_generating = False
        self.fires = 0

        self.interval_buffer: Optional[TranscriptBuffer] = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="auto-question") \
            if run_in_background else None
        self._last_future: Optional[Future] = None

    def attach(self, interval_buffer: Optional[TranscriptBuffer]) -> None:
        """Point the scheduler at the active session's interval buffer (None detaches)."""
        self.interval_buffer = interval_buffer

    def enable(self, now: Optional[float] = None) -> None:
        self.enabled = True
        self.reanchor(now)
        logger.info(f"Auto-question enabled (interval={self.interval_ms / 60000:.1f} min)")

    def disable(self) -> None:
        self.enabled = False
        logger.info("Auto-question disabled")

    def reanchor(self, now: Optional[float] = None) -> None:
        self.anchor_timestamp = self.clock() if now is None else now
        logger.debug(f"Auto-question timer re-anchored at {self.anchor_timestamp:.0f}ms")

    def seconds_left(self, now: Optional[float] = None) -> int:
        if not self.enabled or self.anchor_timestamp is None:
            return 0
        now = self.clock() if now is None else now
        elapsed = now - self.anchor_timestamp
        return max(0, math.ceil((self.interval_ms - elapsed) / 1000))

    def tick(self, now: Optional[float] = None) -> int:
        """Advance the timer; fire if the interval elapsed.

        Returns:
            Seconds left until the next fire (0 when disabled)
        """
        now = self.clock() if now is None else now
        if not self.enabled or self.anchor_timestamp is None:
            return 0

        if now - self.anchor_timestamp >= self.interval_ms and not self.is_generating:
            self._fire(now)

        return self.seconds_left(now)

    def _fire(self, now: float) -> None:
        with self._lock:
            if self.is_generating:
                return
            self.is_generating = True
            if self.interval_buffer is not None:
                snapshot = self.interval_buffer.snapshot()
                self.interval_buffer.clear()
            else:
                snapshot = ""
            self.anchor_timestamp = now
            self.fires += 1

        logger.info(f"Auto-question interval elapsed (fire #{self.fires}, {len(snapshot)} chars)")
        if self._executor is not None:
            self._last_future = self._executor.submit(self._run_callback, snapshot)
        else:
            self._run_callback(snapshot)

    def _run_callback(self, snapshot: str) -> None:
        try:
            self.on_interval(snapshot)
        except Exception as e:
            logger.error(f"Auto-question generation failed: {e}", exc_info=True)
        finally:
            with self._lock:
                self.is_generating = False

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Block until the last background fire has finished."""
        if self._last_future is not None:
            self._last_future.result(timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
