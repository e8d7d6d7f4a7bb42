"""Per-instructor send admission: cooldown between sends plus a daily quota."""

import math
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import RateLimitReason, RateLimitRejection
from ..models.distribution import RateLimitWindow
from ..storage.rate_limit_store import InMemoryRateLimitStore, RateLimitStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admitted:
    """Proof of admission; pass it to refund() if the send reached nobody."""
    instructor_id: str
    admitted_at: datetime
    previous_last_sent_at: Optional[datetime]
    daily_count: int


def seconds_until_utc_midnight(now: datetime) -> int:
    now = now.astimezone(timezone.utc)
    midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
    return math.ceil((midnight - now).total_seconds())


def _utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class RateLimiter:
    """Admits or rejects sends for an instructor.

    Check and increment happen under one lock so two concurrent sends can
    never both pass a window that has room for only one.
    """

    def __init__(self, store: Optional[RateLimitStore] = None,
                 cooldown_seconds: float = 60, daily_limit: int = 200):
        self.store = store or InMemoryRateLimitStore()
        self.cooldown_seconds = cooldown_seconds
        self.daily_limit = daily_limit
        self._lock = asyncio.Lock()

    async def admit(self, instructor_id: str, now: Optional[datetime] = None) -> Admitted:
        """Admit one send at ``now``.

        Raises:
            RateLimitRejection: Cooldown still running or daily quota used up
        """
        now = _utc(now or datetime.now(timezone.utc))
        async with self._lock:
            window = await self.store.load(instructor_id)
            today = now.date()
            count_today = window.daily_count if window.window_date == today else 0

            if window.last_sent_at is not None:
                elapsed = (now - window.last_sent_at).total_seconds()
                if elapsed < self.cooldown_seconds:
                    retry_after = math.ceil(self.cooldown_seconds - elapsed)
                    logger.info(f"Rate limit: {retry_after}s until next question for {instructor_id}")
                    raise RateLimitRejection(RateLimitReason.COOLDOWN, retry_after)

            if count_today >= self.daily_limit:
                retry_after = seconds_until_utc_midnight(now)
                logger.warning(f"Daily question limit ({self.daily_limit}) reached for {instructor_id}")
                raise RateLimitRejection(RateLimitReason.DAILY_QUOTA, retry_after)

            admitted = Admitted(
                instructor_id=instructor_id,
                admitted_at=now,
                previous_last_sent_at=window.last_sent_at,
                daily_count=count_today + 1,
            )
            await self.store.save(RateLimitWindow(
                instructor_id=instructor_id,
                last_sent_at=now,
                daily_count=count_today + 1,
                window_date=today,
            ))
        logger.debug(f"Admitted send for {instructor_id} ({admitted.daily_count}/{self.daily_limit} today)")
        return admitted

    async def refund(self, admitted: Admitted) -> None:
        """Undo an admission whose job delivered to nobody.

        Ignored if another send has been admitted since.
        """
        async with self._lock:
            window = await self.store.load(admitted.instructor_id)
            if window.last_sent_at != admitted.admitted_at:
                logger.debug("Refund skipped: window moved on since admission")
                return
            window.last_sent_at = admitted.previous_last_sent_at
            if window.window_date == admitted.admitted_at.date() and window.daily_count > 0:
                window.daily_count -= 1
            await self.store.save(window)
        logger.info(f"Refunded rate-limit admission for {admitted.instructor_id}")

    async def window(self, instructor_id: str) -> RateLimitWindow:
        return await self.store.load(instructor_id)
