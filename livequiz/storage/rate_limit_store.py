"""Persistence for per-instructor rate-limit windows."""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict

from .database import Database
from ..models.distribution import RateLimitWindow

logger = logging.getLogger(__name__)


class RateLimitStore(ABC):
    @abstractmethod
    async def load(self, instructor_id: str) -> RateLimitWindow:
        """Window for the instructor (a fresh one if none was saved)."""

    @abstractmethod
    async def save(self, window: RateLimitWindow) -> None:
        ...


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self):
        self.windows: Dict[str, RateLimitWindow] = {}

    async def load(self, instructor_id):
        window = self.windows.get(instructor_id)
        if window is None:
            return RateLimitWindow(instructor_id=instructor_id)
        return RateLimitWindow(**vars(window))

    async def save(self, window):
        self.windows[window.instructor_id] = RateLimitWindow(**vars(window))


class SQLiteRateLimitStore(RateLimitStore):
    """Keeps windows in the delivery database so limits survive restarts."""

    def __init__(self, database: Database):
        self.database = database

    async def load(self, instructor_id):
        db = self.database.connection
        async with db.execute(
            "SELECT * FROM rate_limit_windows WHERE instructor_id = ?", (instructor_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return RateLimitWindow(instructor_id=instructor_id)
        return RateLimitWindow(
            instructor_id=instructor_id,
            last_sent_at=datetime.fromisoformat(row["last_sent_at"]) if row["last_sent_at"] else None,
            daily_count=row["daily_count"],
            window_date=date.fromisoformat(row["window_date"]) if row["window_date"] else None,
        )

    async def save(self, window):
        db = self.database.connection
        await db.execute(
            "INSERT INTO rate_limit_windows (instructor_id, last_sent_at, daily_count, window_date) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(instructor_id) DO UPDATE SET "
            "last_sent_at = excluded.last_sent_at, daily_count = excluded.daily_count, "
            "window_date = excluded.window_date",
            (
                window.instructor_id,
                window.last_sent_at.isoformat() if window.last_sent_at else None,
                window.daily_count,
                window.window_date.isoformat() if window.window_date else None,
            ),
        )
        await db.commit()
