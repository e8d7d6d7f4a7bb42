"""SQLite connection shared by the delivery and rate-limit stores."""

import logging
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

CREATE_DELIVERY_RECORDS = """
CREATE TABLE IF NOT EXISTS delivery_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    idempotency_key TEXT NOT NULL,
    student_id TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    source TEXT NOT NULL,
    delivered_at TEXT NOT NULL,
    expires_at TEXT,
    answered_at TEXT,
    UNIQUE(idempotency_key, student_id)
)
"""

CREATE_RATE_LIMIT_WINDOWS = """
CREATE TABLE IF NOT EXISTS rate_limit_windows (
    instructor_id TEXT PRIMARY KEY,
    last_sent_at TEXT,
    daily_count INTEGER NOT NULL DEFAULT 0,
    window_date TEXT
)
"""

_DDL = [CREATE_DELIVERY_RECORDS, CREATE_RATE_LIMIT_WINDOWS]


class Database:
    """Owns one aiosqlite connection; tables are created on connect."""

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> aiosqlite.Connection:
        if self._conn is None:
            conn = await aiosqlite.connect(self.path)
            await conn.execute("PRAGMA busy_timeout = 5000")
            conn.row_factory = aiosqlite.Row
            for stmt in _DDL:
                await conn.execute(stmt)
            await conn.commit()
            self._conn = conn
            logger.info(f"Database ready: {self.path}")
        return self._conn

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
