"""Per-student delivery records, unique per (idempotency key, student)."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .database import Database
from ..models.distribution import DeliveryRecord, DistributionJob

logger = logging.getLogger(__name__)

DEFAULT_RECORD_TTL = timedelta(minutes=15)


class DeliveryStore(ABC):
    """Where delivered questions land. Writing the same pair twice is a no-op."""

    @abstractmethod
    async def insert_batch(self, job: DistributionJob, student_ids: Iterable[str],
                           delivered_at: datetime) -> int:
        """Insert one record per student; returns how many were new."""

    @abstractmethod
    async def has_records(self, idempotency_key: str, student_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ``student_ids`` that have a record for the key."""

    @abstractmethod
    async def upgrade_unanswered(self, idempotency_key: str, payload: dict) -> int:
        """Replace the payload of records nobody has answered yet."""

    @abstractmethod
    async def mark_answered(self, idempotency_key: str, student_id: str, answered_at: datetime) -> bool:
        ...

    @abstractmethod
    async def get(self, idempotency_key: str, student_id: str) -> Optional[DeliveryRecord]:
        ...

    @abstractmethod
    async def count(self, idempotency_key: str) -> int:
        ...


class InMemoryDeliveryStore(DeliveryStore):
    """Dict-backed store for tests and single-process runs."""

    def __init__(self, record_ttl: timedelta = DEFAULT_RECORD_TTL):
        self.record_ttl = record_ttl
        self.records: Dict[Tuple[str, str], DeliveryRecord] = {}

    async def insert_batch(self, job, student_ids, delivered_at):
        payload = job.payload.to_dict()
        inserted = 0
        for student_id in student_ids:
            key = (job.idempotency_key, student_id)
            if key in self.records:
                continue
            self.records[key] = DeliveryRecord(
                idempotency_key=job.idempotency_key,
                student_id=student_id,
                payload=dict(payload),
                delivered_at=delivered_at,
                source=job.source.value,
                expires_at=delivered_at + self.record_ttl,
            )
            inserted += 1
        return inserted

    async def has_records(self, idempotency_key, student_ids):
        return {sid for sid in student_ids if (idempotency_key, sid) in self.records}

    async def upgrade_unanswered(self, idempotency_key, payload):
        upgraded = 0
        for (key, _), record in self.records.items():
            if key == idempotency_key and record.answered_at is None:
                record.payload = dict(payload)
                upgraded += 1
        return upgraded

    async def mark_answered(self, idempotency_key, student_id, answered_at):
        record = self.records.get((idempotency_key, student_id))
        if record is None or record.answered_at is not None:
            return False
        record.answered_at = answered_at
        return True

    async def get(self, idempotency_key, student_id):
        return self.records.get((idempotency_key, student_id))

    async def count(self, idempotency_key):
        return sum(1 for key, _ in self.records if key == idempotency_key)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteDeliveryStore(DeliveryStore):
    """aiosqlite-backed store; uniqueness comes from the table constraint."""

    def __init__(self, database: Database, record_ttl: timedelta = DEFAULT_RECORD_TTL):
        self.database = database
        self.record_ttl = record_ttl

    async def insert_batch(self, job, student_ids, delivered_at):
        payload_json = json.dumps(job.payload.to_dict())
        expires_at = _iso(delivered_at + self.record_ttl)
        rows = [(job.idempotency_key, sid, payload_json, job.source.value, _iso(delivered_at), expires_at)
                for sid in student_ids]
        if not rows:
            return 0

        db = self.database.connection
        cursor = await db.executemany(
            "INSERT OR IGNORE INTO delivery_records "
            "(idempotency_key, student_id, payload_json, source, delivered_at, expires_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            rows,
        )
        await db.commit()
        inserted = cursor.rowcount
        logger.debug(f"Inserted {inserted}/{len(rows)} delivery records for {job.idempotency_key}")
        return inserted

    async def has_records(self, idempotency_key, student_ids):
        student_ids = list(student_ids)
        if not student_ids:
            return set()
        placeholders = ",".join("?" for _ in student_ids)
        db = self.database.connection
        async with db.execute(
            f"SELECT student_id FROM delivery_records "
            f"WHERE idempotency_key = ? AND student_id IN ({placeholders})",
            [idempotency_key, *student_ids],
        ) as cursor:
            rows = await cursor.fetchall()
        return {row["student_id"] for row in rows}

    async def upgrade_unanswered(self, idempotency_key, payload):
        db = self.database.connection
        cursor = await db.execute(
            "UPDATE delivery_records SET payload_json = ? "
            "WHERE idempotency_key = ? AND answered_at IS NULL",
            (json.dumps(payload), idempotency_key),
        )
        await db.commit()
        return cursor.rowcount

    async def mark_answered(self, idempotency_key, student_id, answered_at):
        db = self.database.connection
        cursor = await db.execute(
            "UPDATE delivery_records SET answered_at = ? "
            "WHERE idempotency_key = ? AND student_id = ? AND answered_at IS NULL",
            (_iso(answered_at), idempotency_key, student_id),
        )
        await db.commit()
        return cursor.rowcount == 1

    async def get(self, idempotency_key, student_id):
        db = self.database.connection
        async with db.execute(
            "SELECT * FROM delivery_records WHERE idempotency_key = ? AND student_id = ?",
            (idempotency_key, student_id),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return DeliveryRecord(
            idempotency_key=row["idempotency_key"],
            student_id=row["student_id"],
            payload=json.loads(row["payload_json"]),
            delivered_at=_parse(row["delivered_at"]),
            source=row["source"],
            expires_at=_parse(row["expires_at"]),
            answered_at=_parse(row["answered_at"]),
        )

    async def count(self, idempotency_key):
        db = self.database.connection
        async with db.execute(
            "SELECT COUNT(*) AS n FROM delivery_records WHERE idempotency_key = ?",
            (idempotency_key,),
        ) as cursor:
            row = await cursor.fetchone()
        return row["n"]
