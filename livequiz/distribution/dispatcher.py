"""Fan-out of one question to every student on the roster."""

import random
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..models.distribution import DispatchResult, DistributionBatch, DistributionJob
from ..storage.delivery_store import DeliveryStore

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 15
MAX_BATCH_SIZE = 25


def make_batches(job: DistributionJob, batch_size: int) -> List[DistributionBatch]:
    roster = list(job.roster)
    return [DistributionBatch(job_id=job.idempotency_key, student_ids=roster[i:i + batch_size])
            for i in range(0, len(roster), batch_size)]


class DistributionDispatcher:
    """Writes delivery records for a job in concurrent batches.

    Every write carries the job's idempotency key, so dispatching the same
    job again (or retrying a batch that actually landed) never produces a
    second record for a student.
    """

    def __init__(self, store: DeliveryStore,
                 batch_size: int = MIN_BATCH_SIZE,
                 batch_timeout_seconds: float = 5.0,
                 verify_sample_size: int = 5,
                 rng: Optional[random.Random] = None):
        """Initialize the dispatcher.

        Args:
            store: Delivery sink
            batch_size: Students per batch (15-25)
            batch_timeout_seconds: Deadline for a single batch write
            verify_sample_size: Delivered students re-read after the send
            rng: Source of randomness for the verification sample
        """
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, got {batch_size}")
        self.store = store
        self.batch_size = batch_size
        self.batch_timeout_seconds = batch_timeout_seconds
        self.verify_sample_size = verify_sample_size
        self.rng = rng or random.Random()

    async def dispatch(self, job: DistributionJob) -> DispatchResult:
        """Deliver ``job`` to its roster.

        Partial failure is reported on the result, never raised.
        """
        batches = make_batches(job, self.batch_size)
        logger.info(f"Dispatching {job.idempotency_key} to {len(job.roster)} students "
                    f"in {len(batches)} batches ({job.source.value})")

        delivered_at = datetime.now(timezone.utc)
        await asyncio.gather(*(self._write_batch(job, batch, delivered_at) for batch in batches))

        delivered: List[str] = []
        pending: List[str] = []
        for batch in batches:
            (delivered if batch.succeeded else pending).extend(batch.student_ids)

        retried = False
        if pending:
            retried = True
            logger.warning(f"{len(pending)} students failed on first attempt, retrying once")
            retry = DistributionBatch(job_id=job.idempotency_key, student_ids=pending, attempt=2)
            await self._write_batch(job, retry, delivered_at)
            if retry.succeeded:
                delivered.extend(pending)
                pending = []

        result = DispatchResult(
            idempotency_key=job.idempotency_key,
            delivered=len(delivered),
            failed=pending,
            batches=len(batches) + (1 if retried else 0),
            retried=retried,
        )
        if delivered:
            result.mismatches = await self._verify(job, delivered)

        if result.partial_failure:
            logger.error(f"Partial delivery for {job.idempotency_key}: "
                         f"{result.delivered} delivered, {len(result.failed)} failed")
        else:
            logger.info(f"Delivered {job.idempotency_key} to {result.delivered} students")
        return result

    async def _write_batch(self, job: DistributionJob, batch: DistributionBatch,
                           delivered_at: datetime) -> None:
        try:
            await asyncio.wait_for(
                self.store.insert_batch(job, batch.student_ids, delivered_at),
                timeout=self.batch_timeout_seconds,
            )
            batch.succeeded = True
        except asyncio.TimeoutError:
            batch.error = f"timed out after {self.batch_timeout_seconds}s"
            logger.warning(f"Batch of {len(batch.student_ids)} (attempt {batch.attempt}) {batch.error}")
        except Exception as e:
            batch.error = str(e)
            logger.warning(f"Batch of {len(batch.student_ids)} (attempt {batch.attempt}) failed: {e}")

    async def _verify(self, job: DistributionJob, delivered: Sequence[str]) -> List[str]:
        sample = self.rng.sample(list(delivered), min(self.verify_sample_size, len(delivered)))
        try:
            present = await asyncio.wait_for(self.store.has_records(job.idempotency_key, sample),
                                             timeout=self.batch_timeout_seconds)
        except Exception as e:
            logger.warning(f"Delivery verification for {job.idempotency_key} could not run: {e}")
            return []

        missing = [sid for sid in sample if sid not in present]
        if missing:
            logger.warning(f"Delivery mismatch for {job.idempotency_key}: "
                           f"{len(missing)}/{len(sample)} sampled students have no record: {missing}")
        return missing
