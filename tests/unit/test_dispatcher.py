"""Unit tests for DistributionDispatcher."""

import asyncio
import random
import pytest

from livequiz.distribution.dispatcher import DistributionDispatcher, make_batches
from livequiz.models.distribution import DistributionJob, SendSource
from livequiz.models.questions import ShortAnswer
from livequiz.storage.delivery_store import InMemoryDeliveryStore

PAYLOAD = ShortAnswer(question="Why does ice float on water?")


def roster(n):
    return [f"student-{i:03d}" for i in range(n)]


class FlakyStore(InMemoryDeliveryStore):
    """Fails the first ``failures`` inserts, then behaves."""

    def __init__(self, failures=1, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.attempts = []

    async def insert_batch(self, job, student_ids, delivered_at):
        student_ids = list(student_ids)
        self.attempts.append(student_ids)
        if self.failures:
            self.failures -= 1
            raise ConnectionError("write rejected")
        return await super().insert_batch(job, student_ids, delivered_at)


class PoisonedStore(InMemoryDeliveryStore):
    """Rejects every batch containing one particular student."""

    def __init__(self, poisoned):
        super().__init__()
        self.poisoned = poisoned
        self.attempts = []

    async def insert_batch(self, job, student_ids, delivered_at):
        student_ids = list(student_ids)
        self.attempts.append(student_ids)
        if self.poisoned in student_ids:
            raise ConnectionError("write rejected")
        return await super().insert_batch(job, student_ids, delivered_at)


class SlowFirstStore(InMemoryDeliveryStore):

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def insert_batch(self, job, student_ids, delivered_at):
        self.calls += 1
        if self.calls == 1:
            await asyncio.sleep(0.5)
        return await super().insert_batch(job, student_ids, delivered_at)


class ForgetfulStore(InMemoryDeliveryStore):

    async def has_records(self, idempotency_key, student_ids):
        return set()


def dispatch(dispatcher, job):
    return asyncio.run(dispatcher.dispatch(job))


@pytest.mark.unit
class TestDistributionDispatcher:

    def test_full_roster_in_batches(self):
        store = InMemoryDeliveryStore()
        dispatcher = DistributionDispatcher(store, batch_size=25)
        job = DistributionJob.create(PAYLOAD, roster(42), source=SendSource.MANUAL_BUTTON)

        result = dispatch(dispatcher, job)

        assert result.delivered == 42
        assert result.failed == []
        assert result.batches == 2
        assert result.retried is False
        assert result.partial_failure is None
        assert asyncio.run(store.count(job.idempotency_key)) == 42

    def test_failed_batch_is_retried_once(self):
        store = FlakyStore(failures=1)
        dispatcher = DistributionDispatcher(store)
        job = DistributionJob.create(PAYLOAD, roster(10))

        result = dispatch(dispatcher, job)

        assert result.delivered == 10
        assert result.failed == []
        assert result.retried is True
        assert result.batches == 2
        assert len(store.attempts) == 2

    def test_persistent_failure_is_reported_not_raised(self):
        store = PoisonedStore("student-000")
        dispatcher = DistributionDispatcher(store, batch_size=15)
        job = DistributionJob.create(PAYLOAD, roster(40))

        result = dispatch(dispatcher, job)

        assert len(store.attempts) == 4
        assert result.delivered == 25
        assert len(result.failed) == 15
        assert result.partial_failure.failed_count == 15
        assert result.partial_failure.delivered == 25
        assert result.delivered + len(result.failed) == len(job.roster)

    def test_redispatch_creates_no_duplicates(self):
        store = InMemoryDeliveryStore()
        dispatcher = DistributionDispatcher(store)
        job = DistributionJob.create(PAYLOAD, roster(20))

        dispatch(dispatcher, job)
        result = dispatch(dispatcher, job)

        assert result.delivered == 20
        assert asyncio.run(store.count(job.idempotency_key)) == 20

    def test_duplicate_students_delivered_once(self):
        store = InMemoryDeliveryStore()
        dispatcher = DistributionDispatcher(store)
        job = DistributionJob.create(PAYLOAD, ["amy", "ben", "amy", "cal"])

        result = dispatch(dispatcher, job)

        assert job.roster == ("amy", "ben", "cal")
        assert result.delivered == 3

    def test_batch_timeout_counts_as_failure(self):
        store = SlowFirstStore()
        dispatcher = DistributionDispatcher(store, batch_timeout_seconds=0.05)
        job = DistributionJob.create(PAYLOAD, roster(5))

        result = dispatch(dispatcher, job)

        assert result.retried is True
        assert result.delivered == 5

    def test_verification_reports_missing_records(self):
        dispatcher = DistributionDispatcher(ForgetfulStore(), verify_sample_size=3, rng=random.Random(7))
        job = DistributionJob.create(PAYLOAD, roster(20))

        result = dispatch(dispatcher, job)

        assert result.delivered == 20
        assert len(result.mismatches) == 3
        assert set(result.mismatches) <= set(job.roster)

    def test_empty_roster(self):
        dispatcher = DistributionDispatcher(InMemoryDeliveryStore())
        job = DistributionJob.create(PAYLOAD, [])

        result = dispatch(dispatcher, job)

        assert result.delivered == 0
        assert result.batches == 0
        assert result.mismatches == []

    @pytest.mark.parametrize("batch_size", [14, 26])
    def test_batch_size_bounds(self, batch_size):
        with pytest.raises(ValueError):
            DistributionDispatcher(InMemoryDeliveryStore(), batch_size=batch_size)


@pytest.mark.unit
def test_make_batches():
    job = DistributionJob.create(PAYLOAD, roster(42))

    batches = make_batches(job, 25)

    assert [len(b.student_ids) for b in batches] == [25, 17]
    assert all(b.job_id == job.idempotency_key and b.attempt == 1 for b in batches)
