"""Data models for question distribution and rate limiting."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .questions import QuestionPayload


class SendSource(Enum):
    MANUAL_BUTTON = "manual_button"
    VOICE_COMMAND = "voice_command"
    AUTO_INTERVAL = "auto_interval"


@dataclass(frozen=True)
class DistributionJob:
    """One logical "send": every delivery attempt shares the idempotency key."""
    idempotency_key: str
    payload: QuestionPayload
    roster: Tuple[str, ...]
    created_at: datetime
    instructor_id: str = ""
    source: SendSource = SendSource.MANUAL_BUTTON

    @classmethod
    def create(cls, payload: QuestionPayload, roster: Sequence[str],
               instructor_id: str = "", source: SendSource = SendSource.MANUAL_BUTTON,
               idempotency_key: Optional[str] = None) -> "DistributionJob":
        # dict.fromkeys keeps first-seen order while dropping duplicate students
        unique_roster = tuple(dict.fromkeys(roster))
        return cls(
            idempotency_key=idempotency_key or uuid.uuid4().hex,
            payload=payload,
            roster=unique_roster,
            created_at=datetime.now(timezone.utc),
            instructor_id=instructor_id,
            source=source,
        )


@dataclass
class DistributionBatch:
    job_id: str
    student_ids: List[str]
    attempt: int = 1
    succeeded: bool = False
    error: Optional[str] = None


@dataclass
class DeliveryRecord:
    idempotency_key: str
    student_id: str
    payload: dict
    delivered_at: datetime
    source: str = SendSource.MANUAL_BUTTON.value
    expires_at: Optional[datetime] = None
    answered_at: Optional[datetime] = None


@dataclass(frozen=True)
class PartialDeliveryFailure:
    """Some students were still undelivered after the retry pass."""
    delivered: int
    failed_count: int
    stage: str = "retry"


@dataclass
class DispatchResult:
    idempotency_key: str
    delivered: int
    failed: List[str] = field(default_factory=list)
    batches: int = 0
    retried: bool = False
    mismatches: List[str] = field(default_factory=list)

    @property
    def partial_failure(self) -> Optional[PartialDeliveryFailure]:
        if not self.failed:
            return None
        return PartialDeliveryFailure(delivered=self.delivered, failed_count=len(self.failed))


@dataclass
class RateLimitWindow:
    instructor_id: str
    last_sent_at: Optional[datetime] = None
    daily_count: int = 0
    window_date: Optional[date] = None
