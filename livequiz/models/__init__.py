"""Data models for the LiveQuiz application."""

from .audio import AudioStats, AudioFrame
from .transcription import TranscriptChunk, TranscriptionMode, TranscriptionResult
from .session import RecordingSession, TranscriptBuffer
from .questions import (
    QuestionType,
    MultipleChoice,
    ShortAnswer,
    Coding,
    CodingTestCase,
    QuestionPayload,
    RawQuestion,
)
from .distribution import (
    SendSource,
    DistributionJob,
    DistributionBatch,
    DeliveryRecord,
    DispatchResult,
    PartialDeliveryFailure,
    RateLimitWindow,
)
from .presenter import PresenterStatus, LastQuestionSent

__all__ = [
    "AudioStats",
    "AudioFrame",
    "TranscriptChunk",
    "TranscriptionMode",
    "TranscriptionResult",
    "RecordingSession",
    "TranscriptBuffer",
    # Questions
    "QuestionType",
    "MultipleChoice",
    "ShortAnswer",
    "Coding",
    "CodingTestCase",
    "QuestionPayload",
    "RawQuestion",
    # Distribution
    "SendSource",
    "DistributionJob",
    "DistributionBatch",
    "DeliveryRecord",
    "DispatchResult",
    "PartialDeliveryFailure",
    "RateLimitWindow",
    "PresenterStatus",
    "LastQuestionSent",
]
