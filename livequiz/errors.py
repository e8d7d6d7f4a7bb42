"""Exception types shared across the LiveQuiz pipeline."""

from enum import Enum
from typing import Optional


class LiveQuizError(Exception):
    """Base class for all LiveQuiz errors."""


class ConfigurationError(LiveQuizError):
    """Raised when required configuration is missing or invalid."""


class DeviceError(LiveQuizError):
    """The audio device could not be acquired.

    Never retried automatically: the user has to grant microphone access
    (or plug a device in) and start recording again.
    """


class TranscriptionError(LiveQuizError):
    """A speech-to-text call failed (timeout, service unavailable, bad response)."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class RecordingError(LiveQuizError):
    """Invalid recording lifecycle transition (e.g. start while recording)."""


class RecordingPausedError(RecordingError):
    """Chunked transcription tripped its circuit breaker and recording stopped."""

    def __init__(self, consecutive_failures: int):
        super().__init__(
            f"Recording paused after {consecutive_failures} consecutive transcription failures. "
            f"Please restart recording."
        )
        self.consecutive_failures = consecutive_failures


class InferenceErrorCategory(Enum):
    """User-facing categories for content-generation failures."""
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    UPSTREAM_ERROR = "upstream_error"


class InferenceError(LiveQuizError):
    """The content-generation collaborator failed or returned unusable content."""

    USER_MESSAGES = {
        InferenceErrorCategory.RATE_LIMITED: "AI service rate limit exceeded. Please try again in a moment.",
        InferenceErrorCategory.QUOTA_EXHAUSTED: "AI service quota exceeded.",
        InferenceErrorCategory.TIMEOUT: "AI request timed out.",
        InferenceErrorCategory.MALFORMED_RESPONSE: "AI returned a response that could not be turned into a question.",
        InferenceErrorCategory.UPSTREAM_ERROR: "Failed to generate question from AI.",
    }

    def __init__(self, category: InferenceErrorCategory, detail: str = "",
                 status_code: Optional[int] = None):
        message = self.USER_MESSAGES[category]
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.category = category
        self.detail = detail
        self.status_code = status_code


class RateLimitReason(Enum):
    COOLDOWN = "cooldown"
    DAILY_QUOTA = "daily_quota"


class RateLimitRejection(LiveQuizError):
    """A send was not admitted by the rate limiter."""

    def __init__(self, reason: RateLimitReason, retry_after_seconds: int):
        if reason is RateLimitReason.COOLDOWN:
            message = f"Please wait {retry_after_seconds}s before sending another question"
        else:
            message = f"Daily question limit reached; resets in {retry_after_seconds}s (midnight UTC)"
        super().__init__(message)
        self.reason = reason
        self.retry_after_seconds = retry_after_seconds
