"""Presenter view status models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LastQuestionSent:
    question: str
    type: str
    timestamp: str


@dataclass(frozen=True)
class PresenterStatus:
    """Advisory status pushed to the presenter's own view."""
    is_recording: bool = False
    seconds_left: int = 0
    auto_question_enabled: bool = False
    mode: Optional[str] = None
    last_question_sent: Optional[LastQuestionSent] = None
    recording_duration: int = 0
    transcript_length: int = 0
    message: Optional[str] = None
