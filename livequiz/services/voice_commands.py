"""Spoken "send question" trigger detection over the live transcript."""

import re
import time
import logging
from typing import Callable, List, Optional, Sequence

from rapidfuzz import fuzz

logger = logging.getLogger(__name__)

SEND_QUESTION_PATTERNS = [
    re.compile(r"send\s+(the\s+|a\s+|this\s+)?question(\s+now)?", re.IGNORECASE),
    re.compile(r"question\s+now", re.IGNORECASE),
    re.compile(r"send\s+now", re.IGNORECASE),
]

# Common misrecognitions still contain one of these phrases
FUZZY_SEND_QUESTION_PHRASES = [
    "send question",
    "send the question",
    "send a question",
    "question now",
    "send now",
]

FUZZY_THRESHOLD = 0.85
MIN_COMMAND_LENGTH = 5


def similarity(first: str, second: str) -> float:
    """Case-insensitive normalized similarity in [0, 1]."""
    return fuzz.ratio(first.lower(), second.lower()) / 100.0


class VoiceCommandDetector:
    """Detects a spoken send command in the most recent transcript chunks.

    A detection arms a cooldown; the same text is never reported twice in a row.
    """

    def __init__(self,
                 cooldown_seconds: float = 5.0,
                 recent_chunks: int = 3,
                 clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self.recent_chunks = recent_chunks
        self.clock = clock
        self._last_command_at: Optional[float] = None
        self._last_text = ""

    def detect(self, text: str) -> bool:
        if not text or len(text) < MIN_COMMAND_LENGTH:
            return False

        normalized = text.lower().strip()
        if normalized == self._last_text:
            return False

        now = self.clock()
        if self._last_command_at is not None and now - self._last_command_at < self.cooldown_seconds:
            return False

        if not self._matches(normalized):
            return False

        self._last_command_at = now
        self._last_text = normalized
        logger.info(f"Voice command detected: '{normalized[-60:]}'")
        return True

    def _matches(self, normalized: str) -> bool:
        if any(pattern.search(normalized) for pattern in SEND_QUESTION_PATTERNS):
            return True
        return any(phrase in normalized or similarity(normalized, phrase) > FUZZY_THRESHOLD
                   for phrase in FUZZY_SEND_QUESTION_PHRASES)

    def check_transcript(self, segments: Sequence[str]) -> bool:
        """Look for a command in the last few transcript segments."""
        if not segments:
            return False
        recent: List[str] = list(segments[-self.recent_chunks:])
        return self.detect(" ".join(recent))

    def reset(self) -> None:
        self._last_command_at = None
        self._last_text = ""
