"""Typed events emitted by transcription strategies.

Strategies run their I/O on their own threads and never touch the recording
session directly; they put these events on the controller's queue and the
controller applies them on its single loop.
"""

from dataclasses import dataclass
from typing import Optional

from .transcription import TranscriptChunk, TranscriptionMode


@dataclass(frozen=True)
class TranscriptionEvent:
    """Common envelope: which session and which strategy instance produced it."""
    session_id: str
    generation: int
    mode: TranscriptionMode


@dataclass(frozen=True)
class TranscriptEvent(TranscriptionEvent):
    chunk: Optional[TranscriptChunk] = None


@dataclass(frozen=True)
class StrategyReady(TranscriptionEvent):
    pass


@dataclass(frozen=True)
class StrategyError(TranscriptionEvent):
    error: str = ""


@dataclass(frozen=True)
class TranscriptionFailed(TranscriptionEvent):
    consecutive_failures: int = 0
    backoff_seconds: float = 0.0
    error: str = ""


@dataclass(frozen=True)
class CircuitOpen(TranscriptionEvent):
    consecutive_failures: int = 0


@dataclass(frozen=True)
class StrategyClosed(TranscriptionEvent):
    pass
