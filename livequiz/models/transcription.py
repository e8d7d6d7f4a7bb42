"""Transcription-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TranscriptionMode(Enum):
    """Which transcription strategy feeds the recording session."""
    CHUNKED = "chunked"
    STREAMING = "streaming"


@dataclass(frozen=True)
class TranscriptChunk:
    """A piece of transcript produced by either strategy.

    Frozen: once ingested the session owns the text, nobody mutates the chunk.
    """
    text: str
    captured_at: float
    is_final: bool = True


@dataclass
class TranscriptionResult:
    """Result of a single request/response speech-to-text call."""
    text: str
    confidence: float
    processing_time: float
    timestamp: datetime
    service: str
    language: str = "en-US"
    chunk_id: Optional[str] = None
    is_final: bool = True
