"""Recording session state."""

import uuid
from dataclasses import dataclass, field
from typing import List

from .transcription import TranscriptChunk, TranscriptionMode


@dataclass
class TranscriptBuffer:
    """Ordered transcript segments with a few text views."""
    segments: List[str] = field(default_factory=list)

    def append(self, text: str) -> None:
        self.segments.append(text)

    def clear(self) -> None:
        self.segments.clear()

    def text(self) -> str:
        return " ".join(self.segments)

    def recent_text(self, max_chars: int) -> str:
        """Tail of the joined text, at most ``max_chars`` characters."""
        return self.text()[-max_chars:]

    def recent_segments(self, count: int) -> List[str]:
        return list(self.segments[-count:])

    def snapshot(self) -> str:
        return self.text()

    def __len__(self) -> int:
        return len(self.text())


@dataclass
class RecordingSession:
    """State of one recording, owned by the RecordingController.

    ``transcript_buffer`` accumulates for the whole session. ``interval_buffer``
    holds only the text since the last auto-question fire and is drained by the
    IntervalScheduler.
    """
    session_id: str
    started_at: float
    mode: TranscriptionMode
    consecutive_failures: int = 0
    transcript_buffer: TranscriptBuffer = field(default_factory=TranscriptBuffer)
    interval_buffer: TranscriptBuffer = field(default_factory=TranscriptBuffer)
    chunks_ingested: int = 0

    @classmethod
    def create(cls, started_at: float, mode: TranscriptionMode) -> "RecordingSession":
        return cls(session_id=uuid.uuid4().hex, started_at=started_at, mode=mode)

    def ingest(self, chunk: TranscriptChunk) -> None:
        text = chunk.text.strip()
        if not text:
            return
        self.transcript_buffer.append(text)
        self.interval_buffer.append(text)
        self.chunks_ingested += 1
