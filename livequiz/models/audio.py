"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    peak_level: float = 0.0


@dataclass
class AudioFrame:
    """A block of raw PCM audio read from the capture device."""
    data: bytes
    timestamp: float  # Unix timestamp when the frame was captured
    sequence_number: int
    sample_rate: int = 16000
    channels: int = 1
    duration_ms: Optional[int] = None

    def __post_init__(self):
        """Calculate frame duration if not provided."""
        if self.duration_ms is None and self.data:
            # 16-bit audio (2 bytes per sample)
            bytes_per_second = self.sample_rate * self.channels * 2
            self.duration_ms = int(len(self.data) / bytes_per_second * 1000)
