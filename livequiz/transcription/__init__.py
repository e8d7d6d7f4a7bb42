"""Transcription strategies and speech-to-text backends."""

from .base import (
    AbstractTranscriptionBackend,
    AbstractStreamingBackend,
    StreamingUpdate,
    TranscriptionStrategy,
    NO_SPEECH_DETECTED,
)
from .chunked import ChunkedTranscriber, ChunkedState, encode_wav, backoff_delay
from .streaming import StreamingTranscriber, StreamingState

__all__ = [
    "AbstractTranscriptionBackend",
    "AbstractStreamingBackend",
    "StreamingUpdate",
    "TranscriptionStrategy",
    "NO_SPEECH_DETECTED",
    "ChunkedTranscriber",
    "ChunkedState",
    "encode_wav",
    "backoff_delay",
    "StreamingTranscriber",
    "StreamingState",
]
