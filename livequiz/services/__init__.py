"""Services that run a live lecture."""

from .async_runner import AsyncRunner
from .interval_scheduler import IntervalScheduler
from .recording_controller import RecordingController
from .voice_commands import VoiceCommandDetector
from .lecture_service import LectureService

__all__ = [
    "AsyncRunner",
    "IntervalScheduler",
    "RecordingController",
    "VoiceCommandDetector",
    "LectureService",
]
