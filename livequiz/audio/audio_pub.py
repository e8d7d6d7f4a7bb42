"""Audio publisher module for pub/sub frame distribution."""

import logging
from pubsub import pub
from ..models.audio import AudioFrame

logger = logging.getLogger(__name__)

AUDIO_FRAME_TOPIC = "audio.frame"


class AudioPublisher:
    """Publishes captured audio frames using pubsub.pub."""

    def __init__(self, topic: str = AUDIO_FRAME_TOPIC):
        """Initialize audio publisher.

        Args:
            topic: Pub/sub topic name for audio frames
        """
        self.topic = topic
        logger.info(f"AudioPublisher initialized with topic: {topic}")

    def publish_audio_frame(self, frame: AudioFrame) -> None:
        """Publish an audio frame to the pub/sub topic."""
        pub.sendMessage(self.topic, frame=frame)
