"""Audio publisher module for pub/sub event publishing."""

import logging
from pubsub import pub
from ..models.events import AudioChunk

logger = logging.getLogger(__name__)


class AudioPublisher:
    """Publishes captured audio chunks using pubsub.pub."""

    def __init__(self, topic: str = "voicechat.audio"):
        """Initialize audio publisher.

        Args:
            topic: Pub/sub topic name for audio chunks
        """
        self.topic = topic
        logger.info(f"AudioPublisher initialized with topic: {topic}")

    def publish_audio_chunk(self, chunk: AudioChunk) -> None:
        """Publish an audio chunk to the pub/sub topic.

        Args:
            chunk: AudioChunk to publish
        """
        pub.sendMessage(self.topic, event=chunk)
        logger.debug(f"Published audio chunk: {chunk.chunk_id} (final={chunk.final})")
