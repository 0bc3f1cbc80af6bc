"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    channels: int
    chunk_interval_ms: int
    total_chunks: int
    total_frames: int


@dataclass
class StreamerStats:
    """Outbound streaming statistics."""
    chunks_received: int
    frames_sent: int
    frames_failed: int
    pending_frames: int
    bytes_sent: int


@dataclass
class DecodedAudio:
    """Float PCM audio held in memory.

    ``samples`` has shape ``(frames, channels)`` with values nominally in [-1, 1].
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        self.samples = samples

    @property
    def num_channels(self) -> int:
        return self.samples.shape[1]

    @property
    def num_frames(self) -> int:
        return self.samples.shape[0]

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.num_frames / self.sample_rate

    def channel_data(self, channel: int) -> np.ndarray:
        """Return the samples of a single channel."""
        return self.samples[:, channel]
