"""Event models for the audio pipeline and the transport channel."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
import time


# float32 samples captured from the microphone
BYTES_PER_SAMPLE = 4


@dataclass
class AudioChunk:
    """Time-sliced chunk of captured audio awaiting encoding."""
    chunk_id: str
    audio_data: bytes  # Interleaved float32 PCM
    timestamp: float  # Unix timestamp when chunk was completed
    sequence_number: int
    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: Optional[int] = None
    final: bool = False  # True if this is the last chunk of a recording

    def __post_init__(self):
        """Calculate chunk duration if not provided."""
        if self.chunk_duration_ms is None:
            bytes_per_second = self.sample_rate * self.channels * BYTES_PER_SAMPLE
            duration_seconds = len(self.audio_data) / bytes_per_second if bytes_per_second else 0
            self.chunk_duration_ms = int(duration_seconds * 1000)


class ConnectionState(Enum):
    """Lifecycle of a transport channel connection."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class Connected:
    """The channel finished its handshake."""
    timestamp: float = field(default_factory=time.time)


@dataclass
class Disconnected:
    """The channel lost or closed its connection."""
    reason: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class ConnectionErrorEvent:
    """A connection attempt failed.

    ``terminal`` is set once the retry policy is exhausted.
    """
    message: str
    attempt: int = 0
    terminal: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class TransportTimeout:
    """A connection attempt timed out."""
    message: str = "Connection timeout"
    attempt: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class GenericError:
    """Unclassified transport error."""
    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class AudioResponse:
    """Server-originated audio to be played back."""
    audio_data: bytes
    timestamp: float = field(default_factory=time.time)


ChannelEvent = Union[
    Connected,
    Disconnected,
    ConnectionErrorEvent,
    TransportTimeout,
    GenericError,
    AudioResponse,
]
