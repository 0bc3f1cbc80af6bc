"""Data models for the voice chat client."""

from .audio import AudioStats, StreamerStats, DecodedAudio
from .events import (
    AudioChunk,
    ConnectionState,
    Connected,
    Disconnected,
    ConnectionErrorEvent,
    TransportTimeout,
    GenericError,
    AudioResponse,
    ChannelEvent,
)
from .session import SessionStatus, ChatSessionState

__all__ = [
    "AudioStats",
    "StreamerStats",
    "DecodedAudio",
    # Channel events
    "AudioChunk",
    "ConnectionState",
    "Connected",
    "Disconnected",
    "ConnectionErrorEvent",
    "TransportTimeout",
    "GenericError",
    "AudioResponse",
    "ChannelEvent",
    # Session
    "SessionStatus",
    "ChatSessionState",
]
