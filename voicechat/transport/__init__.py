"""Transport channel to the voice server."""

from .channel import TransportChannel, AUDIO_DATA_EVENT, AUDIO_RESPONSE_EVENT, START_STREAM_EVENT
from .reconnect import ReconnectPolicy

__all__ = [
    "TransportChannel",
    "ReconnectPolicy",
    "AUDIO_DATA_EVENT",
    "AUDIO_RESPONSE_EVENT",
    "START_STREAM_EVENT",
]
