"""Realtime voice chat client: microphone capture, socket.io streaming and playback."""

__version__ = "0.1.0"
