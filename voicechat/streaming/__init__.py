"""Outbound audio streaming."""

from .streamer import AudioStreamer, FlushTask

__all__ = ["AudioStreamer", "FlushTask"]
