"""Services layer for voice chat session logic."""

from .chat_session import VoiceChatSession

__all__ = [
    "VoiceChatSession",
]
