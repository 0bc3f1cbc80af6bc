"""Terminal user interface."""

from .status_screen import VoiceChatScreen, render_status

__all__ = ["VoiceChatScreen", "render_status"]
