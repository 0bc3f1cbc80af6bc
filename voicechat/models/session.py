"""Chat session state models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionStatus(Enum):
    """States of the chat session state machine."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECORDING = "recording"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class ChatSessionState:
    """Externally visible state of a voice chat session."""
    status: SessionStatus = SessionStatus.IDLE
    is_connected: bool = False
    is_recording: bool = False
    error: Optional[str] = None
    frames_sent: int = 0
    responses_played: int = 0
