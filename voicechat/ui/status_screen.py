"""Terminal status screen for an interactive voice chat session."""

import logging
import threading
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.session import ChatSessionState, SessionStatus
from ..services.chat_session import VoiceChatSession
from .keyboard_input import KeyboardInputHandler

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    SessionStatus.IDLE: ("IDLE", "bold white"),
    SessionStatus.CONNECTING: ("CONNECTING", "bold yellow"),
    SessionStatus.CONNECTED: ("CONNECTED", "bold green"),
    SessionStatus.RECORDING: ("RECORDING", "bold red"),
    SessionStatus.DISCONNECTED: ("DISCONNECTED", "bold yellow"),
    SessionStatus.ERROR: ("ERROR", "bold red"),
}

COMMANDS = [
    ("c", "Connect"),
    ("r", "Start recording"),
    ("s", "Stop recording"),
    ("d", "Disconnect"),
    ("q", "Quit"),
]


def render_status(state: ChatSessionState, url: str) -> Panel:
    """Build the status panel for a session state."""
    label, style = STATUS_STYLES[state.status]

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Server", url)
    table.add_row("Status", Text(label, style=style))
    table.add_row("Connected", "yes" if state.is_connected else "no")
    table.add_row("Microphone", "open" if state.is_recording else "released")
    table.add_row("Frames sent", str(state.frames_sent))
    table.add_row("Responses played", str(state.responses_played))
    if state.error:
        table.add_row("Error", Text(state.error, style="red"))

    commands = Text("  ".join(f"[{key}] {label}" for key, label in COMMANDS), style="dim")
    return Panel(Group(table, Text(""), commands), title="Voice chat", border_style="bright_blue")


class VoiceChatScreen:
    """Live status panel driven by single-key commands."""

    def __init__(self, session: VoiceChatSession, console: Optional[Console] = None):
        self.session = session
        self.console = console or Console()
        self.running = False
        self.input_handler = KeyboardInputHandler(self.handle_key)
        self._command_lock = threading.Lock()

    def handle_key(self, key: str) -> bool:
        """Run the command bound to ``key``. Returns False to quit."""
        with self._command_lock:
            if key == 'c':
                self.session.connect()
            elif key == 'r':
                if not self.session.start_recording():
                    logger.info("Start recording ignored in current state")
            elif key == 's':
                self.session.stop_recording()
            elif key == 'd':
                self.session.disconnect()
            elif key == 'q':
                self.running = False
                return False
            else:
                logger.debug(f"Unknown command: {key!r}")
            return True

    def run(self, refresh_interval: float = 0.25) -> None:
        """Show the live panel until the user quits."""
        self.running = True
        self.input_handler.start()
        try:
            with Live(render_status(self.session.get_state(), self.session.url),
                      console=self.console, refresh_per_second=4) as live:
                while self.running and not self.input_handler.finished.is_set():
                    live.update(render_status(self.session.get_state(), self.session.url))
                    self.input_handler.finished.wait(refresh_interval)
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self.running = False
            self.input_handler.stop()
            self.session.close()
            self.console.print("Voice chat session ended", style="bold blue")
