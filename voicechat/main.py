"""Main application entry point for the voice chat client."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import Optional

from voicechat import __version__
from voicechat.audio.playback import AudioPlayer
from voicechat.errors import ChannelConnectionError, VoiceChatError
from voicechat.services.chat_session import VoiceChatSession

from .config import VoiceChatConfig

logger = logging.getLogger(__name__)


class VoiceChatApp:

    def __init__(self, config_path: Optional[str], url: Optional[str] = None,
                 log_level: Optional[str] = None):
        # Load configuration
        self.config = VoiceChatConfig(config_path)
        # Set up logging (command line overrides config)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.url = url
        self.session: Optional[VoiceChatSession] = None

    def init(self) -> VoiceChatSession:
        logger.info("Initializing session...")
        logger.info(f"Audio settings: {self.config.get('audio.sample_rate')}Hz, "
                    f"{self.config.get('audio.channels')} channels, "
                    f"{self.config.get('audio.chunk_interval_ms')}ms chunks")
        self.session = VoiceChatSession(self.config, url=self.url)
        return self.session

    def run_auto(self, duration: float, response_wait: float = 5.0) -> None:
        """Connect, record for ``duration`` seconds, then wait for replies and exit."""
        session = self.session or self.init()
        try:
            if not session.connect():
                raise session.last_error or ChannelConnectionError(session.get_state().error)
            if not session.start_recording():
                raise session.last_error or VoiceChatError("Unable to start recording")
            time.sleep(duration)
            session.stop_recording()

            logger.info(f"Waiting {response_wait}s for audio responses")
            time.sleep(response_wait)
            session.player.wait(timeout=response_wait)
        finally:
            self.cleanup()

    def run_interactive(self) -> None:
        from voicechat.ui.status_screen import VoiceChatScreen

        session = self.session or self.init()
        VoiceChatScreen(session).run()

    def play_file(self, path: str) -> None:
        """Decode a local audio file and play it to the end."""
        player = AudioPlayer(frames_per_buffer=self.config.get('audio.frames_per_buffer', 1024))
        data = Path(path).read_bytes()
        player.play(data)
        player.wait()

    def cleanup(self) -> None:
        if self.session:
            self.session.close()


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'logs/voicechat.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Socket.IO internals are noisy at DEBUG
    logging.getLogger('engineio').setLevel(logging.WARNING)
    logging.getLogger('socketio').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("Voice chat client starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Realtime voice chat over Socket.IO",
        epilog="Interactive commands: c=connect, r=record, s=stop, d=disconnect, q=quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--url",
        type=str,
        help="Voice server URL (overrides VOICECHAT_WS_URL and config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Connect, record for --duration seconds, wait for replies, then exit"
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )

    parser.add_argument(
        "--response-wait",
        type=float,
        default=5,
        help="Seconds to wait for audio responses after recording in auto mode (default: 5)"
    )

    parser.add_argument(
        "--play",
        type=str,
        metavar="FILE",
        help="Play a local audio file through the output device and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"voicechat v{__version__}"
    )
    return parser


def main(argv=None) -> None:
    """Main entry point for the voice chat client."""
    args = build_parser().parse_args(argv)

    app = VoiceChatApp(args.config, url=args.url, log_level=args.log_level)
    try:
        if args.play:
            app.play_file(args.play)
        elif args.auto:
            app.run_auto(args.duration, args.response_wait)
        else:
            app.run_interactive()
    except KeyboardInterrupt:
        app.cleanup()
        print("\nGoodbye!")
    except (VoiceChatError, OSError) as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        app.cleanup()
        sys.exit(1)


if __name__ == "__main__":
    main()
