"""Voice chat session: owns the microphone and the channel, exposes one state surface."""

import dataclasses
import itertools
import logging
import threading
from functools import partial
from typing import Callable, Optional

from ..audio.audio_pub import AudioPublisher
from ..audio.capture import AudioCapture
from ..audio.playback import AudioPlayer
from ..config import VoiceChatConfig
from ..errors import (
    ChannelConnectionError,
    DecodeError,
    DeviceError,
    GenericChannelError,
    VoiceChatError,
)
from ..models.events import (
    AudioChunk,
    AudioResponse,
    ChannelEvent,
    Connected,
    ConnectionErrorEvent,
    Disconnected,
    GenericError,
    TransportTimeout,
)
from ..models.session import ChatSessionState, SessionStatus
from ..streaming.streamer import AudioStreamer
from ..transport.channel import TransportChannel
from ..transport.reconnect import ReconnectPolicy

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)

ChannelFactory = Callable[[Callable[[ChannelEvent], None]], TransportChannel]
CaptureFactory = Callable[
    [Callable[[AudioChunk], None], Callable[[AudioCapture, DeviceError], None]], AudioCapture]

CONNECTABLE = (SessionStatus.IDLE, SessionStatus.DISCONNECTED, SessionStatus.ERROR)


class VoiceChatSession:
    """State machine supervising capture, streaming, transport and playback.

    States: idle -> connecting -> connected <-> recording -> disconnected, with
    error reachable from anywhere and retryable through ``connect()``. Only
    this class mutates ``ChatSessionState``; components report back through
    events and callbacks.
    """

    def __init__(
        self,
        config: Optional[VoiceChatConfig] = None,
        url: Optional[str] = None,
        channel_factory: Optional[ChannelFactory] = None,
        capture_factory: Optional[CaptureFactory] = None,
        player: Optional[AudioPlayer] = None,
        state_callback: Optional[Callable[[ChatSessionState], None]] = None,
    ):
        """Initialize the session. Nothing is opened until ``connect()``.

        Args:
            config: Application configuration; defaults when None
            url: Server URL overriding environment and config
            channel_factory: Builds a channel for a given event listener
            capture_factory: Builds a capture for a chunk callback and error callback
            player: Player for server audio
            state_callback: Receives a copy of the state after every change
        """
        self.config = config or VoiceChatConfig()
        self.url = self.config.get_server_url(url)
        self.session_id = f"session_{next(_session_ids)}"
        self.channel_factory = channel_factory or self._create_channel
        self.capture_factory = capture_factory or self._create_capture
        self.player = player or AudioPlayer(
            frames_per_buffer=self.config.get('audio.frames_per_buffer', 1024))
        self.state_callback = state_callback

        base_topic = self.config.get('streaming.topic', 'voicechat.audio')
        self.topic = f"{base_topic}.{self.session_id}"
        self.publisher = AudioPublisher(self.topic)

        self.state = ChatSessionState()
        self.last_error: Optional[VoiceChatError] = None
        self._lock = threading.RLock()
        self._generation = 0
        self._closed = False

        # Singly-owned resources
        self.channel: Optional[TransportChannel] = None
        self.capture: Optional[AudioCapture] = None
        self.streamer: Optional[AudioStreamer] = None

        logger.info(f"VoiceChatSession {self.session_id} created for {self.url}")

    def __enter__(self) -> "VoiceChatSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # State

    def get_state(self) -> ChatSessionState:
        """Return a copy of the current state."""
        with self._lock:
            return dataclasses.replace(self.state)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _update(self, **changes) -> None:
        with self._lock:
            for name, value in changes.items():
                setattr(self.state, name, value)
            snapshot = dataclasses.replace(self.state)
        if self.state_callback:
            try:
                self.state_callback(snapshot)
            except Exception:
                logger.exception("State callback failed")

    def _fail(self, error: VoiceChatError, message: str, **changes) -> None:
        self.last_error = error
        self._update(error=message, **changes)

    # Connection lifecycle

    def connect(self) -> bool:
        """Open the channel.

        Returns:
            True once connected
        """
        with self._lock:
            if self._closed:
                logger.warning("Session is closed")
                return False
            if self.state.status not in CONNECTABLE:
                logger.warning(f"connect() ignored while {self.state.status.value}")
                return self.state.is_connected

            self._generation += 1
            generation = self._generation
            self._release_channel_locked()
            self._update(status=SessionStatus.CONNECTING, error=None)
            self.last_error = None

            try:
                channel = self.channel_factory(partial(self._on_channel_event, generation))
            except (ValueError, TypeError, OSError) as e:
                logger.error(f"Socket initialization error: {e}")
                self._fail(ChannelConnectionError(str(e)), f"Socket initialization error: {e}",
                           status=SessionStatus.ERROR)
                return False
            self.channel = channel

        # Outside the lock: channel events arrive on other threads during the handshake
        connected = channel.connect()

        with self._lock:
            if generation != self._generation:
                return False
            if connected and channel.is_connected:
                if self.state.status == SessionStatus.CONNECTING:
                    self._update(status=SessionStatus.CONNECTED, is_connected=True, error=None)
                return True
            if self.state.status != SessionStatus.ERROR:
                message = self.state.error or "Unable to connect"
                self._fail(self.last_error or ChannelConnectionError(message), message,
                           status=SessionStatus.ERROR, is_connected=False)
            return False

    def disconnect(self) -> None:
        """Stop recording and close the channel; ``connect()`` may be called again."""
        with self._lock:
            self._stop_recording_locked()
            self._generation += 1
            self._release_channel_locked()
            if self.state.status != SessionStatus.IDLE or self.state.is_connected:
                self._update(status=SessionStatus.DISCONNECTED, is_connected=False,
                             is_recording=False)

    def close(self) -> None:
        """Tear down everything; safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info(f"Closing session {self.session_id}")
        self.disconnect()
        self.player.stop()

    def _release_channel_locked(self) -> None:
        channel = self.channel
        self.channel = None
        if channel is not None:
            channel.close()

    # Recording

    def start_recording(self) -> bool:
        """Acquire the microphone and start streaming; only valid when connected.

        Returns:
            True if recording started
        """
        with self._lock:
            if self._closed or self.state.status != SessionStatus.CONNECTED or self.channel is None:
                logger.warning(f"start_recording() rejected while {self.state.status.value}")
                return False

            streamer = AudioStreamer(
                self.channel,
                topic=self.topic,
                chunks_per_frame=self.config.get('streaming.chunks_per_frame', 1),
            )
            capture = self.capture_factory(self.publisher.publish_audio_chunk, self._on_capture_error)
            try:
                capture.start_recording()
            except DeviceError as e:
                logger.error(f"Media recording error: {e}")
                streamer.shutdown()
                self._fail(e, f"Microphone access error: {e}")
                return False

            self.capture = capture
            self.streamer = streamer
            self.channel.signal_stream_start()
            self.last_error = None
            self._update(status=SessionStatus.RECORDING, is_recording=True, error=None)
            logger.info("Recording started")
            return True

    def stop_recording(self) -> bool:
        """Stop recording and release the microphone; a no-op when not recording.

        Returns:
            True if a recording was stopped
        """
        with self._lock:
            return self._stop_recording_locked()

    def _stop_recording_locked(self) -> bool:
        capture = self.capture
        if capture is None:
            logger.debug("stop_recording(): not recording")
            return False
        self.capture = None

        try:
            capture.stop_recording()
        finally:
            streamer = self.streamer
            self.streamer = None
            frames_sent = 0
            if streamer is not None:
                if not streamer.flush(timeout=self.config.get('streaming.flush_timeout', 5.0)):
                    logger.warning(f"{streamer.task_queue.qsize()} frames still queued at stop")
                streamer.shutdown()
                frames_sent = streamer.frames_sent

            connected = self.channel is not None and self.channel.is_connected
            self._update(
                status=SessionStatus.CONNECTED if connected else SessionStatus.DISCONNECTED,
                is_recording=False,
                is_connected=connected,
                frames_sent=self.state.frames_sent + frames_sent,
            )
            logger.info(f"Recording stopped, {frames_sent} frames sent")
        return True

    def _on_capture_error(self, capture: AudioCapture, error: DeviceError) -> None:
        # Runs on the capture thread, which stop_recording() joins
        thread = threading.Thread(target=self._handle_device_failure, args=(capture, error), daemon=True)
        thread.name = "DeviceFailureHandler"
        thread.start()

    def _handle_device_failure(self, capture: AudioCapture, error: DeviceError) -> None:
        with self._lock:
            if self.capture is not capture:
                logger.info(f"Ignoring failure of a finished recording: {error}")
                return
            self._stop_recording_locked()
            self._fail(error, f"Microphone access error: {error}")

    # Channel events

    def _on_channel_event(self, generation: int, event: ChannelEvent) -> None:
        if generation != self._generation:
            logger.debug(f"Ignoring {type(event).__name__} from a released channel")
            return

        if isinstance(event, AudioResponse):
            self._play_response(event)
            return

        with self._lock:
            if generation != self._generation:
                return
            if isinstance(event, Connected):
                self.last_error = None
                status = SessionStatus.RECORDING if self.capture else SessionStatus.CONNECTED
                self._update(status=status, is_connected=True, error=None)
            elif isinstance(event, Disconnected):
                self._stop_recording_locked()
                self._update(status=SessionStatus.DISCONNECTED, is_connected=False)
            elif isinstance(event, ConnectionErrorEvent):
                changes = {}
                if event.terminal:
                    changes = dict(status=SessionStatus.ERROR, is_connected=False)
                self._fail(ChannelConnectionError(event.message),
                           f"Connection error: {event.message}", **changes)
            elif isinstance(event, TransportTimeout):
                self._fail(ChannelConnectionError(event.message), "Connection timeout")
            elif isinstance(event, GenericError):
                self._fail(GenericChannelError(event.message), event.message)

    def _play_response(self, event: AudioResponse) -> None:
        try:
            self.player.play(event.audio_data)
        except (DecodeError, DeviceError) as e:
            logger.error(f"Audio playback error: {e}")
            with self._lock:
                self._fail(e, f"Audio playback error: {e}")
            return
        with self._lock:
            self._update(responses_played=self.state.responses_played + 1)

    # Default factories

    def _create_channel(self, listener: Callable[[ChannelEvent], None]) -> TransportChannel:
        return TransportChannel(
            self.url,
            listener,
            path=self.config.get('server.path', 'socket.io'),
            transports=self.config.get('server.transports', ['websocket', 'polling']),
            policy=ReconnectPolicy.from_config(self.config),
            connect_timeout=float(self.config.get('server.connect_timeout', 10.0)),
        )

    def _create_capture(self, callback: Callable[[AudioChunk], None],
                        error_callback: Callable[[AudioCapture, DeviceError], None]) -> AudioCapture:
        return AudioCapture(
            callback=callback,
            sample_rate=self.config.get('audio.sample_rate', 16000),
            channels=self.config.get('audio.channels', 1),
            frames_per_buffer=self.config.get('audio.frames_per_buffer', 1024),
            chunk_interval_ms=self.config.get('audio.chunk_interval_ms', 1000),
            input_device_index=self.config.get('audio.input_device_index'),
            error_callback=error_callback,
        )
