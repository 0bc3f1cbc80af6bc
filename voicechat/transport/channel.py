"""Socket.IO transport channel carrying control events and audio frames."""

import logging
import threading
import time
from typing import Callable, Optional, Sequence

import socketio
from socketio import exceptions as socketio_exceptions

from ..models.events import (
    AudioResponse,
    ChannelEvent,
    Connected,
    ConnectionErrorEvent,
    ConnectionState,
    Disconnected,
    GenericError,
    TransportTimeout,
)
from .reconnect import ReconnectPolicy

logger = logging.getLogger(__name__)

AUDIO_DATA_EVENT = "audio-data"
AUDIO_RESPONSE_EVENT = "audio-response"
START_STREAM_EVENT = "start-stream"

# Seconds of timer jitter tolerated when deciding an attempt ran out of time
TIMEOUT_SLACK = 0.05


def _default_client_factory(request_timeout: float) -> socketio.Client:
    # Retries are driven by ReconnectPolicy, not by the client
    return socketio.Client(reconnection=False, request_timeout=request_timeout,
                           logger=False, engineio_logger=False)


def _is_timeout(message: str, elapsed: float, timeout: float) -> bool:
    # engineio reports a stalled handshake as a plain "Connection error"
    if elapsed + TIMEOUT_SLACK >= timeout:
        return True
    lowered = message.lower()
    return "timeout" in lowered or "timed out" in lowered


def _error_message(data) -> str:
    if isinstance(data, dict):
        return str(data.get("message") or data)
    return str(data) if data is not None else "Unknown error"


class TransportChannel:
    """Bidirectional, reconnecting channel to the voice server.

    Every transport outcome is translated into a ``ChannelEvent`` and handed
    to the single ``listener``; nothing is raised past this class.
    """

    def __init__(
        self,
        url: str,
        listener: Callable[[ChannelEvent], None],
        path: str = "socket.io",
        transports: Sequence[str] = ("websocket", "polling"),
        policy: Optional[ReconnectPolicy] = None,
        connect_timeout: float = 10.0,
        client_factory: Optional[Callable[[], socketio.Client]] = None,
    ):
        """Initialize the channel; no connection is made until ``connect()``.

        Args:
            url: Server base URL
            listener: Receives every channel event
            path: Socket.IO endpoint path
            transports: Engine.IO transports in order of preference
            policy: Reconnection policy
            connect_timeout: Seconds to wait for the handshake
            client_factory: Builds the underlying socket.io client
        """
        self.url = url
        self.listener = listener
        self.path = path.strip("/")
        self.transports = list(transports)
        self.policy = policy or ReconnectPolicy()
        self.connect_timeout = connect_timeout

        self.state = ConnectionState.IDLE
        self.frames_sent = 0
        self.bytes_sent = 0

        self._closing = threading.Event()
        self._closed = False
        self._connect_lock = threading.Lock()
        self._reconnect_thread: Optional[threading.Thread] = None
        self._last_server_error: Optional[str] = None

        if client_factory is None:
            self.client = _default_client_factory(connect_timeout)
        else:
            self.client = client_factory()
        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        self.client.on("connect_error", self._on_connect_error)
        self.client.on("error", self._on_server_error)
        self.client.on(AUDIO_RESPONSE_EVENT, self._on_audio_response)

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self._closed

    def connect(self) -> bool:
        """Connect, retrying per the policy.

        Returns:
            True once connected, False if every attempt failed or the channel was closed
        """
        if self._closed:
            logger.warning("Channel is closed; create a new one to reconnect")
            return False
        if self.is_connected:
            return True

        with self._connect_lock:
            logger.info(f"Connecting to {self.url} (path=/{self.path}, transports={self.transports})")
            return self._run_attempts(first_immediate=True)

    def close(self) -> None:
        """Disconnect and stop any reconnection; safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._closing.set()
        logger.info("Closing transport channel")

        try:
            self.client.disconnect()
        except socketio_exceptions.SocketIOError as e:
            logger.warning(f"Error while disconnecting: {e}")

        thread = self._reconnect_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self.policy.delay + self.connect_timeout)
        self.state = ConnectionState.DISCONNECTED

    def send_audio_frame(self, data: bytes) -> bool:
        """Emit one binary audio frame; fire-and-forget.

        Returns:
            True if the frame was handed to the transport
        """
        if not self.is_connected:
            logger.warning(f"Cannot send audio frame ({len(data)} bytes): channel is {self.state.value}")
            return False
        if not self._emit(AUDIO_DATA_EVENT, data):
            return False
        self.frames_sent += 1
        self.bytes_sent += len(data)
        return True

    def signal_stream_start(self) -> bool:
        """Tell the server a new audio stream is starting."""
        if not self.is_connected:
            logger.warning(f"Cannot signal stream start: channel is {self.state.value}")
            return False
        return self._emit(START_STREAM_EVENT)

    def _emit(self, event: str, *args) -> bool:
        try:
            self.client.emit(event, *args)
            return True
        except socketio_exceptions.SocketIOError as e:
            logger.error(f"Failed to emit '{event}': {e}")
            self._dispatch(GenericError(f"Failed to send '{event}': {e}"))
            return False

    def _wait(self, delay: float) -> bool:
        """Sleep between attempts. Returns True if the channel was closed meanwhile."""
        return self._closing.wait(delay)

    def _run_attempts(self, first_immediate: bool) -> bool:
        max_attempts = self.policy.max_attempts
        last_message = ""

        if first_immediate:
            ok, last_message = self._attempt(0)
            if ok:
                return True

        for attempt in range(1, max_attempts + 1):
            if self._wait(self.policy.delay):
                return False
            logger.info(f"Reconnection attempt {attempt}/{max_attempts}")
            ok, last_message = self._attempt(attempt)
            if ok:
                return True

        if self._closing.is_set():
            return False

        self.state = ConnectionState.ERROR
        message = f"Unable to connect after {max_attempts} retries: {last_message}"
        logger.error(message)
        self._dispatch(ConnectionErrorEvent(message, attempt=max_attempts, terminal=True))
        return False

    def _attempt(self, attempt: int):
        if self._closing.is_set():
            return False, "Channel closed"

        self.state = ConnectionState.CONNECTING
        self._last_server_error = None
        started = time.monotonic()
        try:
            self.client.connect(
                self.url,
                transports=self.transports,
                socketio_path=self.path,
                wait_timeout=self.connect_timeout,
            )
        except socketio_exceptions.ConnectionError as e:
            message = self._last_server_error or str(e)
            elapsed = time.monotonic() - started
            self.state = ConnectionState.DISCONNECTED
            if _is_timeout(message, elapsed, self.connect_timeout):
                logger.warning(f"Connection timeout (attempt {attempt}): {message}")
                self._dispatch(TransportTimeout(f"Connection timeout: {message}", attempt=attempt))
            else:
                logger.warning(f"Connection error (attempt {attempt}): {message}")
                self._dispatch(ConnectionErrorEvent(message, attempt=attempt))
            return False, message
        return True, ""

    def _reconnect_loop(self) -> None:
        with self._connect_lock:
            if not self._closing.is_set() and not self.is_connected:
                self._run_attempts(first_immediate=False)

    def _on_connect(self) -> None:
        self.state = ConnectionState.CONNECTED
        logger.info("Socket connected")
        self._dispatch(Connected())

    def _on_disconnect(self, reason=None) -> None:
        reason = str(reason) if reason is not None else ""
        self.state = ConnectionState.DISCONNECTED
        logger.info(f"Socket disconnected {reason}".rstrip())
        self._dispatch(Disconnected(reason))

        if self._closing.is_set() or not self.policy.enabled:
            return
        self._reconnect_thread = threading.Thread(target=self._reconnect_loop, daemon=True)
        self._reconnect_thread.name = "ChannelReconnectThread"
        self._reconnect_thread.start()

    def _on_connect_error(self, data=None) -> None:
        # Reported by the retry loop once the attempt's exception surfaces
        self._last_server_error = _error_message(data)
        logger.debug(f"connect_error: {self._last_server_error}")

    def _on_server_error(self, data=None) -> None:
        message = _error_message(data)
        logger.error(f"Socket error: {message}")
        self._dispatch(GenericError(message))

    def _on_audio_response(self, data=None) -> None:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            logger.error(f"Unexpected audio-response payload: {type(data).__name__}")
            self._dispatch(GenericError("Unexpected audio-response payload"))
            return
        self._dispatch(AudioResponse(bytes(data)))

    def _dispatch(self, event: ChannelEvent) -> None:
        try:
            self.listener(event)
        except Exception:
            logger.exception(f"Channel listener failed on {type(event).__name__}")
