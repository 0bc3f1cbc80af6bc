"""Unit tests for the Socket.IO transport channel."""

import socket
import time
from unittest.mock import Mock

import pytest

from voicechat.models.events import (
    AudioResponse,
    Connected,
    ConnectionErrorEvent,
    ConnectionState,
    Disconnected,
    GenericError,
    TransportTimeout,
)
from voicechat.transport.channel import TransportChannel
from voicechat.transport.reconnect import ReconnectPolicy


def make_channel(client, events, policy=None, **kwargs):
    return TransportChannel(
        "http://voice.test:3000",
        events.append,
        policy=policy or ReconnectPolicy(),
        client_factory=lambda: client,
        **kwargs
    )


def of_type(events, event_type):
    return [e for e in events if isinstance(e, event_type)]


@pytest.mark.unit
class TestTransportChannelConnect:

    def test_connect_success(self, fake_socket_client):
        client = fake_socket_client()
        events = []
        channel = make_channel(client, events)

        assert channel.connect() is True

        assert channel.state == ConnectionState.CONNECTED
        assert channel.is_connected
        assert isinstance(events[-1], Connected)
        url, kwargs = client.connect_calls[0]
        assert url == "http://voice.test:3000"
        assert kwargs['transports'] == ['websocket', 'polling']
        assert kwargs['socketio_path'] == 'socket.io'

    def test_path_slashes_are_stripped(self, fake_socket_client):
        client = fake_socket_client()
        channel = make_channel(client, [], path="/socket.io/")

        channel.connect()

        assert client.connect_calls[0][1]['socketio_path'] == 'socket.io'

    def test_retries_with_fixed_delay_until_success(self, fake_socket_client):
        client = fake_socket_client(fail_times=2)
        events = []
        channel = make_channel(client, events)
        channel._wait = Mock(return_value=False)

        assert channel.connect() is True

        assert len(client.connect_calls) == 3
        assert [c.args[0] for c in channel._wait.call_args_list] == [1.0, 1.0]
        errors = of_type(events, ConnectionErrorEvent)
        assert [e.attempt for e in errors] == [0, 1]
        assert not any(e.terminal for e in errors)
        assert isinstance(events[-1], Connected)

    def test_gives_up_after_five_retries(self, fake_socket_client):
        client = fake_socket_client(fail_times=-1)
        events = []
        channel = make_channel(client, events)
        channel._wait = Mock(return_value=False)

        assert channel.connect() is False

        # Initial attempt plus five retries, one second apart
        assert len(client.connect_calls) == 6
        assert [c.args[0] for c in channel._wait.call_args_list] == [1.0] * 5
        assert channel.state == ConnectionState.ERROR
        final = events[-1]
        assert isinstance(final, ConnectionErrorEvent)
        assert final.terminal is True
        assert "5 retries" in final.message
        assert sum(1 for e in of_type(events, ConnectionErrorEvent) if e.terminal) == 1

    def test_reconnection_disabled_tries_once(self, fake_socket_client):
        client = fake_socket_client(fail_times=-1)
        events = []
        channel = make_channel(client, events, policy=ReconnectPolicy(enabled=False))

        assert channel.connect() is False

        assert len(client.connect_calls) == 1
        assert events[-1].terminal is True

    def test_timeout_reported_as_transport_timeout(self, fake_socket_client):
        client = fake_socket_client(fail_times=1, failure_message="Connection timed out")
        events = []
        channel = make_channel(client, events)
        channel._wait = Mock(return_value=False)

        assert channel.connect() is True

        timeouts = of_type(events, TransportTimeout)
        assert len(timeouts) == 1
        assert "timed out" in timeouts[0].message

    def test_stalled_attempt_reported_as_transport_timeout(self, fake_socket_client):
        # engineio gives no hint of a timeout in the message
        client = fake_socket_client(fail_times=1, failure_message="Connection error", stall=0.3)
        events = []
        channel = make_channel(client, events, connect_timeout=0.3)
        channel._wait = Mock(return_value=False)

        assert channel.connect() is True

        assert len(of_type(events, TransportTimeout)) == 1
        assert of_type(events, ConnectionErrorEvent) == []

    def test_server_rejection_message_used(self, fake_socket_client):
        client = fake_socket_client(fail_times=1, failure_message="One or more namespaces failed to connect")
        client.server_error = {"message": "Unauthorized"}
        events = []
        channel = make_channel(client, events)
        channel._wait = Mock(return_value=False)

        channel.connect()

        assert of_type(events, ConnectionErrorEvent)[0].message == "Unauthorized"

    def test_close_stops_retrying(self, fake_socket_client):
        client = fake_socket_client(fail_times=-1)
        events = []
        channel = make_channel(client, events)
        # Closed while waiting before the first retry
        channel._wait = Mock(return_value=True)

        assert channel.connect() is False

        assert len(client.connect_calls) == 1
        assert not any(e.terminal for e in of_type(events, ConnectionErrorEvent))

    def test_connect_after_close_refused(self, fake_socket_client):
        client = fake_socket_client()
        channel = make_channel(client, [])

        channel.close()

        assert channel.connect() is False
        assert client.connect_calls == []


@pytest.mark.unit
class TestTransportChannelMessages:

    @pytest.fixture
    def connected(self, fake_socket_client):
        client = fake_socket_client()
        events = []
        channel = make_channel(client, events)
        channel.connect()
        return channel, client, events

    def test_send_audio_frame(self, connected):
        channel, client, _ = connected

        assert channel.send_audio_frame(b'RIFF....') is True

        assert client.emitted == [('audio-data', (b'RIFF....',))]
        assert channel.frames_sent == 1
        assert channel.bytes_sent == 8

    def test_frames_keep_send_order(self, connected):
        channel, client, _ = connected

        for i in range(5):
            channel.send_audio_frame(bytes([i]))

        assert [args[0] for _, args in client.emitted] == [bytes([i]) for i in range(5)]

    def test_signal_stream_start(self, connected):
        channel, client, _ = connected

        assert channel.signal_stream_start() is True

        assert client.emitted == [('start-stream', ())]

    def test_send_when_not_connected(self, fake_socket_client):
        client = fake_socket_client()
        channel = make_channel(client, [])

        assert channel.send_audio_frame(b'data') is False
        assert channel.signal_stream_start() is False
        assert client.emitted == []

    def test_emit_failure_becomes_generic_error(self, connected):
        channel, client, events = connected
        client.connected = False  # transport gone but no disconnect yet

        assert channel.send_audio_frame(b'data') is False

        assert isinstance(events[-1], GenericError)
        assert channel.frames_sent == 0

    def test_audio_response_dispatched(self, connected):
        _, client, events = connected

        client.receive('audio-response', b'\x00\x01')

        assert isinstance(events[-1], AudioResponse)
        assert events[-1].audio_data == b'\x00\x01'

    def test_non_binary_audio_response(self, connected):
        _, client, events = connected

        client.receive('audio-response', {"not": "audio"})

        assert isinstance(events[-1], GenericError)

    def test_server_error_event(self, connected):
        _, client, events = connected

        client.receive('error', {"message": "Rate limited"})

        assert isinstance(events[-1], GenericError)
        assert events[-1].message == "Rate limited"

    def test_listener_exception_does_not_escape(self, fake_socket_client):
        client = fake_socket_client()
        channel = TransportChannel("http://voice.test", Mock(side_effect=RuntimeError("boom")),
                                   client_factory=lambda: client)

        assert channel.connect() is True
        client.receive('audio-response', b'\x00')


@pytest.mark.unit
class TestTransportChannelLifecycle:

    def test_drop_triggers_reconnect(self, fake_socket_client, wait_until):
        client = fake_socket_client()
        events = []
        channel = make_channel(client, events, policy=ReconnectPolicy(attempts=5, delay=0.01))
        channel.connect()

        client.drop()

        assert wait_until(lambda: len(of_type(events, Connected)) == 2)
        assert of_type(events, Disconnected)[0].reason == 'transport close'
        assert channel.is_connected
        channel.close()

    def test_drop_without_reconnection(self, fake_socket_client):
        client = fake_socket_client()
        events = []
        channel = make_channel(client, events, policy=ReconnectPolicy(enabled=False))
        channel.connect()

        client.drop()

        assert channel.state == ConnectionState.DISCONNECTED
        assert channel._reconnect_thread is None
        assert len(client.connect_calls) == 1

    def test_close_is_idempotent(self, fake_socket_client):
        client = fake_socket_client()
        events = []
        channel = make_channel(client, events)
        channel.connect()

        channel.close()
        channel.close()

        assert client.disconnect_calls == 1
        assert channel.state == ConnectionState.DISCONNECTED
        assert channel.is_closed
        assert len(of_type(events, Disconnected)) == 1
        # Closing never schedules a reconnect
        assert channel._reconnect_thread is None


@pytest.fixture
def silent_server():
    """A listening socket that accepts connections and never answers."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(('127.0.0.1', 0))
    server.listen(8)
    yield f"http://127.0.0.1:{server.getsockname()[1]}"
    server.close()


@pytest.mark.unit
class TestTransportChannelSocketIOClient:

    def test_unanswered_handshake_times_out(self, silent_server, monkeypatch):
        monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
        events = []
        channel = TransportChannel(silent_server, events.append, transports=['polling'],
                                   policy=ReconnectPolicy(attempts=0), connect_timeout=1.0)

        started = time.monotonic()
        assert channel.connect() is False
        elapsed = time.monotonic() - started

        # Bounded by connect_timeout, not engineio's 5 second default
        assert elapsed < 3.0
        assert len(of_type(events, TransportTimeout)) == 1
        assert events[-1].terminal is True
        assert channel.state == ConnectionState.ERROR
        channel.close()
