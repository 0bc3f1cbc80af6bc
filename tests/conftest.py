"""Pytest configuration and fixtures for voice chat tests."""

import io
import time
import logging
import tempfile
import wave
from unittest.mock import Mock, patch

import numpy as np
import pytest
from pubsub import pub
from socketio import exceptions as socketio_exceptions


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with all hardware mocked")
    config.addinivalue_line("markers", "integration: several real components wired together")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop pub/sub listeners left over by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Silent float32 audio; the short sleep stands in for a blocking device read
        def read(frames, exception_on_overflow=True):
            time.sleep(0.005)
            return b'\x00' * (frames * 4)

        mock_stream.read.side_effect = read
        mock_stream.write.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {'index': 0}

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def sine_samples():
    """Generate float samples of a 440 Hz sine wave."""
    def generate(duration_seconds=0.1, sample_rate=16000, channels=1):
        frames = int(duration_seconds * sample_rate)
        t = np.linspace(0, duration_seconds, frames, False)
        wave_data = 0.5 * np.sin(2 * np.pi * 440 * t)
        return np.repeat(wave_data.reshape(-1, 1), channels, axis=1).astype(np.float32)

    return generate


@pytest.fixture
def sample_wav_bytes():
    """A short mono 16-bit WAV file held in memory."""
    samples = (np.sin(np.linspace(0, 20 * np.pi, 1600)) * 16000).astype(np.int16)
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(1)  # Mono
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(16000)
        wf.writeframes(samples.tobytes())
    return buffer.getvalue()


class FakeSocketClient:
    """Stands in for socketio.Client; records connects and emits."""

    def __init__(self, fail_times=0, failure_message="Connection refused by the server", stall=0.0):
        self.handlers = {}
        self.connected = False
        self.connect_calls = []
        self.emitted = []
        self.disconnect_calls = 0
        self.fail_times = fail_times  # -1 fails forever
        self.failure_message = failure_message
        self.server_error = None
        self.stall = stall  # seconds a failing attempt hangs before raising

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    def connect(self, url, **kwargs):
        self.connect_calls.append((url, kwargs))
        if self.fail_times < 0 or len(self.connect_calls) <= self.fail_times:
            time.sleep(self.stall)
            if self.server_error is not None:
                self.handlers['connect_error'](self.server_error)
            raise socketio_exceptions.ConnectionError(self.failure_message)
        self.connected = True
        self.handlers['connect']()

    def emit(self, event, *args):
        if not self.connected:
            raise socketio_exceptions.BadNamespaceError('/ is not a connected namespace.')
        self.emitted.append((event, args))

    def disconnect(self):
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            self.handlers['disconnect']('client disconnect')

    def drop(self, reason='transport close'):
        """Simulate the server going away."""
        self.connected = False
        self.handlers['disconnect'](reason)

    def receive(self, event, *args):
        """Simulate a server-emitted event."""
        self.handlers[event](*args)

    def emitted_events(self):
        return [event for event, _ in self.emitted]


@pytest.fixture
def fake_socket_client():
    """Factory for fake socket.io clients."""
    return FakeSocketClient


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until ``predicate()`` is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until():
    return wait_for
