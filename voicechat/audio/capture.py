"""Microphone capture that publishes fixed-cadence audio chunks."""

import time
import logging
from threading import Thread, Event, Lock
from typing import Optional, Callable
from datetime import datetime

import pyaudio

from ..errors import DeviceError, DevicePermissionError
from ..models.audio import AudioStats
from ..models.events import AudioChunk, BYTES_PER_SAMPLE


logger = logging.getLogger(__name__)


def classify_device_error(error: OSError) -> DeviceError:
    """Map a PortAudio failure onto the device error taxonomy."""
    message = str(error)
    lowered = message.lower()
    if isinstance(error, PermissionError) or 'permission' in lowered or 'denied' in lowered:
        return DevicePermissionError(f"Microphone access denied: {message}")
    return DeviceError(f"Microphone unavailable: {message}")


class AudioCapture:
    """Continuous microphone capture, sliced into chunks of ``chunk_interval_ms``."""

    def __init__(
        self,
        callback: Callable[[AudioChunk], None],
        sample_rate: int = 16000,
        channels: int = 1,
        frames_per_buffer: int = 1024,
        chunk_interval_ms: int = 1000,
        input_device_index: Optional[int] = None,
        error_callback: Optional[Callable[["AudioCapture", DeviceError], None]] = None,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            callback: Receives every completed AudioChunk, in order
            sample_rate: Audio sample rate
            channels: Number of audio channels
            frames_per_buffer: Frames read from the device per call
            chunk_interval_ms: Captured audio per published chunk
            input_device_index: PyAudio device index, or None for the default input
            error_callback: Receives this capture and the error when a read fails
        """
        self.chunk_callback = callback
        self.error_callback = error_callback
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.chunk_interval_ms = chunk_interval_ms
        self.input_device_index = input_device_index
        self.frames_per_chunk = max(1, int(sample_rate * chunk_interval_ms / 1000))
        self.bytes_per_frame = channels * BYTES_PER_SAMPLE

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.total_frames = 0
        self.device_releases = 0

        # Device handles, present only while recording
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self._device_lock = Lock()

    def start_recording(self) -> None:
        """Acquire the microphone and start chunking in a background thread.

        Raises:
            DevicePermissionError: If microphone access is denied
            DeviceError: If there is no usable input device
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio recording")
        self.__open_audio_stream()

        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0
        self.total_frames = 0

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.is_recording = True
        self.recording_thread.start()

    def stop_recording(self) -> None:
        """Stop recording and release the device before returning."""
        if not self.is_recording:
            logger.debug("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()

        # Wait for recording thread to publish its final chunk
        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self._release_device()
        self.is_recording = False
        logger.info(f"Recording stopped. Total chunks: {self.total_chunks}")

    def __open_audio_stream(self) -> None:
        pa = pyaudio.PyAudio()
        try:
            if self.input_device_index is None:
                pa.get_default_input_device_info()
            stream = pa.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=self.input_device_index,
                stream_callback=None
            )
        except OSError as e:
            pa.terminate()
            raise classify_device_error(e) from e

        with self._device_lock:
            self.pyaudio_instance = pa
            self.stream = stream
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, {self.channels}ch, "
                    f"{self.frames_per_chunk} frames/chunk")

    def _release_device(self) -> None:
        """Close the stream and terminate PyAudio; safe to call repeatedly."""
        with self._device_lock:
            stream, pa = self.stream, self.pyaudio_instance
            self.stream = None
            self.pyaudio_instance = None
            if stream is None and pa is None:
                return
            try:
                if stream is not None:
                    stream.stop_stream()
                    stream.close()
            except OSError as e:
                logger.error(f"Error closing audio stream: {e}")
            finally:
                if pa is not None:
                    pa.terminate()
                self.device_releases += 1
        logger.debug("Microphone released")

    def __publish_chunk(self, audio_data: bytes, final: bool = False) -> None:
        self.total_chunks += 1
        chunk = AudioChunk(
            chunk_id=f"chunk_{self.total_chunks}",
            audio_data=audio_data,
            timestamp=time.time(),
            sequence_number=self.total_chunks,
            sample_rate=self.sample_rate,
            channels=self.channels,
            final=final
        )
        self.chunk_callback(chunk)

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        chunk_bytes = self.frames_per_chunk * self.bytes_per_frame
        pending = bytearray()
        stream = self.stream
        try:
            while not self.stop_event.is_set():
                data = stream.read(self.frames_per_buffer, exception_on_overflow=False)
                pending.extend(data)
                self.total_frames += len(data) // self.bytes_per_frame
                while len(pending) >= chunk_bytes:
                    self.__publish_chunk(bytes(pending[:chunk_bytes]))
                    del pending[:chunk_bytes]
        except OSError as e:
            logger.error(f"Audio capture failed: {e}")
            if self.error_callback:
                self.error_callback(self, classify_device_error(e))
        finally:
            # Final chunk tells consumers the recording is complete
            self.__publish_chunk(bytes(pending), final=True)

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            channels=self.channels,
            chunk_interval_ms=self.chunk_interval_ms,
            total_chunks=self.total_chunks,
            total_frames=self.total_frames,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop_recording()
