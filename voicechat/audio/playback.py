"""Playback of received audio through the default output device."""

import logging
import threading
import time
from typing import List, Optional, Tuple

import numpy as np
import pyaudio

from ..errors import DeviceError
from ..models.audio import DecodedAudio
from .decoder import decode_audio

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Decodes audio buffers and renders each one on its own output stream.

    There is no playback queue: concurrent calls overlap.
    """

    def __init__(self, frames_per_buffer: int = 1024):
        """Initialize audio player.

        Args:
            frames_per_buffer: Frames written to the output stream per block
        """
        self.frames_per_buffer = frames_per_buffer
        # (thread, stop event) for each buffer handed to play()
        self._renders: List[Tuple[threading.Thread, threading.Event]] = []
        self._lock = threading.Lock()
        self.total_played = 0

    def play(self, data: bytes) -> threading.Thread:
        """Decode ``data`` and start rendering it immediately.

        Returns:
            The thread rendering this buffer

        Raises:
            DecodeError: If the buffer is not a recognised audio format
            DeviceError: If no output stream can be opened
        """
        audio = decode_audio(data)
        pa, stream = self._open_output_stream(audio)

        stop_event = threading.Event()
        thread = threading.Thread(target=self._render, args=(pa, stream, audio, stop_event), daemon=True)
        thread.name = f"AudioPlaybackThread-{self.total_played}"
        with self._lock:
            self._renders = [(t, e) for t, e in self._renders if t.is_alive()]
            self._renders.append((thread, stop_event))
            self.total_played += 1
        thread.start()

        logger.info(f"Playing {audio.duration_seconds:.2f}s of audio "
                    f"({audio.num_channels}ch, {audio.sample_rate}Hz)")
        return thread

    def _open_output_stream(self, audio: DecodedAudio):
        pa = pyaudio.PyAudio()
        try:
            stream = pa.open(
                format=pyaudio.paFloat32,
                channels=audio.num_channels,
                rate=audio.sample_rate,
                output=True,
                frames_per_buffer=self.frames_per_buffer,
            )
        except OSError as e:
            pa.terminate()
            raise DeviceError(f"Unable to open output device: {e}") from e
        return pa, stream

    def _render(self, pa: pyaudio.PyAudio, stream, audio: DecodedAudio,
                stop_event: threading.Event) -> None:
        """Internal method: write decoded samples to the stream in blocks."""
        samples = np.ascontiguousarray(audio.samples, dtype='<f4')
        try:
            for start in range(0, audio.num_frames, self.frames_per_buffer):
                if stop_event.is_set():
                    logger.debug("Playback interrupted")
                    break
                block = samples[start:start + self.frames_per_buffer]
                stream.write(block.tobytes())
        except OSError as e:
            logger.error(f"Audio playback failed: {e}")
        finally:
            stream.stop_stream()
            stream.close()
            pa.terminate()

    @property
    def active_count(self) -> int:
        """Number of buffers still being rendered."""
        with self._lock:
            return sum(1 for t, _ in self._renders if t.is_alive())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for outstanding playback to finish.

        Returns:
            True if all playback finished within ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            threads = [t for t, _ in self._renders]
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return self.active_count == 0

    def stop(self, timeout: float = 1.0) -> None:
        """Interrupt all playback and wait for the output streams to close."""
        with self._lock:
            for _, stop_event in self._renders:
                stop_event.set()
        if not self.wait(timeout):
            logger.warning("Playback threads did not stop cleanly")
