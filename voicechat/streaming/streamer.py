"""Outbound audio streaming: chunk topic -> WAV frames -> transport channel."""

import logging
import threading
import queue
import time
from typing import List, Optional, NamedTuple

from pubsub import pub

from ..audio.wav import chunks_to_audio, encode_wav
from ..models.audio import StreamerStats
from ..models.events import AudioChunk
from ..transport.channel import TransportChannel

logger = logging.getLogger(__name__)


class FlushTask(NamedTuple):
    """Chunks to encode into one WAV frame."""
    chunks: List[AudioChunk]
    is_final: bool


class AudioStreamer:
    """Encodes captured chunks and sends them over the channel in capture order.

    A single worker drains an unbounded queue, so a slow channel makes frames
    wait rather than disappear.
    """

    def __init__(self,
                 channel: TransportChannel,
                 topic: str = "voicechat.audio",
                 chunks_per_frame: int = 1):
        """Initialize the streamer and subscribe it to ``topic``.

        Args:
            channel: Channel that receives the encoded frames
            topic: Pub/sub topic carrying AudioChunk events
            chunks_per_frame: Chunks per WAV frame; 0 sends one frame when the recording ends
        """
        self.channel = channel
        self.topic = topic
        self.chunks_per_frame = chunks_per_frame

        # Accumulated chunks since the last flush
        self.pending_chunks: List[AudioChunk] = []
        self._pending_lock = threading.Lock()

        self.task_queue: "queue.Queue[Optional[FlushTask]]" = queue.Queue()
        self.shutdown_event = threading.Event()

        self.chunks_received = 0
        self.frames_sent = 0
        self.frames_failed = 0
        self.bytes_sent = 0

        self.worker_thread = threading.Thread(target=self._worker_loop, daemon=True)
        self.worker_thread.name = "AudioStreamerWorker"
        self.worker_thread.start()

        pub.subscribe(self.on_audio_chunk, self.topic)
        logger.info(f"AudioStreamer subscribed to '{topic}' ({chunks_per_frame} chunks/frame)")

    def on_audio_chunk(self, event: AudioChunk) -> None:
        """Accumulate a chunk and queue a flush when enough have arrived."""
        if self.shutdown_event.is_set():
            logger.warning(f"Streamer shut down; chunk {event.chunk_id} not sent")
            return

        with self._pending_lock:
            self.chunks_received += 1
            self.pending_chunks.append(event)

            should_flush_target = (self.chunks_per_frame > 0
                                   and len(self.pending_chunks) >= self.chunks_per_frame)
            if not (should_flush_target or event.final):
                return

            task = FlushTask(chunks=self.pending_chunks, is_final=event.final)
            self.pending_chunks = []

        logger.debug(f"Queueing flush of {len(task.chunks)} chunks (final={task.is_final}); "
                     f"queue size {self.task_queue.qsize()}")
        self.task_queue.put(task)

    def _worker_loop(self) -> None:
        """Encode and send queued flushes until the sentinel arrives."""
        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    logger.debug("Streamer worker received sentinel, exiting.")
                    break
                self._send_task(task)
            except Exception as e:
                self.frames_failed += 1
                logger.error(f"Failed to stream audio frame: {e}", exc_info=True)
            finally:
                self.task_queue.task_done()

    def _send_task(self, task: FlushTask) -> None:
        if not any(chunk.audio_data for chunk in task.chunks):
            logger.debug("Skipping flush with no audio")
            return

        wav_bytes = encode_wav(chunks_to_audio(task.chunks))
        if self.channel.send_audio_frame(wav_bytes):
            self.frames_sent += 1
            self.bytes_sent += len(wav_bytes)
            logger.debug(f"Sent frame of {len(wav_bytes)} bytes "
                         f"({task.chunks[0].chunk_id}..{task.chunks[-1].chunk_id})")
        else:
            self.frames_failed += 1
            logger.warning(f"Channel refused frame of {len(wav_bytes)} bytes; "
                           f"{self.frames_failed} frames not delivered")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued frame has been handed to the channel.

        Returns:
            True if the queue drained within ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self.task_queue.all_tasks_done:
            while self.task_queue.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self.task_queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self, timeout: float = 5.0) -> bool:
        """Unsubscribe, send what is queued and stop the worker.

        Returns:
            True if the worker exited within ``timeout``
        """
        if self.shutdown_event.is_set():
            return True
        self.shutdown_event.set()
        pub.unsubscribe(self.on_audio_chunk, self.topic)

        self.task_queue.put(None)
        self.worker_thread.join(timeout=timeout)
        if self.worker_thread.is_alive():
            logger.warning("Streamer worker did not exit in time")
            return False
        logger.info(f"AudioStreamer shut down: {self.frames_sent} frames sent, "
                    f"{self.frames_failed} failed")
        return True

    def get_stats(self) -> StreamerStats:
        return StreamerStats(
            chunks_received=self.chunks_received,
            frames_sent=self.frames_sent,
            frames_failed=self.frames_failed,
            pending_frames=self.task_queue.qsize(),
            bytes_sent=self.bytes_sent,
        )
