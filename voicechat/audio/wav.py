"""Canonical 16-bit PCM WAV encoding of in-memory audio."""

import logging
import struct
from typing import Sequence

import numpy as np

from ..models.audio import DecodedAudio
from ..models.events import AudioChunk

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
PCM_FORMAT = 1
BITS_PER_SAMPLE = 16

# RIFF/WAVE header with a single fmt and data chunk
_HEADER = struct.Struct('<4sI4s4sIHHIIHH4sI')


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples to signed 16-bit integers.

    Values are clamped to [-1, 1]; negatives are scaled by 32768, the rest by
    32767, and the result is truncated toward zero.
    """
    values = np.nan_to_num(np.asarray(samples, dtype=np.float64), nan=0.0)
    clipped = np.clip(values, -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype('<i2')


def wav_header(num_frames: int, num_channels: int, sample_rate: int) -> bytes:
    """Build the 44-byte header for a PCM16 WAV payload."""
    data_length = num_frames * num_channels * 2
    return _HEADER.pack(
        b'RIFF',
        36 + data_length,
        b'WAVE',
        b'fmt ',
        16,  # fmt chunk length
        PCM_FORMAT,
        num_channels,
        sample_rate,
        sample_rate * 2 * num_channels,  # byte rate
        num_channels * 2,  # block align
        BITS_PER_SAMPLE,
        b'data',
        data_length,
    )


def encode_wav(audio: DecodedAudio) -> bytes:
    """Encode decoded audio as a WAV byte buffer of ``44 + N*C*2`` bytes."""
    header = wav_header(audio.num_frames, audio.num_channels, audio.sample_rate)
    # (frames, channels) in C order is already frame-interleaved
    payload = float_to_pcm16(audio.samples).tobytes(order='C')
    return header + payload


def chunks_to_audio(chunks: Sequence[AudioChunk]) -> DecodedAudio:
    """Join raw float32 chunk payloads into one buffer.

    Args:
        chunks: Chunks in capture order; all must share sample rate and channels

    Returns:
        DecodedAudio holding every captured frame
    """
    if not chunks:
        raise ValueError("No chunks to join")

    sample_rate = chunks[0].sample_rate
    channels = chunks[0].channels
    for chunk in chunks:
        if chunk.sample_rate != sample_rate or chunk.channels != channels:
            raise ValueError(
                f"Chunk {chunk.chunk_id} format {chunk.sample_rate}Hz/{chunk.channels}ch "
                f"does not match {sample_rate}Hz/{channels}ch"
            )

    raw = b''.join(chunk.audio_data for chunk in chunks)
    samples = np.frombuffer(raw, dtype='<f4').reshape(-1, channels)
    logger.debug(f"Joined {len(chunks)} chunks into {samples.shape[0]} frames")
    return DecodedAudio(samples=samples, sample_rate=sample_rate)
