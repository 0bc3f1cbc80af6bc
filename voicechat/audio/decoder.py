"""Decode received audio of any libsndfile-supported format."""

import io
import logging

import soundfile as sf

from ..errors import DecodeError
from ..models.audio import DecodedAudio

logger = logging.getLogger(__name__)


def decode_audio(data: bytes) -> DecodedAudio:
    """Decode an encoded audio byte buffer into float samples.

    The container format is detected from the data itself.

    Raises:
        DecodeError: If the buffer is empty or not a recognised audio format
    """
    if not data:
        raise DecodeError("Empty audio buffer")

    try:
        samples, sample_rate = sf.read(io.BytesIO(bytes(data)), dtype='float32', always_2d=True)
    except (sf.SoundFileError, RuntimeError) as e:
        raise DecodeError(f"Unable to decode audio: {e}") from e

    logger.debug(f"Decoded {len(data)} bytes: {samples.shape[0]} frames, "
                 f"{samples.shape[1]} channels at {sample_rate}Hz")
    return DecodedAudio(samples=samples, sample_rate=sample_rate)
