"""Audio capture, encoding and playback."""

from .capture import AudioCapture
from .audio_pub import AudioPublisher
from .decoder import decode_audio
from .playback import AudioPlayer
from .wav import encode_wav, chunks_to_audio, float_to_pcm16

__all__ = [
    'AudioCapture',
    'AudioPublisher',
    'AudioPlayer',
    'decode_audio',
    'encode_wav',
    'chunks_to_audio',
    'float_to_pcm16',
]
