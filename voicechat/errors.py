"""Error types raised at component boundaries of the voice chat pipeline."""


class VoiceChatError(Exception):
    """Base class for all voice chat errors."""


class DeviceError(VoiceChatError):
    """No usable audio device, or the hardware failed."""


class DevicePermissionError(DeviceError):
    """Access to the audio device was denied."""


class ChannelConnectionError(VoiceChatError):
    """Transport-level failure, including connection timeouts."""


class DecodeError(VoiceChatError):
    """Received audio could not be decoded."""


class GenericChannelError(VoiceChatError):
    """Unclassified transport error."""
