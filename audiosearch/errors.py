class AudioSearchError(Exception):
    """Base class for all fingerprinting and matching failures"""


class DecodeError(AudioSearchError):
    """Unrecognized signature, malformed header or unsupported sample format"""


class TooShortError(DecodeError):
    """Fewer usable samples than one analysis window"""


class StoreError(AudioSearchError):
    """A key-value store operation failed or was cancelled"""
