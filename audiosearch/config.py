import os


class AudioConfig:
    """Configuration parameters for decoding and spectral analysis"""

    # Audio processing (never resampled, see decode_audio)
    SAMPLE_RATE = 44100
    MAX_DURATION_SEC = 20
    MAX_SAMPLES = SAMPLE_RATE * MAX_DURATION_SEC

    # Spectrogram parameters
    WINDOW_SIZE = 2048
    HOP_SIZE = 512

    # "scipy" or "custom"
    FFT_BACKEND = os.getenv("FFT_BACKEND", "scipy")


class PeakConfig:
    """Configuration for per-frame peak picking"""

    MIN_FREQ = 300
    MAX_FREQ = 12000

    MIN_MAGNITUDE = 0.001
    NEIGHBORHOOD = 3
    DOMINANCE_RATIO = 0.95

    TOP_PEAKS = 8


class HashConfig:
    """Configuration for landmark hashes"""

    FIELD_BITS = 16
    FIELD_MASK = 0xFFFF

    # No landmark
    EMPTY_HASH = 0


class StoreConfig:
    """Configuration for the redis fingerprint store"""

    REDIS_ADDR = os.getenv("REDIS_ADDR", "localhost:6379")
    REDIS_DB = int(os.getenv("REDIS_DB", "0"))
    SOCKET_TIMEOUT = 30

    SONGS_KEY = "songs"
    SONG_KEY_TEMPLATE = "song:{name}:hashes"

    # Members per SADD
    BATCH_SIZE = 5000


class MatchConfig:
    """Configuration for matching algorithm"""

    SIMILARITY_THRESHOLD = 0.6


class ServerConfig:
    """Configuration for the HTTP layer"""

    PORT = int(os.getenv("PORT", "8080"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MAX_CONTENT_LENGTH = 64 * 1024 * 1024
