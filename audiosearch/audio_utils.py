import io
import struct
import logging
import warnings
import numpy as np
from scipy.ndimage import maximum_filter
from scipy.signal import windows

from audiosearch.config import AudioConfig as Config, PeakConfig
from audiosearch.errors import DecodeError, TooShortError
from audiosearch.fft import magnitude_spectrum
from audiosearch.logging_config import setup_logger

logger = setup_logger(__name__)

WAV_HEADER_SIZE = 44
WAV_FORMAT_PCM = 1


def decode_audio(data, max_samples=None):
    """
    Decode an audio payload into a mono sample stream.

    The container is picked from the leading signature: "RIFF" goes to
    the WAV parser, anything else to the compressed decoder.

    The declared sample rate is never applied. Every downstream frequency
    computation assumes Config.SAMPLE_RATE, so fingerprints of clips
    recorded at another rate are not comparable.

    Multi-channel audio is downmixed by averaging all channels of a frame.

    Args:
        data: Raw file bytes
        max_samples: Truncate the output to this many samples
            (default: Config.MAX_SAMPLES)

    Returns:
        audio: float64 numpy array with values in [-1.0, 1.0]

    Raises:
        DecodeError: unsupported or malformed payload
        TooShortError: fewer than Config.WINDOW_SIZE samples decoded
    """
    if not data:
        raise DecodeError("empty audio payload")

    max_samples = Config.MAX_SAMPLES if max_samples is None else max_samples

    if data[:4] == b"RIFF":
        audio = decode_wav(data, max_samples)
        source = "wav"
    else:
        audio = decode_compressed(data, max_samples)
        source = "compressed"

    if len(audio) < Config.WINDOW_SIZE:
        raise TooShortError(
            f"audio too short: {len(audio)} samples, need at least {Config.WINDOW_SIZE}"
        )

    logger.info(
        f"✓ Decoded {source} audio: {len(audio)} samples "
        f"({len(audio) / Config.SAMPLE_RATE:.2f}s at {Config.SAMPLE_RATE} Hz)"
    )
    return audio


def parse_wav_header(data):
    """
    Read the fixed 44-byte canonical WAV header.

    Returns:
        header: dict with audio_format, channels, sample_rate, bits_per_sample
    """
    if len(data) < WAV_HEADER_SIZE:
        raise DecodeError(
            f"invalid WAV format: header needs {WAV_HEADER_SIZE} bytes, got {len(data)}"
        )
    if data[0:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise DecodeError("invalid WAV format: missing RIFF/WAVE signature")

    audio_format, channels, sample_rate = struct.unpack_from("<HHI", data, 20)
    (bits_per_sample,) = struct.unpack_from("<H", data, 34)

    return {
        "audio_format": audio_format,
        "channels": channels,
        "sample_rate": sample_rate,
        "bits_per_sample": bits_per_sample,
    }


def decode_wav(data, max_samples):
    """
    Decode 8-bit unsigned or 16-bit signed linear PCM.

    Samples start right after the 44-byte header. A trailing partial
    frame is dropped.
    """
    header = parse_wav_header(data)

    if header["audio_format"] != WAV_FORMAT_PCM:
        raise DecodeError(
            f"unsupported WAV audio format {header['audio_format']}, only PCM (1) is supported"
        )
    if header["channels"] < 1:
        raise DecodeError("invalid WAV format: channel count is 0")

    bits = header["bits_per_sample"]
    channels = header["channels"]

    if header["sample_rate"] != Config.SAMPLE_RATE:
        logger.warning(
            f"Sample rate is {header['sample_rate']}, analysing as {Config.SAMPLE_RATE}"
        )

    body = data[WAV_HEADER_SIZE:]
    if bits == 16:
        frame_bytes = 2 * channels
        usable = min(len(body) // frame_bytes, max_samples) * frame_bytes
        raw = np.frombuffer(body[:usable], dtype="<i2").astype(np.float64)
        audio = raw / 32768.0
    elif bits == 8:
        frame_bytes = channels
        usable = min(len(body) // frame_bytes, max_samples) * frame_bytes
        raw = np.frombuffer(body[:usable], dtype=np.uint8).astype(np.float64)
        audio = (raw - 128.0) / 128.0
    else:
        raise DecodeError(f"unsupported WAV bit depth {bits}, expected 8 or 16")

    audio = audio.reshape(-1, channels)
    return to_mono(audio)


def decode_compressed(data, max_samples):
    """
    Decode a compressed container (e.g. MP3) to normalized PCM via librosa.

    sr=None keeps the native rate so nothing is resampled. The native rate
    is read up front so librosa stops after max_samples frames instead of
    decoding the whole stream.
    """
    import librosa
    import soundfile as sf

    try:
        native_rate = sf.info(io.BytesIO(data)).samplerate
        # one spare frame so float rounding never drops the last sample
        duration = (max_samples + 1) / native_rate
        with warnings.catch_warnings():
            # librosa warns before falling back to audioread
            warnings.simplefilter("ignore")
            audio, sr = librosa.load(
                io.BytesIO(data), sr=None, mono=False, duration=duration
            )
    except Exception as exc:
        raise DecodeError(f"could not decode compressed audio: {exc}") from exc

    # librosa returns (channels, samples)
    audio = np.asarray(audio[..., :max_samples], dtype=np.float64)
    if audio.ndim > 1:
        audio = to_mono(audio.T)

    if sr != Config.SAMPLE_RATE:
        logger.warning(f"Sample rate is {sr}, analysing as {Config.SAMPLE_RATE}")

    return np.clip(audio, -1.0, 1.0)


def to_mono(frames):
    """Average a (num_frames, channels) array down to one channel"""
    if frames.shape[1] == 1:
        return frames[:, 0].copy()
    return frames.mean(axis=1)


def hann_window(n):
    """Symmetric Hann taper: 0.5 * (1 - cos(2*pi*i / (n - 1)))"""
    return windows.hann(n, sym=True)


def frame_audio(audio, window_size=None, hop_size=None):
    """
    Slice audio into overlapping frames.

    Returns:
        frames: Read-only (num_frames, window_size) view into audio
    """
    window_size = window_size or Config.WINDOW_SIZE
    hop_size = hop_size or Config.HOP_SIZE

    audio = np.ascontiguousarray(audio, dtype=np.float64)
    if len(audio) < window_size:
        raise TooShortError(
            f"audio too short: {len(audio)} samples, need at least {window_size}"
        )

    num_frames = 1 + (len(audio) - window_size) // hop_size
    strides = (audio.strides[0] * hop_size, audio.strides[0])
    return np.lib.stride_tricks.as_strided(
        audio, shape=(num_frames, window_size), strides=strides, writeable=False
    )


def generate_spectrogram(audio, backend=None):
    """
    Windowed magnitude spectra of every frame.

    Args:
        audio: Mono sample stream
        backend: FFT backend, "scipy" or "custom" (default: Config.FFT_BACKEND)

    Returns:
        spec: (num_frames, N/2) magnitude array
    """
    backend = backend or Config.FFT_BACKEND
    frames = frame_audio(audio)
    windowed = frames * hann_window(frames.shape[1])
    spec = magnitude_spectrum(windowed, backend=backend)

    logger.info(
        f"✓ Spectrogram generated: {spec.shape[0]} frames × {spec.shape[1]} bins ({backend} FFT)"
    )
    return spec


def bin_frequencies(num_bins, sample_rate=None):
    """
    Integer Hz of each retained bin.

    num_bins is the non-negative half of an N-point transform, so bin i
    sits at i * sample_rate / N with N = 2 * num_bins.
    """
    sample_rate = sample_rate or Config.SAMPLE_RATE
    return (np.arange(num_bins) * sample_rate) // (2 * num_bins)


def peak_mask(spec):
    """
    Boolean mask of bins that qualify as peaks.

    A bin qualifies when its magnitude is above the floor and no other bin
    within +/- PeakConfig.NEIGHBORHOOD reaches DOMINANCE_RATIO of it.
    Works on a single spectrum or a (num_frames, num_bins) stack.
    """
    spec = np.asarray(spec, dtype=np.float64)
    width = 2 * PeakConfig.NEIGHBORHOOD + 1
    footprint = np.ones(width, dtype=bool)
    footprint[PeakConfig.NEIGHBORHOOD] = False
    if spec.ndim == 2:
        footprint = footprint[np.newaxis, :]

    # Out-of-range neighbors count as silence
    neighbor_max = maximum_filter(spec, footprint=footprint, mode="constant", cval=0.0)

    return (spec > PeakConfig.MIN_MAGNITUDE) & (
        neighbor_max < spec * PeakConfig.DOMINANCE_RATIO
    )


def find_peaks(spectrum, sample_rate=None, mask=None):
    """
    Strongest peak frequencies of one spectrum.

    Args:
        spectrum: Magnitudes of bins 0..N/2-1
        sample_rate: Rate used to convert bins to Hz
        mask: Precomputed peak_mask row (optional)

    Returns:
        peaks: List of at most PeakConfig.TOP_PEAKS integer frequencies in
            [MIN_FREQ, MAX_FREQ), strongest first
    """
    spectrum = np.asarray(spectrum, dtype=np.float64)
    freqs = bin_frequencies(len(spectrum), sample_rate)

    if mask is None:
        mask = peak_mask(spectrum)
    in_band = (freqs >= PeakConfig.MIN_FREQ) & (freqs < PeakConfig.MAX_FREQ)
    candidates = np.flatnonzero(mask & in_band)

    if len(candidates) == 0:
        return []

    order = np.argsort(-spectrum[candidates], kind="stable")
    top = candidates[order[: PeakConfig.TOP_PEAKS]]
    return [int(f) for f in freqs[top]]


def find_frame_peaks(spec, sample_rate=None):
    """
    Run find_peaks on every frame of a spectrogram.

    Returns:
        frame_peaks: List (one entry per frame) of peak frequency lists
    """
    masks = peak_mask(spec)
    frame_peaks = [
        find_peaks(spec[i], sample_rate, mask=masks[i]) for i in range(spec.shape[0])
    ]

    total = sum(len(p) for p in frame_peaks)
    logger.info(f"✓ Peaks found: {total} across {len(frame_peaks)} frames")
    if logger.isEnabledFor(logging.DEBUG):
        empty = sum(1 for p in frame_peaks if not p)
        logger.debug(f"  Frames without peaks: {empty}")

    return frame_peaks
