from audiosearch.config import AudioConfig, HashConfig
from audiosearch.audio_utils import decode_audio, generate_spectrogram, find_frame_peaks
from audiosearch.logging_config import setup_logger

# setting up logger
logger = setup_logger(__name__)


def create_hash(peaks, prev_peaks, frame_index):
    """
    Pack one frame's landmark into a 64-bit integer.

    Layout, most significant first:
        [63:48] strongest peak frequency
        [47:32] second peak frequency
        [31:16] frame index   | third peak frequency | 0
        [15:0]  prev0 ^ peak0 | 0                    | 0

    The first column applies when the previous frame had at least two
    peaks, the second when it did not but this frame has a third peak.

    Args:
        peaks: Peak frequencies (Hz) of this frame, strongest first
        prev_peaks: Peak frequencies of the previous frame with peaks
        frame_index: Index of this frame in the clip

    Returns:
        hash_value: Packed landmark, or HashConfig.EMPTY_HASH when the
            frame has fewer than two peaks
    """
    if len(peaks) < 2:
        return HashConfig.EMPTY_HASH

    mask = HashConfig.FIELD_MASK
    bits = HashConfig.FIELD_BITS

    hash_value = (int(peaks[0]) & mask) << (3 * bits)
    hash_value |= (int(peaks[1]) & mask) << (2 * bits)

    if len(prev_peaks) >= 2:
        hash_value |= (frame_index & mask) << bits
        hash_value |= (int(prev_peaks[0]) ^ int(peaks[0])) & mask
    elif len(peaks) >= 3:
        hash_value |= (int(peaks[2]) & mask) << bits

    return hash_value


def generate_hashes(frame_peaks):
    """
    Collapse per-frame peaks into a fingerprint.

    The history passed to create_hash is the most recent frame that had
    any peaks at all; frames without peaks leave it untouched.

    Args:
        frame_peaks: One list of peak frequencies per frame

    Returns:
        hashes: frozenset of non-zero landmark hashes
    """
    hashes = set()
    prev_peaks = []

    for frame_index, peaks in enumerate(frame_peaks):
        if not peaks:
            continue

        hash_value = create_hash(peaks, prev_peaks, frame_index)
        if hash_value != HashConfig.EMPTY_HASH:
            hashes.add(hash_value)
        prev_peaks = peaks

    return frozenset(hashes)


def fingerprint_samples(audio, backend=None):
    """
    Fingerprint an already decoded mono sample stream.

    Returns:
        hashes: frozenset of landmark hashes
        frame_peaks: Peaks of every analysed frame
    """
    spec = generate_spectrogram(audio, backend=backend)
    frame_peaks = find_frame_peaks(spec)
    hashes = generate_hashes(frame_peaks)
    return hashes, frame_peaks


def fingerprint_audio(data, backend=None, save_plot=None):
    """
    Complete pipeline: decode → spectrogram → peaks → hashes

    Args:
        data: Raw audio file bytes (WAV or compressed)
        backend: FFT backend ("scipy" or "custom")
        save_plot: Path to save a constellation plot (optional)

    Returns:
        hashes: frozenset of landmark hashes
        metadata: Dict with num_samples, num_frames, num_hashes, duration

    Raises:
        DecodeError, TooShortError
    """
    audio = decode_audio(data)
    hashes, frame_peaks = fingerprint_samples(audio, backend=backend)

    if save_plot:
        from audiosearch.visualize import visualize_constellation

        visualize_constellation(frame_peaks, save_path=save_plot)

    duration = len(audio) / AudioConfig.SAMPLE_RATE
    metadata = {
        "num_samples": len(audio),
        "num_frames": len(frame_peaks),
        "num_peaks": sum(len(p) for p in frame_peaks),
        "num_hashes": len(hashes),
        "duration": duration,
    }

    if not hashes:
        logger.warning("⚠ Fingerprint is empty, no frame had two qualifying peaks")

    logger.info(
        f"✓ Fingerprint complete: {metadata['num_hashes']} hashes from "
        f"{metadata['num_frames']} frames ({duration:.2f}s)"
    )

    return hashes, metadata
