"""
Discrete Fourier transforms used by the spectral analyzer.

Two interchangeable backends are available:
    "custom": iterative radix-2 Cooley-Tukey (bit reversal + butterflies)
    "scipy":  scipy.fft.fft

Both operate along the last axis, so a whole stack of frames
(num_frames x window_size) can be transformed in one call.
"""

import numpy as np
import scipy.fft

FFT_BACKENDS = ("scipy", "custom")

FFT_DETAILS = {
    "scipy": "Optimized pocketfft transform from scipy.fft",
    "custom": "In-place radix-2 Cooley-Tukey FFT algorithm",
}


def next_power_of_two(n):
    """Smallest power of two >= n (1 for n <= 1)"""
    size = 1
    while size < n:
        size *= 2
    return size


def bit_reverse_indices(n):
    """
    Permutation that reorders n = 2**k inputs for an iterative FFT.

    Index i maps to the integer whose k-bit binary form is i reversed.
    """
    bits = n.bit_length() - 1
    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=np.int64)
    for _ in range(bits):
        reversed_indices = (reversed_indices << 1) | (indices & 1)
        indices = indices >> 1
    return reversed_indices


def pad_to_power_of_two(x):
    """Zero-pad the last axis of x up to the next power of two"""
    x = np.asarray(x)
    n = x.shape[-1]
    size = next_power_of_two(n)
    if size == n:
        return x
    pad_width = [(0, 0)] * (x.ndim - 1) + [(0, size - n)]
    return np.pad(x, pad_width)


def cooley_tukey_fft(x):
    """
    Radix-2 decimation-in-time FFT along the last axis.

    The input is zero-padded to a power of two, bit-reverse permuted,
    then combined with log2(N) butterfly passes. Each pass pairs
    elements half a block apart using twiddles e^{-2*pi*i*k/size}.

    Args:
        x: Real or complex array, shape (..., n)

    Returns:
        Complex array, shape (..., next_power_of_two(n))
    """
    data = pad_to_power_of_two(np.asarray(x, dtype=np.complex128))
    size = data.shape[-1]
    if size <= 1:
        return data.copy()

    data = data[..., bit_reverse_indices(size)]
    lead = data.shape[:-1]

    block = 2
    while block <= size:
        half = block // 2
        twiddles = np.exp(-2j * np.pi * np.arange(half) / block)

        blocks = data.reshape(lead + (size // block, block))
        top = blocks[..., :half].copy()
        bottom = blocks[..., half:] * twiddles
        blocks[..., :half] = top + bottom
        blocks[..., half:] = top - bottom

        data = blocks.reshape(lead + (size,))
        block *= 2

    return data


def scipy_fft(x):
    """Library transform with the same padding contract as cooley_tukey_fft"""
    data = pad_to_power_of_two(np.asarray(x, dtype=np.complex128))
    return scipy.fft.fft(data, axis=-1)


def fft(x, backend="scipy"):
    if backend == "custom":
        return cooley_tukey_fft(x)
    if backend == "scipy":
        return scipy_fft(x)
    raise ValueError(f"Unknown FFT backend '{backend}', expected one of {FFT_BACKENDS}")


def magnitude_spectrum(frames, backend="scipy"):
    """
    Magnitudes of the non-negative frequency bins.

    Args:
        frames: Windowed samples, shape (n,) or (num_frames, n)
        backend: "scipy" or "custom"

    Returns:
        Array of moduli, shape (..., N/2) where N is n padded to a
        power of two
    """
    spectrum = fft(frames, backend=backend)
    size = spectrum.shape[-1]
    return np.abs(spectrum[..., : max(1, size // 2)])
