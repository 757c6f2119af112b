"""Signal analysis: level metrics, SNR estimate and spectrogram.

The spectrogram uses a hand-written radix-2 FFT whose twiddle tables,
bit-reversal permutations and analysis windows are kept in an explicit
``FFTCache`` owned by the caller.
"""

import math
from typing import Optional

import numpy as np

from .config import (
    SNR_MIN_SAMPLES,
    SNR_NOISE_FRACTION,
    SNR_SIGNAL_FRACTION,
    SNR_SILENT_NOISE_DB,
    SPECTROGRAM_FFT_SIZE,
    SPECTROGRAM_FLOOR_DB,
    SPECTROGRAM_HOP_SIZE,
    WAVEFORM_DEFAULT_WIDTH,
)
from .logging_utils import get_logger
from .models import AudioBuffer, Metrics, Spectrogram

logger = get_logger(__name__)


def to_db(value: float) -> float:
    """Linear amplitude to dB, ``-inf`` for zero."""
    if value <= 0:
        return -math.inf
    return 20.0 * math.log10(value)


def format_db(value: float, precision: int = 1) -> str:
    """Format a dB value for display, using the infinity sign for silence."""
    if math.isinf(value):
        return "-∞" if value < 0 else "∞"
    return f"{value:.{precision}f}"


def compute_rms(samples: np.ndarray) -> tuple[float, float]:
    """Return ``(linear, db)`` RMS. Empty input gives ``(0.0, -inf)``."""
    if len(samples) == 0:
        return 0.0, -math.inf
    data = np.asarray(samples, dtype=np.float64)
    linear = float(np.sqrt(np.mean(data * data)))
    return linear, to_db(linear)


def compute_peak(samples: np.ndarray) -> float:
    """Largest absolute sample, 0 for empty input."""
    if len(samples) == 0:
        return 0.0
    return float(np.max(np.abs(samples)))


def compute_crest_factor(peak: float, rms: float) -> float:
    """Peak-to-RMS ratio in dB, 0 when either level is not positive."""
    if peak <= 0 or rms <= 0:
        return 0.0
    return 20.0 * math.log10(peak / rms)


def estimate_snr(samples: np.ndarray) -> float:
    """Heuristic SNR from the quietest 10% and loudest 50% of samples.

    Returns 0 for fewer than 20 samples and 60 when the quiet share is silent.
    """
    n = len(samples)
    if n < SNR_MIN_SAMPLES:
        return 0.0

    ordered = np.sort(np.abs(np.asarray(samples, dtype=np.float64)))
    noise_end = int(math.floor(n * SNR_NOISE_FRACTION))
    signal_start = int(math.floor(n * SNR_SIGNAL_FRACTION))

    noise = ordered[:noise_end]
    loud = ordered[signal_start:]
    noise_rms = math.sqrt(float(np.mean(noise * noise)))
    signal_rms = math.sqrt(float(np.mean(loud * loud)))

    if not noise_rms > 0:
        return SNR_SILENT_NOISE_DB
    if signal_rms <= 0:
        return -math.inf
    return 20.0 * math.log10(signal_rms / noise_rms)


def compute_metrics(buffer: AudioBuffer) -> Metrics:
    """
    Compute level metrics for the first channel of a buffer.

    Args:
        buffer: Audio to measure

    Returns:
        Metrics with RMS, peak, crest factor and the SNR estimate
    """
    samples = buffer.channel(0)
    rms, rms_db = compute_rms(samples)
    peak = compute_peak(samples)
    return Metrics(
        rms=rms,
        rms_db=rms_db,
        peak=peak,
        peak_db=to_db(peak),
        crest_factor_db=compute_crest_factor(peak, rms),
        snr_db=estimate_snr(samples),
    )


class FFTCache:
    """Per-size tables for the radix-2 FFT and the Hann analysis window."""

    def __init__(self) -> None:
        self._twiddles: dict[int, tuple[np.ndarray, np.ndarray]] = {}
        self._permutations: dict[int, np.ndarray] = {}
        self._windows: dict[int, np.ndarray] = {}

    def twiddles(self, size: int) -> tuple[np.ndarray, np.ndarray]:
        """``cos`` and ``-sin`` of ``2*pi*k/size`` for ``k < size/2``."""
        table = self._twiddles.get(size)
        if table is None:
            angles = -2.0 * np.pi * np.arange(size // 2) / size
            table = (np.cos(angles), np.sin(angles))
            self._twiddles[size] = table
        return table

    def bit_reversal(self, size: int) -> np.ndarray:
        """
        Index permutation that puts FFT input into bit-reversed order.

        Args:
            size: Power-of-two transform length

        Returns:
            Array ``p`` where ``p[i]`` is ``i`` with its bits reversed
        """
        perm = self._permutations.get(size)
        if perm is None:
            bits = size.bit_length() - 1
            indices = np.arange(size)
            perm = np.zeros(size, dtype=np.int64)
            for bit in range(bits):
                perm |= ((indices >> bit) & 1) << (bits - 1 - bit)
            self._permutations[size] = perm
        return perm

    def hann(self, size: int) -> np.ndarray:
        """
        Symmetric Hann window, ``0.5 * (1 - cos(2*pi*i / (size - 1)))``.

        Args:
            size: Window length

        Returns:
            Window of ``size`` samples
        """
        window = self._windows.get(size)
        if window is None:
            i = np.arange(size)
            window = 0.5 * (1.0 - np.cos(2.0 * np.pi * i / (size - 1)))
            self._windows[size] = window
        return window

    def clear(self) -> None:
        """Drop every cached table."""
        self._twiddles.clear()
        self._permutations.clear()
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._twiddles)


def _check_power_of_two(size: int) -> None:
    if size < 2 or size & (size - 1):
        raise ValueError(f"FFT size must be a power of two >= 2, got {size}")


def fft_rows(re: np.ndarray, im: np.ndarray, cache: FFTCache) -> tuple[np.ndarray, np.ndarray]:
    """Iterative radix-2 Cooley-Tukey FFT applied to each row.

    Args:
        re: Real parts, shape ``(rows, size)``
        im: Imaginary parts, same shape
        cache: Table cache

    Returns:
        ``(re, im)`` of the transform
    """
    size = re.shape[-1]
    _check_power_of_two(size)

    perm = cache.bit_reversal(size)
    re = np.array(re[..., perm], dtype=np.float64)
    im = np.array(im[..., perm], dtype=np.float64)
    rows = re.shape[0]
    tw_re, tw_im = cache.twiddles(size)

    span = 2
    while span <= size:
        half = span // 2
        stride = size // span
        w_re = tw_re[::stride][:half]
        w_im = tw_im[::stride][:half]

        re_v = re.reshape(rows, size // span, span)
        im_v = im.reshape(rows, size // span, span)
        a_re = re_v[..., :half].copy()
        a_im = im_v[..., :half].copy()
        b_re = re_v[..., half:]
        b_im = im_v[..., half:]

        t_re = w_re * b_re - w_im * b_im
        t_im = w_re * b_im + w_im * b_re

        re_v[..., :half] = a_re + t_re
        im_v[..., :half] = a_im + t_im
        re_v[..., half:] = a_re - t_re
        im_v[..., half:] = a_im - t_im
        span *= 2

    return re, im


def compute_spectrogram(
    samples: np.ndarray,
    sample_rate: int,
    fft_size: int = SPECTROGRAM_FFT_SIZE,
    hop_size: int = SPECTROGRAM_HOP_SIZE,
    cache: Optional[FFTCache] = None,
) -> Spectrogram:
    """Hann-windowed magnitude spectrogram in dB, clamped to [-100, 0].

    Args:
        samples: Mono samples
        sample_rate: Sample rate in Hz, used for bin frequencies
        fft_size: Power-of-two transform length
        hop_size: Samples between consecutive slices
        cache: Table cache; a private one is used when omitted

    Returns:
        Spectrogram with ``max(0, floor((N - fft_size) / hop_size) + 1)`` slices
    """
    _check_power_of_two(fft_size)
    if hop_size <= 0:
        raise ValueError(f"Hop size must be positive, got {hop_size}")
    cache = cache or FFTCache()

    bins = fft_size >> 1
    n = len(samples)
    slices = max(0, (n - fft_size) // hop_size + 1)
    if slices == 0:
        return Spectrogram(np.zeros((0, bins), dtype=np.float32), sample_rate, fft_size, hop_size)

    data = np.asarray(samples, dtype=np.float64)
    starts = np.arange(slices) * hop_size
    frames = data[starts[:, np.newaxis] + np.arange(fft_size)] * cache.hann(fft_size)

    re, im = fft_rows(frames, np.zeros_like(frames), cache)
    magnitude = np.sqrt(re[:, :bins] ** 2 + im[:, :bins] ** 2) / fft_size

    with np.errstate(divide="ignore"):
        db = 20.0 * np.log10(magnitude)
    db = np.clip(np.nan_to_num(db, neginf=SPECTROGRAM_FLOOR_DB), SPECTROGRAM_FLOOR_DB, 0.0)

    logger.trace(f"📊 Spectrogram: {slices} slices x {bins} bins")
    return Spectrogram(db.astype(np.float32), sample_rate, fft_size, hop_size)


def waveform_envelope(samples: np.ndarray, width: int = WAVEFORM_DEFAULT_WIDTH) -> np.ndarray:
    """Per-column absolute peak for drawing a waveform ``width`` columns wide."""
    if width <= 0 or len(samples) == 0:
        return np.zeros(max(width, 0), dtype=np.float32)
    edges = np.linspace(0, len(samples), width + 1).astype(np.int64)
    magnitude = np.abs(np.asarray(samples, dtype=np.float32))
    envelope = np.zeros(width, dtype=np.float32)
    for column in range(width):
        start, end = edges[column], edges[column + 1]
        if end > start:
            envelope[column] = magnitude[start:end].max()
    return envelope
