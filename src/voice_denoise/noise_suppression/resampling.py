"""Sample-rate adaptation between the pipeline and backend native rates."""

from math import gcd

import numpy as np
from scipy import signal

from .logging_utils import get_logger
from .models import AudioBuffer

logger = get_logger(__name__)

# Matches the Kaiser design scipy.signal.resample_poly uses by default
_KAISER_BETA = 5.0
_HALF_LENGTH_PER_RATE = 10


def _reduced_ratio(source_rate: int, target_rate: int) -> tuple[int, int]:
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError(f"Sample rates must be positive: {source_rate} -> {target_rate}")
    divisor = gcd(source_rate, target_rate)
    return target_rate // divisor, source_rate // divisor


def resampled_length(frames: int, source_rate: int, target_rate: int) -> int:
    """``ceil(frames * target_rate / source_rate)`` in exact integer arithmetic."""
    return -(-frames * target_rate // source_rate)


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Band-limited resampling of a whole signal.

    Args:
        samples: Mono float samples
        source_rate: Rate of ``samples``
        target_rate: Desired rate

    Returns:
        float32 samples of length ``ceil(n * target_rate / source_rate)``
    """
    data = np.asarray(samples, dtype=np.float32)
    if source_rate == target_rate:
        return data.copy()

    up, down = _reduced_ratio(source_rate, target_rate)
    length = resampled_length(len(data), source_rate, target_rate)
    if len(data) == 0:
        return np.zeros(0, dtype=np.float32)

    converted = signal.resample_poly(data, up, down).astype(np.float32)
    if len(converted) < length:
        converted = np.pad(converted, (0, length - len(converted)))
    return converted[:length]


def resample_buffer(buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
    """Resample every channel of ``buffer``; returns it unchanged at the same rate."""
    if buffer.sample_rate == target_rate:
        return buffer
    channels = [resample(buffer.channel(c), buffer.sample_rate, target_rate)
                for c in range(buffer.channel_count)]
    return AudioBuffer(np.stack(channels), target_rate)


class StreamingResampler:
    """Polyphase resampler that carries filter state across blocks.

    Feeding a signal in any block partition yields the same total length as
    resampling it whole: ``ceil(total * target / source)`` samples.
    """

    def __init__(self, source_rate: int, target_rate: int) -> None:
        self.source_rate = source_rate
        self.target_rate = target_rate
        self.up, self.down = _reduced_ratio(source_rate, target_rate)
        self.passthrough = source_rate == target_rate

        if self.passthrough:
            self._taps = np.ones(1)
        else:
            max_rate = max(self.up, self.down)
            half_length = _HALF_LENGTH_PER_RATE * max_rate
            self._taps = signal.firwin(
                2 * half_length + 1, 1.0 / max_rate, window=("kaiser", _KAISER_BETA)
            ) * self.up
        self.reset()

    @property
    def latency(self) -> float:
        """Group delay of the anti-aliasing filter, in output samples."""
        if self.passthrough:
            return 0.0
        return (len(self._taps) - 1) / 2 / self.down

    def reset(self) -> None:
        self._state = np.zeros(len(self._taps) - 1)
        self._position = 0  # samples seen at the upsampled rate

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Resample the next block of a continuous stream.

        Filter state carries across calls, so concatenated outputs match a
        whole-signal conversion apart from the filter delay.

        Args:
            block: Next input samples at the source rate, any length

        Returns:
            Output samples at the target rate produced so far
        """
        data = np.asarray(block, dtype=np.float64)
        if self.passthrough:
            return data.astype(np.float32)

        upsampled = np.zeros(len(data) * self.up)
        upsampled[:: self.up] = data
        filtered, self._state = signal.lfilter(self._taps, 1.0, upsampled, zi=self._state)

        first = (-self._position) % self.down
        self._position += len(upsampled)
        return filtered[first:: self.down].astype(np.float32)
