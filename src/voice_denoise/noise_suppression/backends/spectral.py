"""Spectral/statistical noise suppressor.

Streaming Wiener filter in the STFT domain: a noise power spectrum is
estimated from the first frames, then tracked in each bin only while that
bin shows no speech.
Frames are analysed with a square-root Hann window at 50% overlap and
resynthesised by overlap-add, which adds one frame of delay.
"""

from typing import Optional

import numpy as np

from ..config import (
    SPECTRAL_FRAME_LENGTH,
    SPECTRAL_NOISE_INIT_FRAMES,
    SPECTRAL_PRESENCE_RATIO,
    SPECTRAL_SAMPLE_RATE,
)
from ..logging_utils import get_logger
from ..models import BackendConfig
from .base import FrameBackend

logger = get_logger(__name__)


class SpectralDenoiser(FrameBackend):
    """Noise suppression using adaptive Wiener filtering and spectral flooring."""

    def __init__(
        self,
        sample_rate: int = SPECTRAL_SAMPLE_RATE,
        frame_length: int = SPECTRAL_FRAME_LENGTH,
        aggressiveness: float = 0.5,
    ) -> None:
        """Initialize the denoiser.

        Args:
            sample_rate: Audio sample rate in Hz
            frame_length: Samples per processed frame (also the hop size)
            aggressiveness: Noise reduction aggressiveness (0.0 to 1.0)
        """
        super().__init__("spectral", sample_rate, frame_length)
        self.aggressiveness = max(0.0, min(1.0, aggressiveness))

        # Noise estimate
        self.noise_psd: Optional[np.ndarray] = None
        self.noise_frames = 0
        self.adaptation_rate = 0.05

        # Wiener filter parameters
        self.beta = 0.01 + self.aggressiveness * 0.04  # Spectral floor
        self.gain_smoothing = 0.5
        self.previous_gain: Optional[np.ndarray] = None

        # STFT parameters
        self.window_size = 2 * frame_length
        n = np.arange(self.window_size)
        self.window = np.sqrt(0.5 * (1.0 - np.cos(2.0 * np.pi * n / self.window_size)))

        self.reset()

    def reset(self) -> None:
        """Forget the noise estimate and the overlap-add state."""
        self._history = np.zeros(self.frame_length)
        self._overlap = np.zeros(self.frame_length)
        self.noise_psd = None
        self.noise_frames = 0
        self.previous_gain = None
        self.last_noise_reduction_db = 0.0

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        """
        Denoise one hop of audio.

        Args:
            frame: ``frame_length`` new samples

        Returns:
            Enhanced samples, delayed by one frame by the overlap-add
        """
        data = self._check_frame(frame).astype(np.float64)

        block = np.concatenate([self._history, data]) * self.window
        self._history = data

        spectrum = np.fft.rfft(block)
        power = np.abs(spectrum) ** 2
        gain = self._update(power)

        enhanced = np.fft.irfft(spectrum * gain, self.window_size) * self.window
        output = self._overlap + enhanced[: self.frame_length]
        self._overlap = enhanced[self.frame_length :]
        return output.astype(np.float32)

    def _update(self, power: np.ndarray) -> np.ndarray:
        """
        Update the noise estimate and return per-bin gains.

        After the initial average, a bin's noise estimate moves only while
        its power stays below ``SPECTRAL_PRESENCE_RATIO`` times the estimate,
        so a sustained tone never becomes part of the noise floor.

        Args:
            power: Power spectrum of the current analysis block

        Returns:
            Gains in ``[beta, 1]`` for each rfft bin
        """
        if self.noise_psd is None:
            self.noise_psd = power.copy()
            self.noise_frames = 1
        elif self.noise_frames < SPECTRAL_NOISE_INIT_FRAMES:
            self.noise_frames += 1
            self.noise_psd += (power - self.noise_psd) / self.noise_frames
        else:
            absent = power < SPECTRAL_PRESENCE_RATIO * self.noise_psd
            self.noise_psd[absent] += self.adaptation_rate * (power - self.noise_psd)[absent]

        speech_prob = self._estimate_speech_presence(power, self.noise_psd)
        gain = self._calculate_wiener_gain(self._estimate_prior_snr(power, self.noise_psd), speech_prob)

        if self.previous_gain is not None:
            gain = self.gain_smoothing * self.previous_gain + (1 - self.gain_smoothing) * gain
        self.previous_gain = gain

        gain = np.maximum(gain, self.beta)
        mean_gain = float(np.mean(gain * gain))
        self.last_noise_reduction_db = -10.0 * np.log10(mean_gain + 1e-10)
        return gain

    def _estimate_prior_snr(self, signal_power: np.ndarray, noise_power: np.ndarray) -> np.ndarray:
        """
        Estimate a priori SNR from power spectra.

        Args:
            signal_power: Power of the noisy block
            noise_power: Current noise estimate

        Returns:
            Prior SNR per bin, clipped to ``[0.01, 100]``
        """
        snr_prior = (signal_power - noise_power) / (noise_power + 1e-10)
        return np.clip(snr_prior, 0.01, 100.0)

    def _estimate_speech_presence(
        self, signal_power: np.ndarray, noise_power: np.ndarray
    ) -> np.ndarray:
        """
        Estimate speech presence probability per bin.

        Args:
            signal_power: Power of the noisy block
            noise_power: Current noise estimate

        Returns:
            Probability in ``(0, 1)``, centred on a 3 dB posterior SNR
        """
        snr_db = 10 * np.log10(signal_power / (noise_power + 1e-10) + 1e-10)
        return 1.0 / (1.0 + np.exp(-(snr_db - 3.0) / 2.0))

    def _calculate_wiener_gain(self, snr_prior: np.ndarray, speech_prob: np.ndarray) -> np.ndarray:
        """
        Calculate Wiener filter gain with speech presence modulation.

        Args:
            snr_prior: A priori SNR per bin
            speech_prob: Speech presence probability per bin

        Returns:
            Gain per bin in ``[0, 1]``
        """
        wiener_gain = snr_prior / (1.0 + snr_prior)

        # Preserve more signal when speech is likely present
        modulated_gain = speech_prob * wiener_gain + (1 - speech_prob) * wiener_gain * 0.1

        final_gain = (1 - self.aggressiveness) * modulated_gain + self.aggressiveness * wiener_gain
        return np.clip(final_gain, 0.0, 1.0)


def create_handle(config: BackendConfig) -> SpectralDenoiser:
    """Spectral denoiser with default settings; needs no external module."""
    return SpectralDenoiser()
