"""Tests for the in-process spectral/statistical denoiser."""

import numpy as np
import pytest

from voice_denoise.noise_suppression.backends.spectral import SpectralDenoiser, create_handle
from voice_denoise.noise_suppression.exceptions import ProcessorStateError
from voice_denoise.noise_suppression.models import BackendConfig


def run_frames(denoiser: SpectralDenoiser, samples: np.ndarray) -> np.ndarray:
    length = denoiser.frame_length
    usable = len(samples) - len(samples) % length
    return np.concatenate(
        [denoiser.process_frame(samples[i : i + length]) for i in range(0, usable, length)]
    )


@pytest.mark.unit
class TestSpectralDenoiser:
    """Test cases for SpectralDenoiser."""

    def test_defaults(self) -> None:
        denoiser = create_handle(BackendConfig())

        assert denoiser.sample_rate == 48000
        assert denoiser.frame_length == 480
        assert not denoiser.closed

    def test_output_shape(self) -> None:
        denoiser = SpectralDenoiser()

        output = denoiser.process_frame(np.zeros(480, dtype=np.float32))

        assert output.shape == (480,)
        assert output.dtype == np.float32

    def test_wrong_frame_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            SpectralDenoiser().process_frame(np.zeros(100, dtype=np.float32))

    def test_reduces_stationary_noise(self) -> None:
        """Noise-only input loses most of its energy once the estimate settles."""
        rng = np.random.default_rng(0)
        noise = rng.normal(0.0, 0.05, 48000).astype(np.float32)
        denoiser = SpectralDenoiser()

        output = run_frames(denoiser, noise)

        tail_in = np.sqrt(np.mean(noise[24000:] ** 2))
        tail_out = np.sqrt(np.mean(output[24000:] ** 2))
        assert tail_out < tail_in * 0.5
        assert denoiser.last_noise_reduction_db > 3.0

    def test_keeps_strong_tone(self, noisy_tone) -> None:
        """A tone well above the noise floor keeps most of its level."""
        signal = noisy_tone(noise_level=0.01, tone_amplitude=0.4)
        denoiser = SpectralDenoiser()

        output = run_frames(denoiser, signal)

        # Tone region, skipping onset and the one-frame synthesis delay
        tone_in = np.sqrt(np.mean(signal[72000:168000] ** 2))
        tone_out = np.sqrt(np.mean(output[72480:168480] ** 2))
        assert tone_out > tone_in * 0.7

    def test_sustained_tone_stays_out_of_noise_estimate(self, noisy_tone) -> None:
        """Three seconds of tone leave the 450 Hz bin's noise estimate untouched."""
        signal = noisy_tone(noise_level=0.01, tone_amplitude=0.4)
        denoiser = SpectralDenoiser()
        tone_bin = 9

        run_frames(denoiser, signal[:48000])
        before = denoiser.noise_psd[tone_bin]
        output = run_frames(denoiser, signal[48000:168000])

        assert denoiser.noise_psd[tone_bin] < before * 2
        late_in = np.sqrt(np.mean(signal[144000:168000] ** 2))
        late_out = np.sqrt(np.mean(output[96000:120000] ** 2))
        assert late_out > late_in * 0.8

    def test_close_is_idempotent(self) -> None:
        denoiser = SpectralDenoiser()

        denoiser.close()
        denoiser.close()

        assert denoiser.closed
        with pytest.raises(ProcessorStateError):
            denoiser.process_frame(np.zeros(480, dtype=np.float32))

    def test_reset(self) -> None:
        denoiser = SpectralDenoiser()
        denoiser.process_frame(np.ones(480, dtype=np.float32) * 0.1)

        denoiser.reset()

        assert denoiser.noise_psd is None
        assert denoiser.noise_frames == 0
