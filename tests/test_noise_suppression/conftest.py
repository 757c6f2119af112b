"""Shared fixtures: synthetic signals and fake backends."""

from typing import Callable, Optional

import numpy as np
import pytest

from voice_denoise.noise_suppression.backends.base import FrameBackend
from voice_denoise.noise_suppression.backends.registry import BackendLoader
from voice_denoise.noise_suppression.models import BackendConfig, BackendKind


class FakeBackend(FrameBackend):
    """Scales every frame; optionally raises on selected frame indices."""

    def __init__(
        self,
        sample_rate: int = 48000,
        frame_length: int = 480,
        gain: float = 1.0,
        fail_on: tuple = (),
    ) -> None:
        super().__init__("fake", sample_rate, frame_length)
        self.gain = gain
        self.fail_on = set(fail_on)
        self.calls = 0
        self.release_count = 0

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        data = self._check_frame(frame)
        index = self.calls
        self.calls += 1
        if index in self.fail_on:
            raise RuntimeError(f"fault on frame {index}")
        return data * np.float32(self.gain)

    def _release(self) -> None:
        self.release_count += 1


class EnergyGateBackend(FrameBackend):
    """Attenuates quiet frames, standing in for a trained denoiser."""

    def __init__(self, threshold: float, attenuation_db: float = 20.0) -> None:
        super().__init__("energy-gate", 48000, 480)
        self.threshold = threshold
        self.attenuation = np.float32(10 ** (-attenuation_db / 20))

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        data = self._check_frame(frame)
        rms = float(np.sqrt(np.mean(data.astype(np.float64) ** 2)))
        if rms < self.threshold:
            return data * self.attenuation
        return data.copy()


def make_sine(
    frequency: float, duration: float, sample_rate: int = 48000, amplitude: float = 0.5
) -> np.ndarray:
    t = np.arange(int(round(duration * sample_rate))) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


@pytest.fixture
def sine() -> Callable[..., np.ndarray]:
    return make_sine


@pytest.fixture
def noisy_tone() -> Callable[..., np.ndarray]:
    """5 s of broadband noise with a tone burst from 1 s to 4 s."""

    def _make(
        sample_rate: int = 48000,
        duration: float = 5.0,
        noise_level: float = 0.02,
        tone_amplitude: float = 0.4,
        seed: int = 1234,
    ) -> np.ndarray:
        rng = np.random.default_rng(seed)
        frames = int(duration * sample_rate)
        signal = rng.normal(0.0, noise_level, frames).astype(np.float32)
        start, end = int(1.0 * sample_rate), int(4.0 * sample_rate)
        signal[start:end] += make_sine(440.0, 3.0, sample_rate, tone_amplitude)[: end - start]
        return signal

    return _make


@pytest.fixture
def fake_backend_cls() -> type:
    return FakeBackend


@pytest.fixture
def energy_gate_cls() -> type:
    return EnergyGateBackend


@pytest.fixture
def make_loader() -> Callable[..., BackendLoader]:
    """Loader whose factories return the given handles (or raise the given errors)."""

    def _make(**handles: object) -> BackendLoader:
        factories = {}
        for kind in BackendKind:
            produced = handles.get(kind.value)
            if produced is None:
                produced = _new_fake_backend
            factories[kind] = _factory(produced)
        return BackendLoader(factories)

    return _make


def _new_fake_backend(config: BackendConfig) -> FrameBackend:
    return FakeBackend()


def _factory(produced: object) -> Callable[[BackendConfig], FrameBackend]:
    def factory(config: BackendConfig) -> FrameBackend:
        if isinstance(produced, Exception):
            raise produced
        if callable(produced) and not isinstance(produced, FrameBackend):
            return produced(config)
        return produced

    return factory


@pytest.fixture
def fake_loader(make_loader) -> BackendLoader:
    return make_loader()


def read_all(track, block: int = 480, limit: Optional[int] = None) -> np.ndarray:
    blocks = []
    while limit is None or len(blocks) < limit:
        data = track.read(block)
        if data is None:
            break
        blocks.append(data)
    return np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.float32)


@pytest.fixture
def drain() -> Callable[..., np.ndarray]:
    return read_all
