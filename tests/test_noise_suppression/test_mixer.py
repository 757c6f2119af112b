"""Tests for the dry/wet mixer."""

from unittest.mock import AsyncMock, Mock

import numpy as np
import pytest

from voice_denoise.noise_suppression.graph import BufferTrack
from voice_denoise.noise_suppression.models import AudioBuffer, ProcessorOptions, ProcessorState
from voice_denoise.noise_suppression.processors import (
    DryWetMixer,
    PassThroughProcessor,
    SpectralDenoiserProcessor,
)


def options_for(samples: np.ndarray) -> ProcessorOptions:
    return ProcessorOptions(track=BufferTrack(AudioBuffer.from_mono(samples, 48000)))


@pytest.mark.unit
class TestDryWetMixer:
    """Test cases for DryWetMixer."""

    def test_strength_is_clamped(self) -> None:
        mixer = DryWetMixer(PassThroughProcessor(), strength=1.5)
        assert mixer.strength == 1.0

        mixer.strength = -0.3
        assert mixer.strength == 0.0

    def test_inner_processor_exposed(self) -> None:
        inner = PassThroughProcessor()

        assert DryWetMixer(inner).get_inner_processor() is inner

    def test_pre_gain_ignored_before_initialize(self) -> None:
        mixer = DryWetMixer(PassThroughProcessor(), pre_gain=1.0)

        mixer.set_pre_gain(3.0)

        assert mixer.pre_gain == 1.0

    @pytest.mark.asyncio
    async def test_destroy_without_initialize(self) -> None:
        mixer = DryWetMixer(PassThroughProcessor())

        await mixer.destroy()
        await mixer.destroy()

        assert mixer.state is ProcessorState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_destroy_releases_inner(self) -> None:
        inner = PassThroughProcessor()
        mixer = DryWetMixer(inner)
        await mixer.initialize(options_for(np.zeros(480, dtype=np.float32)))

        await mixer.destroy()

        assert inner.state is ProcessorState.DESTROYED
        assert mixer.state is ProcessorState.DESTROYED
        assert mixer.processed_track is None

    @pytest.mark.asyncio
    async def test_inner_failure_propagates(self) -> None:
        inner = Mock()
        inner.name = "broken"
        inner.initialize = AsyncMock(side_effect=RuntimeError("boom"))
        inner.destroy = AsyncMock()
        mixer = DryWetMixer(inner)

        with pytest.raises(RuntimeError, match="boom"):
            await mixer.initialize(options_for(np.zeros(480, dtype=np.float32)))

        inner.destroy.assert_awaited()
        assert mixer.state is ProcessorState.DESTROYED


@pytest.mark.unit
class TestDryWetRender:
    """Offline blend of dry and processed audio."""

    @pytest.mark.asyncio
    async def test_full_strength_equals_inner(self, make_loader, fake_backend_cls) -> None:
        samples = np.random.default_rng(2).normal(0, 0.1, 4800).astype(np.float32)
        buffer = AudioBuffer.from_mono(samples, 48000)
        loader = make_loader(spectral=fake_backend_cls(gain=0.25))
        mixer = DryWetMixer(SpectralDenoiserProcessor(loader), strength=1.0)
        await mixer.initialize(options_for(samples))

        mixed = await mixer.render(buffer)

        np.testing.assert_allclose(mixed.channel(0), samples * 0.25, atol=1e-6)
        await mixer.destroy()

    @pytest.mark.asyncio
    async def test_zero_strength_equals_input(self, make_loader, fake_backend_cls) -> None:
        samples = np.random.default_rng(3).normal(0, 0.1, 4800).astype(np.float32)
        buffer = AudioBuffer.from_mono(samples, 48000)
        loader = make_loader(spectral=fake_backend_cls(gain=0.0))
        mixer = DryWetMixer(SpectralDenoiserProcessor(loader), strength=0.0)
        await mixer.initialize(options_for(samples))

        mixed = await mixer.render(buffer)

        np.testing.assert_array_equal(mixed.channel(0), samples)
        await mixer.destroy()

    @pytest.mark.asyncio
    async def test_partial_strength_blends(self) -> None:
        samples = np.full(960, 0.5, dtype=np.float32)
        inner = PassThroughProcessor()
        mixer = DryWetMixer(inner, strength=0.3, pre_gain=2.0)
        await mixer.initialize(options_for(samples))

        mixed = await mixer.render(AudioBuffer.from_mono(samples, 48000))

        # pre-gained input on both paths sums back to the pre-gained input
        np.testing.assert_allclose(mixed.channel(0), 1.0, atol=1e-6)


@pytest.mark.unit
class TestDryWetLive:
    """Live graph behaviour and hot parameter updates."""

    @pytest.mark.asyncio
    async def test_zero_strength_live_is_dry(self, drain) -> None:
        samples = np.linspace(-0.5, 0.5, 1920, dtype=np.float32)
        mixer = DryWetMixer(PassThroughProcessor(), strength=0.0)
        await mixer.initialize(options_for(samples))

        output = drain(mixer.processed_track, block=480, limit=4)

        np.testing.assert_allclose(output, samples, atol=1e-7)

    @pytest.mark.asyncio
    async def test_full_strength_live_is_wet(self, make_loader, fake_backend_cls, drain) -> None:
        samples = np.random.default_rng(4).normal(0, 0.1, 4800).astype(np.float32)
        loader = make_loader(spectral=fake_backend_cls(gain=0.5))
        mixer = DryWetMixer(SpectralDenoiserProcessor(loader), strength=1.0)
        await mixer.initialize(options_for(samples))

        output = drain(mixer.processed_track, block=480, limit=10)

        np.testing.assert_allclose(output[:482], 0.0)
        np.testing.assert_allclose(output[482:], samples[: 4800 - 482] * 0.5, atol=1e-6)

    @pytest.mark.asyncio
    async def test_hot_updates_apply_without_rebuild(self, drain) -> None:
        samples = np.full(4800, 0.5, dtype=np.float32)
        mixer = DryWetMixer(PassThroughProcessor(), strength=1.0)
        await mixer.initialize(options_for(samples))
        track = mixer.processed_track

        first = drain(track, block=480, limit=1)
        mixer.set_pre_gain(2.0)
        second = drain(track, block=480, limit=1)
        mixer.strength = 0.0
        third = drain(track, block=480, limit=1)

        np.testing.assert_allclose(first, 0.5)
        np.testing.assert_allclose(second, 1.0)
        np.testing.assert_allclose(third, 1.0)
        assert mixer.processed_track is track
