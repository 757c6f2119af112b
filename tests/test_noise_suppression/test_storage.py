"""Tests for WAV export and settings persistence."""

import wave
from datetime import datetime

import numpy as np
import pytest

from voice_denoise.noise_suppression.models import AudioBuffer, BackendKind, EffectSettings
from voice_denoise.noise_suppression.settings_store import JsonSettingsStore
from voice_denoise.noise_suppression.wav_export import export_filename, export_wav, read_wav


@pytest.mark.unit
class TestWavExport:
    """Test cases for WAV export."""

    def test_filename(self) -> None:
        buffer = AudioBuffer.from_mono(np.zeros(24000), 48000)
        timestamp = datetime(2024, 3, 1, 12, 30, 45, 123456)

        name = export_filename("raw", buffer, timestamp)

        assert name == "raw_20240301_123045_123_500.0ms.wav"

    def test_int16_is_stereo(self, tmp_path, sine) -> None:
        buffer = AudioBuffer.from_mono(sine(440.0, 0.1), 48000)
        path = tmp_path / "nested" / "clip.wav"

        export_wav(buffer, path)

        with wave.open(str(path), "rb") as wav_file:
            assert wav_file.getnchannels() == 2
            assert wav_file.getsampwidth() == 2
            assert wav_file.getframerate() == 48000
            assert wav_file.getnframes() == 4800

    def test_int16_read_back(self, tmp_path, sine) -> None:
        samples = sine(440.0, 0.1)
        path = export_wav(AudioBuffer.from_mono(samples, 48000), tmp_path / "clip.wav")

        loaded = read_wav(path)

        assert loaded.channel_count == 2
        np.testing.assert_allclose(loaded.channel(0), samples, atol=1e-4)
        np.testing.assert_array_equal(loaded.channel(0), loaded.channel(1))

    def test_float32(self, tmp_path) -> None:
        samples = np.linspace(-0.5, 0.5, 1000, dtype=np.float32)
        path = export_wav(
            AudioBuffer.from_mono(samples, 16000), tmp_path / "clip.wav", "float32"
        )

        loaded = read_wav(path)

        assert loaded.sample_rate == 16000
        np.testing.assert_array_equal(loaded.channel(1), samples)

    def test_clips_out_of_range(self, tmp_path) -> None:
        samples = np.array([2.0, -2.0], dtype=np.float32)
        path = export_wav(AudioBuffer.from_mono(samples, 48000), tmp_path / "clip.wav")

        loaded = read_wav(path)

        assert loaded.channel(0)[0] == pytest.approx(32767 / 32768)
        assert loaded.channel(0)[1] == pytest.approx(-32767 / 32768)

    def test_unknown_format(self, tmp_path) -> None:
        with pytest.raises(ValueError, match="Unsupported sample format"):
            export_wav(AudioBuffer.from_mono(np.zeros(10), 48000), tmp_path / "x.wav", "mp3")


@pytest.mark.unit
class TestJsonSettingsStore:
    """Test cases for settings persistence."""

    def test_defaults_when_missing(self, tmp_path) -> None:
        store = JsonSettingsStore(tmp_path / "config")

        assert store.load() == EffectSettings()

    def test_save_and_load(self, tmp_path) -> None:
        store = JsonSettingsStore(tmp_path / "config")
        settings = EffectSettings(backend=BackendKind.DTLN, vad_enabled=True, strength=0.6)

        store.save(settings)

        assert store.settings_file.exists()
        assert JsonSettingsStore(tmp_path / "config").load() == settings

    def test_corrupt_file(self, tmp_path) -> None:
        store = JsonSettingsStore(tmp_path)
        store.settings_file.write_text("{not json")

        assert store.load() == EffectSettings()

    def test_unknown_backend(self, tmp_path) -> None:
        store = JsonSettingsStore(tmp_path)
        store.settings_file.write_text('{"backend": "speex"}')

        assert store.load() == EffectSettings()
