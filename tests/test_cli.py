"""Tests for the harness CLI."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import numpy as np
import pytest

from voice_denoise.main import HarnessCLI, print_comparison
from voice_denoise.noise_suppression.exceptions import DeviceAccessDenied
from voice_denoise.noise_suppression.models import (
    AudioBuffer,
    EffectSettings,
    HarnessResult,
    Metrics,
    SpeechRegion,
)


def make_metrics(rms_db: float) -> Metrics:
    return Metrics(
        rms=10 ** (rms_db / 20),
        rms_db=rms_db,
        peak=0.5,
        peak_db=-6.0,
        crest_factor_db=6.0,
        snr_db=12.0,
    )


def make_result(regions=None) -> HarnessResult:
    buffer = AudioBuffer.from_mono(np.zeros(480), 48000)
    return HarnessResult(
        raw=buffer,
        processed=buffer,
        settings=EffectSettings(),
        raw_metrics=make_metrics(-20.0),
        processed_metrics=make_metrics(-26.0),
        regions=regions or [],
    )


@pytest.fixture
def mock_harness() -> Mock:
    harness = Mock()
    harness.record = AsyncMock(return_value=make_result())
    harness.load = AsyncMock(return_value=make_result())
    harness.play_ab = AsyncMock()
    harness.close = AsyncMock()
    harness.diagnostics.entries = ["[12:00:00.000] ✅ dry-wet-mix rendered 0.01s"]
    return harness


@pytest.mark.unit
class TestHarnessCLI:
    """Test cases for the HarnessCLI class."""

    @pytest.mark.asyncio
    async def test_record_and_report(self, mock_harness: Mock) -> None:
        cli = HarnessCLI(mock_harness)

        with patch("builtins.print") as mock_print:
            code = await cli.run(5.0)

        assert code == 0
        mock_harness.record.assert_awaited_once_with(5.0)
        mock_print.assert_any_call("🎤 Recording 5.0s, speak now...")
        mock_harness.close.assert_awaited_once()
        mock_harness.play_ab.assert_not_awaited()

    @pytest.mark.asyncio
    @patch("voice_denoise.main.read_wav")
    async def test_input_file(self, mock_read_wav: Mock, mock_harness: Mock) -> None:
        clip = AudioBuffer.from_mono(np.zeros(480), 48000)
        mock_read_wav.return_value = clip
        cli = HarnessCLI(mock_harness)

        with patch("builtins.print"):
            code = await cli.run(5.0, "noisy.wav")

        assert code == 0
        mock_read_wav.assert_called_once_with("noisy.wav")
        mock_harness.load.assert_awaited_once_with(clip)
        mock_harness.record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_speech_regions_printed(self, mock_harness: Mock) -> None:
        mock_harness.record.return_value = make_result([SpeechRegion(1.0, 2.25)])
        cli = HarnessCLI(mock_harness)

        with patch("builtins.print") as mock_print:
            await cli.run(5.0)

        mock_print.assert_any_call("🗣️  Speech: 1.00-2.25s")

    @pytest.mark.asyncio
    async def test_export_and_play(self, mock_harness: Mock, tmp_path: Path) -> None:
        mock_harness.export.side_effect = [tmp_path / "raw.wav", tmp_path / "processed.wav"]
        cli = HarnessCLI(mock_harness, export_dir=tmp_path, sample_format="float32", play_ab=True)

        with patch("builtins.print"):
            code = await cli.run(5.0)

        assert code == 0
        assert [c.args[0] for c in mock_harness.export.call_args_list] == ["raw", "processed"]
        assert mock_harness.export.call_args.kwargs["sample_format"] == "float32"
        mock_harness.play_ab.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_capture_error(self, mock_harness: Mock) -> None:
        mock_harness.record.side_effect = DeviceAccessDenied("Permission denied")
        cli = HarnessCLI(mock_harness)

        with patch("builtins.print") as mock_print:
            code = await cli.run(5.0)

        assert code == 1
        mock_print.assert_any_call("❌ Permission denied")
        mock_harness.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_keyboard_interrupt(self, mock_harness: Mock) -> None:
        mock_harness.record.side_effect = KeyboardInterrupt()
        cli = HarnessCLI(mock_harness)

        with patch("builtins.print") as mock_print:
            code = await cli.run(5.0)

        assert code == 0
        mock_harness.stop_playback.assert_called_once()
        mock_print.assert_any_call("\n👋 Goodbye!")


@pytest.mark.unit
class TestPrintComparison:
    """Test cases for the metrics table."""

    def test_rows(self) -> None:
        with patch("builtins.print") as mock_print:
            print_comparison(make_metrics(-20.0), make_metrics(float("-inf")))

        lines = [c.args[0] for c in mock_print.call_args_list]
        assert len(lines) == 5
        assert lines[1].startswith("RMS (dB)")
        assert "-20.0" in lines[1]
        assert "-∞" in lines[1]
