"""Tests for microphone capture and speaker playback."""

import asyncio
from unittest.mock import Mock, patch

import numpy as np
import pyaudio
import pytest

from voice_denoise.noise_suppression.audio_capture import AudioCapture, list_input_devices
from voice_denoise.noise_suppression.exceptions import (
    CaptureError,
    DeviceAccessDenied,
    InsufficientCapture,
    MicrophoneNotFoundError,
    PlaybackError,
)
from voice_denoise.noise_suppression.models import AudioBuffer, CaptureConstraints
from voice_denoise.noise_suppression.playback import AudioPlayer


def mock_pyaudio_instance(mock_pyaudio: Mock, default_rate: float = 48000.0) -> Mock:
    instance = Mock()
    instance.get_default_input_device_info.return_value = {"defaultSampleRate": default_rate}
    instance.is_format_supported.return_value = True
    instance.open.return_value = Mock()
    mock_pyaudio.return_value = instance
    return instance


class TestAudioCapture:
    """Test cases for AudioCapture class."""

    def test_initialization(self) -> None:
        capture = AudioCapture()

        assert capture.requested_sample_rate == 48000
        assert capture.block_size == 480
        assert capture.sample_rate is None
        assert capture.is_capturing() is False

    def test_enhancements_rejected(self) -> None:
        with pytest.raises(ValueError, match="not supported"):
            AudioCapture(constraints=CaptureConstraints(echo_cancellation=True))
        with pytest.raises(ValueError):
            AudioCapture(constraints=CaptureConstraints(noise_suppression=True))

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError, match="Sample rate must be positive"):
            AudioCapture(sample_rate=0)
        with pytest.raises(ValueError, match="Block size must be positive"):
            AudioCapture(block_size=0)

    @patch("pyaudio.PyAudio")
    def test_start_capture(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)

        capture = AudioCapture()
        capture.start_capture()

        assert capture.is_capturing() is True
        assert capture.sample_rate == 48000
        assert instance.open.call_args.kwargs["rate"] == 48000
        instance.open.return_value.start_stream.assert_called_once()

    @patch("pyaudio.PyAudio")
    def test_already_capturing(self, mock_pyaudio: Mock) -> None:
        mock_pyaudio_instance(mock_pyaudio)
        capture = AudioCapture()
        capture.start_capture()

        with pytest.raises(CaptureError, match="Already capturing"):
            capture.start_capture()

    @patch("pyaudio.PyAudio")
    def test_unsupported_rate_uses_device_rate(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio, default_rate=44100.0)
        instance.is_format_supported.side_effect = ValueError("Invalid sample rate")

        capture = AudioCapture()
        capture.start_capture()

        assert capture.sample_rate == 44100

    @patch("pyaudio.PyAudio")
    def test_permission_denied(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        instance.open.side_effect = OSError("Permission denied")

        capture = AudioCapture()

        with pytest.raises(DeviceAccessDenied):
            capture.start_capture()
        instance.terminate.assert_called_once()
        assert capture.is_capturing() is False

    @patch("pyaudio.PyAudio")
    def test_no_microphone(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        instance.get_default_input_device_info.side_effect = OSError("No input device")

        with pytest.raises(MicrophoneNotFoundError, match="No microphone found"):
            AudioCapture().start_capture()

    @patch("pyaudio.PyAudio")
    def test_stop_capture(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        capture = AudioCapture()
        capture.start_capture()

        capture.stop_capture()

        assert capture.is_capturing() is False
        instance.open.return_value.close.assert_called_once()
        instance.terminate.assert_called_once()
        assert capture.read_block() is None

    @patch("pyaudio.PyAudio")
    def test_read_block(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        instance.open.return_value.read.return_value = np.full(
            480, 0.25, dtype=np.float32
        ).tobytes()
        capture = AudioCapture()
        track = capture.open_track()

        block = track.read(480)

        assert track.sample_rate == 48000
        np.testing.assert_allclose(block, 0.25)

    @pytest.mark.asyncio
    @patch("pyaudio.PyAudio")
    async def test_record_collects_callbacks(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        capture = AudioCapture()

        task = asyncio.ensure_future(capture.record(0.0))
        await asyncio.sleep(0)
        callback = instance.open.call_args.kwargs["stream_callback"]
        for _ in range(50):
            callback(np.full(480, 0.1, dtype=np.float32).tobytes(), 480, None, 0)
        buffer = await task

        assert buffer.frame_count == 24000
        assert buffer.sample_rate == 48000
        assert capture.is_capturing() is False

    @pytest.mark.asyncio
    @patch("pyaudio.PyAudio")
    async def test_record_without_audio(self, mock_pyaudio: Mock) -> None:
        mock_pyaudio_instance(mock_pyaudio)

        with pytest.raises(InsufficientCapture, match="Almost no audio"):
            await AudioCapture().record(0.0)

    @patch("pyaudio.PyAudio")
    def test_list_input_devices(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        instance.get_device_count.return_value = 2
        instance.get_device_info_by_index.side_effect = [
            {"name": "Speakers", "maxInputChannels": 0, "defaultSampleRate": 48000.0},
            {"name": "USB Mic", "maxInputChannels": 1, "defaultSampleRate": 44100.0},
        ]

        devices = list_input_devices()

        assert [d["name"] for d in devices] == ["USB Mic"]
        assert devices[0]["index"] == 1
        instance.terminate.assert_called_once()


async def wait_for_calls(mock: Mock, count: int) -> None:
    for _ in range(200):
        if mock.call_count >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"expected {count} calls, got {mock.call_count}")


class TestAudioPlayer:
    """Test cases for AudioPlayer class."""

    @pytest.mark.asyncio
    @patch("pyaudio.PyAudio")
    async def test_play_until_complete(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        player = AudioPlayer(block_size=256)
        buffer = AudioBuffer.from_mono(np.full(300, 0.5, dtype=np.float32), 48000)

        task = asyncio.ensure_future(player.play(buffer))
        await wait_for_calls(instance.open, 1)
        callback = instance.open.call_args.kwargs["stream_callback"]

        data, flag = callback(None, 256, None, 0)
        assert len(data) == 256 * 2 * 4
        assert flag == pyaudio.paContinue
        data, flag = callback(None, 256, None, 0)
        await task

        stereo = np.frombuffer(data, dtype=np.float32).reshape(-1, 2)
        np.testing.assert_allclose(stereo[:44], 0.5)
        np.testing.assert_allclose(stereo[44:], 0.0)
        assert instance.open.call_args.kwargs["channels"] == 2
        instance.terminate.assert_called_once()
        assert not player.playing

    @pytest.mark.asyncio
    @patch("pyaudio.PyAudio")
    async def test_stop_resolves_play(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        player = AudioPlayer()
        buffer = AudioBuffer.from_mono(np.zeros(48000, dtype=np.float32), 48000)

        task = asyncio.ensure_future(player.play(buffer))
        await wait_for_calls(instance.open, 1)
        player.stop()
        await task

        instance.open.return_value.stop_stream.assert_called_once()
        assert not player.playing

    @pytest.mark.asyncio
    @patch("voice_denoise.noise_suppression.playback.AB_PLAYBACK_GAP", 0.01)
    @patch("pyaudio.PyAudio")
    async def test_play_ab_plays_both_in_order(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        player = AudioPlayer(block_size=256)
        first = AudioBuffer.from_mono(np.full(100, 0.1, dtype=np.float32), 48000)
        second = AudioBuffer.from_mono(np.full(100, 0.9, dtype=np.float32), 16000)

        task = asyncio.ensure_future(player.play_ab(first, second))
        await wait_for_calls(instance.open, 1)
        data, _ = instance.open.call_args.kwargs["stream_callback"](None, 256, None, 0)
        assert np.frombuffer(data, dtype=np.float32)[0] == pytest.approx(0.1)

        await wait_for_calls(instance.open, 2)
        data, _ = instance.open.call_args.kwargs["stream_callback"](None, 256, None, 0)
        assert np.frombuffer(data, dtype=np.float32)[0] == pytest.approx(0.9)
        await task

        assert [c.kwargs["rate"] for c in instance.open.call_args_list] == [48000, 16000]

    @pytest.mark.asyncio
    @patch("voice_denoise.noise_suppression.playback.AB_PLAYBACK_GAP", 5.0)
    @patch("pyaudio.PyAudio")
    async def test_stop_during_gap(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        player = AudioPlayer()
        clip = AudioBuffer.from_mono(np.zeros(10, dtype=np.float32), 48000)

        task = asyncio.ensure_future(player.play_ab(clip, clip))
        await wait_for_calls(instance.open, 1)
        instance.open.call_args.kwargs["stream_callback"](None, 1024, None, 0)
        for _ in range(100):
            if player._gap_task is not None:
                break
            await asyncio.sleep(0.005)
        assert player.playing

        player.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert instance.open.call_count == 1
        assert not player.playing

    @pytest.mark.asyncio
    @patch("pyaudio.PyAudio")
    async def test_open_failure(self, mock_pyaudio: Mock) -> None:
        instance = mock_pyaudio_instance(mock_pyaudio)
        instance.open.side_effect = OSError("Device unavailable")

        with pytest.raises(PlaybackError, match="Device unavailable"):
            await AudioPlayer().play(AudioBuffer.from_mono(np.zeros(10), 48000))

        instance.terminate.assert_called_once()
