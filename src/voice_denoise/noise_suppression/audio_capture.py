"""Microphone capture without host-level enhancement."""

import asyncio
import threading
from typing import Any, Optional

import numpy as np
import pyaudio

from .config import (
    CAPTURE_CHANNELS,
    DEFAULT_BLOCK_SIZE,
    DEFAULT_SAMPLE_RATE,
    MIN_CAPTURE_FRACTION,
    RECORD_TAIL_PADDING,
)
from .exceptions import (
    CaptureError,
    DeviceAccessDenied,
    InsufficientCapture,
    MicrophoneNotFoundError,
)
from .interfaces import MediaTrack
from .logging_utils import get_logger
from .models import AudioBuffer, CaptureConstraints

logger = get_logger(__name__)


class AudioCapture:
    """Manages microphone input as float32 mono.

    PyAudio delivers the device signal untouched, so echo cancellation,
    automatic gain control and noise suppression are always off.
    """

    def __init__(
        self,
        sample_rate: Optional[int] = None,
        block_size: Optional[int] = None,
        device_index: Optional[int] = None,
        constraints: Optional[CaptureConstraints] = None,
    ) -> None:
        """
        Initialize audio capture.

        Args:
            sample_rate: Requested sample rate in Hz; the device may not honour it
            block_size: Samples per PyAudio buffer
            device_index: Input device, or None for the default device
            constraints: Host enhancement flags; all must be False

        Raises:
            ValueError: For non-positive sizes or any enabled host enhancement
        """
        self.requested_sample_rate = sample_rate if sample_rate is not None else DEFAULT_SAMPLE_RATE
        self.block_size = block_size if block_size is not None else DEFAULT_BLOCK_SIZE
        self.device_index = device_index
        self.constraints = constraints or CaptureConstraints()

        if self.requested_sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if self.block_size <= 0:
            raise ValueError("Block size must be positive")
        if (
            self.constraints.echo_cancellation
            or self.constraints.auto_gain_control
            or self.constraints.noise_suppression
        ):
            raise ValueError("Host-level capture enhancement is not supported")

        self.sample_rate: Optional[int] = None  # negotiated rate, set on start
        self._capturing = False
        self._pyaudio = None
        self._stream = None
        self._chunks: list[np.ndarray] = []
        self._chunks_lock = threading.Lock()

    def start_capture(self, collect: bool = False) -> None:
        """Open the input stream.

        Args:
            collect: Accumulate audio in the background (for fixed-length
                recordings) instead of serving blocking reads
        """
        if self._capturing:
            raise CaptureError("Already capturing")

        try:
            self._pyaudio = pyaudio.PyAudio()
            device_info = self._input_device_info()
            self.sample_rate = self._negotiate_rate(device_info)

            with self._chunks_lock:
                self._chunks = []
            try:
                self._stream = self._pyaudio.open(
                    format=pyaudio.paFloat32,
                    channels=CAPTURE_CHANNELS,
                    rate=self.sample_rate,
                    input=True,
                    input_device_index=self.device_index,
                    frames_per_buffer=self.block_size,
                    stream_callback=self._on_audio if collect else None,
                )
                self._stream.start_stream()
            except OSError as e:
                if "Permission denied" in str(e):
                    logger.error("❌ Microphone permission denied")
                    raise DeviceAccessDenied("Permission denied") from e
                logger.error(f"❌ Failed to open audio stream: {e}")
                raise CaptureError(f"Failed to open audio stream: {e}") from e

            self._capturing = True
            logger.debug(
                f"✅ Capture started at {self.sample_rate} Hz "
                f"(requested {self.requested_sample_rate} Hz, block {self.block_size})"
            )
        except Exception:
            self._release()
            raise

    def _input_device_info(self) -> dict[str, Any]:
        try:
            if self.device_index is None:
                return self._pyaudio.get_default_input_device_info()
            return self._pyaudio.get_device_info_by_index(self.device_index)
        except OSError as e:
            logger.error("❌ No input device found")
            raise MicrophoneNotFoundError("No microphone found") from e

    def _negotiate_rate(self, device_info: dict[str, Any]) -> int:
        try:
            supported = self._pyaudio.is_format_supported(
                self.requested_sample_rate,
                input_device=self.device_index,
                input_channels=CAPTURE_CHANNELS,
                input_format=pyaudio.paFloat32,
            )
        except ValueError:
            supported = False

        if supported:
            return self.requested_sample_rate

        fallback = int(device_info.get("defaultSampleRate", self.requested_sample_rate))
        logger.warning(
            f"⚠️ Device does not support {self.requested_sample_rate} Hz, using {fallback} Hz"
        )
        return fallback

    def _on_audio(self, in_data: bytes, frame_count: int, time_info: Any, status: int) -> tuple:
        block = np.frombuffer(in_data, dtype=np.float32).copy()
        with self._chunks_lock:
            self._chunks.append(block)
        return (None, pyaudio.paContinue)

    def stop_capture(self) -> None:
        """Close the input stream. No-op when not capturing."""
        if not self._capturing:
            return
        self._capturing = False
        self._release()

    def _release(self) -> None:
        if self._stream:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.warning(f"⚠️ Error closing input stream: {e}")
            self._stream = None
        if self._pyaudio:
            self._pyaudio.terminate()
            self._pyaudio = None

    def is_capturing(self) -> bool:
        return self._capturing

    def read_block(self, frames: Optional[int] = None) -> Optional[np.ndarray]:
        """Blocking read of the next block, or None when not capturing."""
        if not self._capturing or self._stream is None:
            return None
        try:
            data = self._stream.read(frames or self.block_size, exception_on_overflow=False)
        except OSError as e:
            logger.error(f"❌ Failed to read audio from stream: {e}")
            raise CaptureError("Failed to read audio") from e
        return np.frombuffer(data, dtype=np.float32).copy()

    async def record(self, duration: float) -> AudioBuffer:
        """Capture a fixed-length clip.

        Completion is timer based (``duration`` plus a small tail), not a
        sample count.

        Raises:
            InsufficientCapture: If less than half a second arrived
        """
        self.start_capture(collect=True)
        try:
            await asyncio.sleep(duration + RECORD_TAIL_PADDING)
        finally:
            self.stop_capture()

        with self._chunks_lock:
            chunks, self._chunks = self._chunks, []
        samples = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float32)

        required = int(self.sample_rate * MIN_CAPTURE_FRACTION)
        if len(samples) < required:
            raise InsufficientCapture(len(samples), required)

        logger.info(f"🎙️ Recorded {len(samples) / self.sample_rate:.2f}s at {self.sample_rate} Hz")
        return AudioBuffer.from_mono(samples, self.sample_rate)

    def open_track(self) -> "CaptureTrack":
        """Start capturing if needed and return a track reading from the stream."""
        if not self._capturing:
            self.start_capture()
        return CaptureTrack(self)


class CaptureTrack(MediaTrack):
    """Live microphone track over an open AudioCapture."""

    def __init__(self, capture: AudioCapture) -> None:
        self.id = "microphone"
        self._capture = capture

    @property
    def sample_rate(self) -> int:
        return self._capture.sample_rate

    @property
    def ended(self) -> bool:
        return not self._capture.is_capturing()

    def read(self, frames: int) -> Optional[np.ndarray]:
        return self._capture.read_block(frames)

    def stop(self) -> None:
        self._capture.stop_capture()


def list_input_devices() -> list[dict[str, Any]]:
    """Enumerate devices with input channels."""
    audio = pyaudio.PyAudio()
    devices = []
    try:
        for i in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(i)
            if info.get("maxInputChannels", 0) > 0:
                devices.append(
                    {
                        "index": i,
                        "name": info.get("name", f"Device {i}"),
                        "channels": info.get("maxInputChannels", 0),
                        "sample_rate": info.get("defaultSampleRate", 0),
                    }
                )
                logger.trace(f"  [{i}] {devices[-1]['name']}")
    finally:
        audio.terminate()
    return devices
