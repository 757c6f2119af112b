"""Live speech detection with WebRTC VAD and hangover smoothing."""

from typing import Callable, Optional

import numpy as np
import webrtcvad

from .config import (
    DEFAULT_VAD_SENSITIVITY,
    MONITOR_FRAME_DURATION,
    MONITOR_MIN_SPEECH_MS,
    MONITOR_REDEMPTION_MS,
    MONITOR_SUPPORTED_SAMPLE_RATES,
)
from .logging_utils import get_logger

logger = get_logger(__name__)


def sensitivity_to_mode(sensitivity: float) -> int:
    """Map 0..1 sensitivity onto WebRTC VAD aggressiveness 0..3."""
    sensitivity = max(0.0, min(1.0, sensitivity))
    return min(3, int(sensitivity * 4))


class SpeechMonitor:
    """Tracks whether a live stream currently carries speech.

    Speech must persist for ``min_speech_ms`` before it is reported, and is
    held for ``redemption_ms`` after the last voiced frame. ``on_change`` is
    called with the new state on every transition.
    """

    def __init__(
        self,
        sample_rate: int,
        sensitivity: float = DEFAULT_VAD_SENSITIVITY,
        on_change: Optional[Callable[[bool], None]] = None,
        redemption_ms: int = MONITOR_REDEMPTION_MS,
        min_speech_ms: int = MONITOR_MIN_SPEECH_MS,
    ) -> None:
        """
        Initialize the monitor.

        Raises:
            ValueError: If sample_rate is not supported by webrtcvad
        """
        if sample_rate not in MONITOR_SUPPORTED_SAMPLE_RATES:
            raise ValueError(f"Unsupported sample rate: {sample_rate}. "
                             f"WebRTC VAD supports {MONITOR_SUPPORTED_SAMPLE_RATES} Hz")

        self.sample_rate = sample_rate
        self.frame_size = int(sample_rate * MONITOR_FRAME_DURATION / 1000)
        self.on_change = on_change
        self._redemption_frames = max(1, redemption_ms // MONITOR_FRAME_DURATION)
        self._min_speech_frames = max(1, -(-min_speech_ms // MONITOR_FRAME_DURATION))

        self.vad = webrtcvad.Vad()
        self.set_sensitivity(sensitivity)

        self._pending = np.zeros(0, dtype=np.float32)
        self._voiced_run = 0
        self._silent_run = 0
        self.speaking = False

    def set_sensitivity(self, sensitivity: float) -> None:
        """Clamp to 0..1 and update the detector mode."""
        self.sensitivity = max(0.0, min(1.0, sensitivity))
        self.vad.set_mode(sensitivity_to_mode(self.sensitivity))

    def reset(self) -> None:
        self._pending = np.zeros(0, dtype=np.float32)
        self._voiced_run = 0
        self._silent_run = 0
        self._set_speaking(False)

    def _set_speaking(self, speaking: bool) -> None:
        if speaking != self.speaking:
            self.speaking = speaking
            logger.debug(f"🗣️ Speech {'started' if speaking else 'ended'}")
            if self.on_change is not None:
                self.on_change(speaking)

    def _on_frame(self, voiced: bool) -> None:
        if voiced:
            self._voiced_run += 1
            self._silent_run = 0
            if self._voiced_run >= self._min_speech_frames:
                self._set_speaking(True)
        else:
            self._voiced_run = 0
            self._silent_run += 1
            if self.speaking and self._silent_run >= self._redemption_frames:
                self._set_speaking(False)

    def process_block(self, block: np.ndarray) -> bool:
        """Feed float32 samples; returns the speaking state after the block."""
        self._pending = np.concatenate([self._pending, np.asarray(block, dtype=np.float32)])
        while len(self._pending) >= self.frame_size:
            frame = self._pending[: self.frame_size]
            self._pending = self._pending[self.frame_size :]
            pcm = (np.clip(frame, -1.0, 1.0) * 32767).astype(np.int16).tobytes()
            self._on_frame(self.vad.is_speech(pcm, self.sample_rate))
        return self.speaking
