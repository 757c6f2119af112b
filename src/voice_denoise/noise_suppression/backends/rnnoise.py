"""Recurrent-network suppressor backed by the RNNoise library."""

from typing import Any

import numpy as np

from ..config import RNNOISE_FRAME_LENGTH, RNNOISE_SAMPLE_RATE
from ..logging_utils import get_logger
from ..models import BackendConfig
from .base import FrameBackend, from_int16, to_int16

logger = get_logger(__name__)


class RNNoiseBackend(FrameBackend):
    """Wraps a ``pyrnnoise.RNNoise`` instance: 48 kHz, 480-sample frames."""

    def __init__(self, denoiser: Any) -> None:
        super().__init__("rnnoise", RNNOISE_SAMPLE_RATE, RNNOISE_FRAME_LENGTH)
        self._denoiser = denoiser
        self.speech_probability = 0.0
        self.vad_threshold = 0.0

    def set_vad_threshold(self, threshold: float) -> None:
        """Frames whose speech probability falls below ``threshold`` are silenced."""
        self.vad_threshold = max(0.0, min(1.0, threshold))

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        data = self._check_frame(frame)
        chunk = to_int16(data)[np.newaxis, :]

        denoised = []
        for speech_prob, denoised_frame in self._denoiser.denoise_chunk(chunk):
            self.speech_probability = float(np.max(speech_prob))
            denoised.append(np.asarray(denoised_frame).reshape(-1))

        output = from_int16(np.concatenate(denoised)) if denoised else data.copy()
        if self.speech_probability < self.vad_threshold:
            output = np.zeros_like(output)
        return output[: self.frame_length]

    def _release(self) -> None:
        self._denoiser = None


def create_handle(config: BackendConfig) -> RNNoiseBackend:
    """Create an RNNoise state at 48 kHz."""
    from pyrnnoise import RNNoise

    logger.debug("🧠 Loading RNNoise")
    return RNNoiseBackend(RNNoise(sample_rate=RNNOISE_SAMPLE_RATE))
