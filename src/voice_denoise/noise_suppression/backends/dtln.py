"""Dual-signal transformation LSTM suppressor (two ONNX stages)."""

import os
from pathlib import Path
from typing import Any

import numpy as np

from ..config import DTLN_BLOCK_LENGTH, DTLN_BLOCK_SHIFT, DTLN_MODEL_DIR_ENV, DTLN_SAMPLE_RATE
from ..logging_utils import get_logger
from ..models import BackendConfig
from .base import FrameBackend

logger = get_logger(__name__)


class DTLNBackend(FrameBackend):
    """Real-time DTLN at 16 kHz.

    Accepts 512-sample frames and runs the two stages every 128 samples
    over a sliding 512-sample block, reconstructing by overlap-add.
    """

    def __init__(self, magnitude_session: Any, waveform_session: Any) -> None:
        super().__init__("dtln", DTLN_SAMPLE_RATE, DTLN_BLOCK_LENGTH)
        self._stage_1 = magnitude_session
        self._stage_2 = waveform_session
        self._inputs_1 = [i.name for i in magnitude_session.get_inputs()]
        self._inputs_2 = [i.name for i in waveform_session.get_inputs()]
        self._states_1 = np.zeros(magnitude_session.get_inputs()[1].shape, dtype=np.float32)
        self._states_2 = np.zeros(waveform_session.get_inputs()[1].shape, dtype=np.float32)
        self._in_buffer = np.zeros(DTLN_BLOCK_LENGTH, dtype=np.float32)
        self._out_buffer = np.zeros(DTLN_BLOCK_LENGTH, dtype=np.float32)

    def _step(self, shift: np.ndarray) -> np.ndarray:
        self._in_buffer[:-DTLN_BLOCK_SHIFT] = self._in_buffer[DTLN_BLOCK_SHIFT:]
        self._in_buffer[-DTLN_BLOCK_SHIFT:] = shift

        spectrum = np.fft.rfft(self._in_buffer)
        magnitude = np.abs(spectrum).reshape(1, 1, -1).astype(np.float32)
        mask, self._states_1 = self._stage_1.run(
            None, {self._inputs_1[0]: magnitude, self._inputs_1[1]: self._states_1}
        )

        estimated = np.fft.irfft(spectrum * np.squeeze(mask), DTLN_BLOCK_LENGTH)
        block, self._states_2 = self._stage_2.run(
            None,
            {
                self._inputs_2[0]: estimated.reshape(1, 1, -1).astype(np.float32),
                self._inputs_2[1]: self._states_2,
            },
        )

        self._out_buffer[:-DTLN_BLOCK_SHIFT] = self._out_buffer[DTLN_BLOCK_SHIFT:]
        self._out_buffer[-DTLN_BLOCK_SHIFT:] = 0.0
        self._out_buffer += np.squeeze(block).astype(np.float32)
        return self._out_buffer[:DTLN_BLOCK_SHIFT].copy()

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        data = self._check_frame(frame)
        shifts = [
            self._step(data[offset : offset + DTLN_BLOCK_SHIFT])
            for offset in range(0, DTLN_BLOCK_LENGTH, DTLN_BLOCK_SHIFT)
        ]
        return np.concatenate(shifts)

    def _release(self) -> None:
        self._stage_1 = None
        self._stage_2 = None


def create_handle(config: BackendConfig) -> DTLNBackend:
    """
    Load the two DTLN ONNX stages from the configured model directory.

    Args:
        config: Uses ``model_dir``, falling back to the environment

    Returns:
        DTLNBackend running both inference sessions

    Raises:
        FileNotFoundError: If the directory or either model file is missing
    """
    import onnxruntime as ort

    model_dir = config.model_dir or os.environ.get(DTLN_MODEL_DIR_ENV)
    if not model_dir:
        raise FileNotFoundError(f"No DTLN model directory (set {DTLN_MODEL_DIR_ENV})")

    paths = [Path(model_dir) / "model_1.onnx", Path(model_dir) / "model_2.onnx"]
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"DTLN model not found: {path}")

    logger.debug(f"🧠 Loading DTLN models from {model_dir}")
    sessions = [ort.InferenceSession(str(path)) for path in paths]
    return DTLNBackend(*sessions)
