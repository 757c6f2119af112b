"""Shared plumbing for backend handles."""

import numpy as np

from ..exceptions import ProcessorStateError
from ..interfaces import BackendHandle


class FrameBackend(BackendHandle):
    """Backend handle with fixed rate, fixed frame length and a closed flag."""

    def __init__(self, name: str, sample_rate: int, frame_length: int) -> None:
        self.name = name
        self._sample_rate = sample_rate
        self._frame_length = frame_length
        self._closed = False

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_length(self) -> int:
        return self._frame_length

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_frame(self, frame: np.ndarray) -> np.ndarray:
        if self._closed:
            raise ProcessorStateError(f"{self.name} backend is closed")
        data = np.asarray(frame, dtype=np.float32)
        if data.shape != (self._frame_length,):
            raise ValueError(
                f"{self.name} expects {self._frame_length}-sample frames, got {data.shape}"
            )
        return data

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._release()

    def _release(self) -> None:
        """Free native resources. Called once from ``close``."""
        pass


def to_int16(frame: np.ndarray) -> np.ndarray:
    return (np.clip(frame, -1.0, 1.0) * 32767.0).astype(np.int16)


def from_int16(frame: np.ndarray) -> np.ndarray:
    return (np.asarray(frame, dtype=np.float32) / 32768.0).astype(np.float32)
