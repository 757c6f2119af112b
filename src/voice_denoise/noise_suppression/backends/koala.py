"""Vendor SDK suppressor (Picovoice Koala)."""

import os
from typing import Any

import numpy as np

from ..config import KOALA_ACCESS_KEY_ENV
from ..logging_utils import get_logger
from ..models import BackendConfig
from .base import FrameBackend, from_int16, to_int16

logger = get_logger(__name__)


class KoalaBackend(FrameBackend):
    """Wraps a Koala engine; rate and frame length come from the SDK."""

    def __init__(self, koala: Any) -> None:
        super().__init__("koala", int(koala.sample_rate), int(koala.frame_length))
        self._koala = koala

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        data = self._check_frame(frame)
        enhanced = self._koala.process(to_int16(data).tolist())
        return from_int16(np.asarray(enhanced, dtype=np.int16))

    def _release(self) -> None:
        self._koala.delete()
        self._koala = None


def create_handle(config: BackendConfig) -> KoalaBackend:
    """
    Create a Koala engine.

    Args:
        config: Uses ``access_key``, falling back to the environment

    Returns:
        KoalaBackend wrapping the engine

    Raises:
        ValueError: If no access key is available
    """
    import pvkoala

    access_key = config.access_key or os.environ.get(KOALA_ACCESS_KEY_ENV)
    if not access_key:
        raise ValueError(f"No Koala access key (set {KOALA_ACCESS_KEY_ENV})")

    logger.debug("🧠 Creating Koala engine")
    return KoalaBackend(pvkoala.create(access_key=access_key))
