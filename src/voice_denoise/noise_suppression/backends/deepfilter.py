"""Deep-filtering suppressor backed by DeepFilterNet."""

from collections import deque
from typing import Any

import numpy as np

from ..config import (
    DEEPFILTER_CONTEXT_FRAMES,
    DEEPFILTER_MAX_LEVEL,
    DEEPFILTER_MIN_LEVEL,
)
from ..logging_utils import get_logger
from ..models import BackendConfig
from .base import FrameBackend

logger = get_logger(__name__)


class DeepFilterBackend(FrameBackend):
    """Runs DeepFilterNet over a rolling context buffer.

    Each frame is appended to the buffer, the whole buffer is enhanced and
    the most recent frame of the result is returned, so frame edges keep
    their context.
    """

    def __init__(self, model: Any, df_state: Any, attenuation_db: float) -> None:
        super().__init__("deepfilter", int(df_state.sr()), int(df_state.hop_size()))
        self._model = model
        self._df_state = df_state
        self.attenuation_db = max(DEEPFILTER_MIN_LEVEL, min(DEEPFILTER_MAX_LEVEL, attenuation_db))
        self._context: deque = deque(maxlen=self.frame_length * DEEPFILTER_CONTEXT_FRAMES)

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        import torch
        from df.enhance import enhance

        data = self._check_frame(frame)
        self._context.extend(data)

        audio_t = torch.from_numpy(np.array(self._context, dtype=np.float32)).unsqueeze(0)
        with torch.no_grad():
            enhanced_t = enhance(
                self._model, self._df_state, audio_t, atten_lim_db=self.attenuation_db
            )

        enhanced = enhanced_t.squeeze(0).cpu().numpy().astype(np.float32)
        return enhanced[-self.frame_length :]

    def _release(self) -> None:
        self._context.clear()
        self._model = None
        self._df_state = None


def create_handle(config: BackendConfig) -> DeepFilterBackend:
    """Load the default DeepFilterNet model with the configured attenuation limit."""
    from df.enhance import init_df

    logger.debug(f"🧠 Loading DeepFilterNet (attenuation limit {config.attenuation_db} dB)")
    model, df_state, _ = init_df()
    model.eval()
    return DeepFilterBackend(model, df_state, config.attenuation_db)
