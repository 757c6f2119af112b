"""The five suppression processor variants."""

import dataclasses
from typing import Optional

from ..backends.registry import BackendLoader
from ..config import DEEPFILTER_DEFAULT_LEVEL, DEEPFILTER_MAX_LEVEL, DEEPFILTER_MIN_LEVEL
from ..models import BackendConfig, BackendKind
from .backend import BackendProcessor


class SpectralDenoiserProcessor(BackendProcessor):
    """Spectral/statistical estimator. Needs no external module."""

    name = "spectral-noise-filter"
    kind = BackendKind.SPECTRAL


class RNNoiseProcessor(BackendProcessor):
    """Recurrent network at 48 kHz with an optional speech-probability gate."""

    name = "rnnoise-noise-filter"
    kind = BackendKind.RNNOISE

    def __init__(
        self,
        loader: Optional[BackendLoader] = None,
        config: Optional[BackendConfig] = None,
        vad_threshold: float = 0.0,
    ) -> None:
        super().__init__(loader, config)
        self._vad_threshold = vad_threshold

    def set_vad_threshold(self, threshold: float) -> None:
        """Clamp to 0..1; applied to the loaded handle and kept for re-initialization."""
        self._vad_threshold = max(0.0, min(1.0, threshold))
        if self._handle is not None and hasattr(self._handle, "set_vad_threshold"):
            self._handle.set_vad_threshold(self._vad_threshold)

    async def initialize(self, options) -> None:
        await super().initialize(options)
        self.set_vad_threshold(self._vad_threshold)


class DeepFilterProcessor(BackendProcessor):
    """Deep filtering with a configurable attenuation limit in dB."""

    name = "deepfilter-noise-filter"
    kind = BackendKind.DEEPFILTER

    def __init__(
        self,
        loader: Optional[BackendLoader] = None,
        config: Optional[BackendConfig] = None,
        attenuation_db: float = DEEPFILTER_DEFAULT_LEVEL,
    ) -> None:
        level = max(DEEPFILTER_MIN_LEVEL, min(DEEPFILTER_MAX_LEVEL, float(attenuation_db)))
        config = dataclasses.replace(config or BackendConfig(), attenuation_db=level)
        super().__init__(loader, config)

    @property
    def attenuation_db(self) -> float:
        return self._config.attenuation_db


class DTLNProcessor(BackendProcessor):
    """Dual-signal transformation network at 16 kHz, 512-sample frames."""

    name = "dtln-noise-filter"
    kind = BackendKind.DTLN


class KoalaProcessor(BackendProcessor):
    """Commercial vendor SDK; frame length and rate are reported by the SDK."""

    name = "koala-noise-filter"
    kind = BackendKind.KOALA


PROCESSOR_CLASSES: dict[BackendKind, type] = {
    BackendKind.SPECTRAL: SpectralDenoiserProcessor,
    BackendKind.RNNOISE: RNNoiseProcessor,
    BackendKind.DEEPFILTER: DeepFilterProcessor,
    BackendKind.DTLN: DTLNProcessor,
    BackendKind.KOALA: KoalaProcessor,
}
