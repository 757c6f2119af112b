"""Builds processors from effect settings."""

from typing import Optional

from ..backends.registry import BackendLoader
from ..interfaces import AudioProcessor
from ..models import BackendConfig, BackendKind, EffectSettings
from .backend import BackendProcessor
from .denoisers import PROCESSOR_CLASSES, DeepFilterProcessor
from .mixer import DryWetMixer
from .passthrough import GainProcessor, PassThroughProcessor


def create_backend_processor(
    kind: BackendKind,
    loader: Optional[BackendLoader] = None,
    config: Optional[BackendConfig] = None,
    deepfilter_level: Optional[float] = None,
) -> BackendProcessor:
    """
    Build the processor variant for a backend kind.

    Args:
        kind: Backend to wrap
        loader: Loader for the backend; the default loader when omitted
        config: Backend options
        deepfilter_level: Attenuation limit in dB, used only for DeepFilterNet

    Returns:
        An uninitialized processor
    """
    if kind is BackendKind.DEEPFILTER and deepfilter_level is not None:
        return DeepFilterProcessor(loader, config, attenuation_db=deepfilter_level)
    return PROCESSOR_CLASSES[kind](loader, config)


def create_processor(
    settings: EffectSettings,
    loader: Optional[BackendLoader] = None,
    config: Optional[BackendConfig] = None,
) -> AudioProcessor:
    """Selected backend inside a dry/wet mixer; gain-only or identity when off."""
    if settings.backend is None:
        if settings.pre_gain != 1.0:
            return GainProcessor(settings.pre_gain)
        return PassThroughProcessor()

    inner = create_backend_processor(
        settings.backend, loader, config, deepfilter_level=settings.deepfilter_level
    )
    return DryWetMixer(inner, strength=settings.strength, pre_gain=settings.pre_gain)
