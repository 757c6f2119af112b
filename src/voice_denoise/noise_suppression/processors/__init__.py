"""Noise processor variants and their shared lifecycle."""

from .backend import BackendProcessor, BackendStage
from .base import BaseProcessor
from .denoisers import (
    DeepFilterProcessor,
    DTLNProcessor,
    KoalaProcessor,
    RNNoiseProcessor,
    SpectralDenoiserProcessor,
)
from .factory import create_backend_processor, create_processor
from .mixer import DryWetMixer
from .passthrough import GainProcessor, PassThroughProcessor

__all__ = [
    "BackendProcessor",
    "BackendStage",
    "BaseProcessor",
    "DeepFilterProcessor",
    "DryWetMixer",
    "DTLNProcessor",
    "GainProcessor",
    "KoalaProcessor",
    "PassThroughProcessor",
    "RNNoiseProcessor",
    "SpectralDenoiserProcessor",
    "create_backend_processor",
    "create_processor",
]
