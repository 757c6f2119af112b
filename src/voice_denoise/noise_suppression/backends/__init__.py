"""Noise suppression backends."""

from .registry import BackendLoader, get_default_loader
from .spectral import SpectralDenoiser

__all__ = ["BackendLoader", "SpectralDenoiser", "get_default_loader"]
