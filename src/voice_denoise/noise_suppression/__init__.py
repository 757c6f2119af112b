"""Pluggable noise suppression with an offline test harness."""

from .analysis import (
    FFTCache,
    compute_crest_factor,
    compute_metrics,
    compute_peak,
    compute_rms,
    compute_spectrogram,
    estimate_snr,
)
from .backends.registry import BackendLoader
from .exceptions import (
    BackendUnavailable,
    CaptureError,
    DeviceAccessDenied,
    FrameProcessingFault,
    InsufficientCapture,
    NoiseSuppressionError,
)
from .harness import NoiseTestHarness
from .models import AudioBuffer, BackendKind, EffectSettings, Metrics, SpeechRegion
from .pipeline import NoiseSuppressionPipeline
from .processors import DryWetMixer, create_processor
from .voice_gate import apply_voice_gate

__all__ = [
    "AudioBuffer",
    "BackendKind",
    "BackendLoader",
    "BackendUnavailable",
    "CaptureError",
    "DeviceAccessDenied",
    "DryWetMixer",
    "EffectSettings",
    "FFTCache",
    "FrameProcessingFault",
    "InsufficientCapture",
    "Metrics",
    "NoiseSuppressionError",
    "NoiseSuppressionPipeline",
    "NoiseTestHarness",
    "SpeechRegion",
    "apply_voice_gate",
    "compute_crest_factor",
    "compute_metrics",
    "compute_peak",
    "compute_rms",
    "compute_spectrogram",
    "create_processor",
    "estimate_snr",
]
