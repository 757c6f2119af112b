"""Data models for noise suppression and analysis."""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from .config import (
    DEEPFILTER_DEFAULT_LEVEL,
    DEEPFILTER_MAX_LEVEL,
    DEEPFILTER_MIN_LEVEL,
    DEFAULT_PRE_GAIN,
    DEFAULT_STRENGTH,
    DEFAULT_VAD_SENSITIVITY,
)
from .exceptions import BackendUnavailable

if TYPE_CHECKING:
    from .graph import AudioContext
    from .interfaces import BackendHandle, MediaTrack


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


class AudioBuffer:
    """Immutable multi-channel PCM buffer.

    Samples are stored as a read-only ``(channels, frames)`` float32 array.
    Stages that change audio return a new buffer.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int) -> None:
        data = np.array(samples, dtype=np.float32, copy=True)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2 or data.shape[0] < 1:
            raise ValueError(f"Expected (channels, frames) samples, got shape {data.shape}")
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")
        data.flags.writeable = False
        self._samples = data
        self.sample_rate = int(sample_rate)

    @classmethod
    def from_mono(cls, samples: np.ndarray, sample_rate: int) -> "AudioBuffer":
        return cls(np.asarray(samples, dtype=np.float32)[np.newaxis, :], sample_rate)

    @property
    def samples(self) -> np.ndarray:
        return self._samples

    @property
    def channel_count(self) -> int:
        return self._samples.shape[0]

    @property
    def frame_count(self) -> int:
        return self._samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self._samples[index]

    def with_samples(self, samples: np.ndarray) -> "AudioBuffer":
        """Return a new buffer at the same rate holding ``samples``."""
        return AudioBuffer(samples, self.sample_rate)

    def __repr__(self) -> str:
        return (
            f"AudioBuffer(channels={self.channel_count}, frames={self.frame_count}, "
            f"sample_rate={self.sample_rate})"
        )


class BackendKind(Enum):
    """Noise suppression algorithm families."""

    SPECTRAL = "spectral"  # Spectral/statistical estimator
    RNNOISE = "rnnoise"  # Recurrent network
    DEEPFILTER = "deepfilter"  # Deep filtering with attenuation limit
    DTLN = "dtln"  # Dual-signal transformation LSTM
    KOALA = "koala"  # Commercial vendor SDK


class ProcessorState(Enum):
    """Lifecycle states shared by every processor."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    ACTIVE = "active"
    DESTROYED = "destroyed"


class BackendEvent(Enum):
    """Lifecycle callbacks a backend may raise."""

    READY = "ready"
    DISPOSED = "disposed"


@dataclass
class Metrics:
    """Signal statistics of a buffer's first channel."""

    rms: float
    rms_db: float
    peak: float
    peak_db: float
    crest_factor_db: float
    snr_db: float


@dataclass(frozen=True)
class SpeechRegion:
    """A span judged to contain speech, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, time_sec: float) -> bool:
        return self.start <= time_sec < self.end


@dataclass
class VadResult:
    """Output of the offline voice gate."""

    gated: AudioBuffer
    regions: list[SpeechRegion]


@dataclass
class Spectrogram:
    """Magnitude spectrogram in dB, shape ``(time_slices, freq_bins)``."""

    frames: np.ndarray
    sample_rate: int
    fft_size: int
    hop_size: int

    @property
    def time_slices(self) -> int:
        return self.frames.shape[0]

    @property
    def freq_bin_count(self) -> int:
        return self.fft_size >> 1

    def bin_frequency(self, index: int) -> float:
        return index * self.sample_rate / self.fft_size

    def slice_time(self, index: int) -> float:
        return index * self.hop_size / self.sample_rate


@dataclass(frozen=True)
class EffectSettings:
    """User-facing effect chain settings.

    At most one backend is selected at a time; ``backend=None`` means
    suppression is off.
    """

    backend: Optional[BackendKind] = None
    deepfilter_level: float = DEEPFILTER_DEFAULT_LEVEL
    vad_enabled: bool = False
    vad_sensitivity: float = DEFAULT_VAD_SENSITIVITY
    strength: float = DEFAULT_STRENGTH
    pre_gain: float = DEFAULT_PRE_GAIN

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "deepfilter_level",
            clamp(self.deepfilter_level, DEEPFILTER_MIN_LEVEL, DEEPFILTER_MAX_LEVEL),
        )
        object.__setattr__(self, "vad_sensitivity", clamp(self.vad_sensitivity, 0.0, 1.0))
        object.__setattr__(self, "strength", clamp(self.strength, 0.0, 1.0))
        object.__setattr__(self, "pre_gain", max(0.0, float(self.pre_gain)))

    def replace(self, **changes: Any) -> "EffectSettings":
        return dataclasses.replace(self, **changes)

    def toggle_backend(self, kind: BackendKind) -> "EffectSettings":
        """Select ``kind``, or switch suppression off if it is already selected."""
        return self.replace(backend=None if self.backend is kind else kind)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["backend"] = self.backend.value if self.backend else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EffectSettings":
        known = {f.name for f in dataclasses.fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if values.get("backend") is not None:
            values["backend"] = BackendKind(values["backend"])
        return cls(**values)


@dataclass
class BackendConfig:
    """Parameters handed to backend factories."""

    attenuation_db: float = DEEPFILTER_DEFAULT_LEVEL
    model_dir: Optional[str] = None
    access_key: Optional[str] = None


@dataclass
class LoadResult:
    """Outcome of a backend load attempt."""

    kind: BackendKind
    handle: Optional["BackendHandle"] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.handle is not None

    def unwrap(self) -> "BackendHandle":
        if self.handle is None:
            raise BackendUnavailable(self.kind.value, self.error or "unknown error")
        return self.handle


@dataclass
class ProcessorOptions:
    """What a processor needs to build its graph."""

    track: "MediaTrack"
    context: Optional["AudioContext"] = None


@dataclass
class FrameFaultEvent:
    """Published when a backend fails on a single frame."""

    processor: str
    frame_index: int
    error: str


@dataclass(frozen=True)
class CaptureConstraints:
    """Host-level capture enhancements. All must stay off for raw capture."""

    echo_cancellation: bool = False
    auto_gain_control: bool = False
    noise_suppression: bool = False


@dataclass
class HarnessResult:
    """Everything the test harness derives from one recording."""

    raw: AudioBuffer
    processed: AudioBuffer
    settings: EffectSettings
    raw_metrics: Metrics
    processed_metrics: Metrics
    regions: list[SpeechRegion] = field(default_factory=list)
    raw_spectrogram: Optional[Spectrogram] = None
    processed_spectrogram: Optional[Spectrogram] = None
    raw_waveform: Optional[np.ndarray] = None
    processed_waveform: Optional[np.ndarray] = None
