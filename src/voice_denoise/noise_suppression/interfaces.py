"""Abstract interfaces for noise suppression components."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

from .models import AudioBuffer, FrameFaultEvent, ProcessorOptions, ProcessorState


class MediaTrack(ABC):
    """A live mono audio stream read block by block."""

    kind = "audio"

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Sample rate of the blocks returned by ``read``."""
        pass

    @abstractmethod
    def read(self, frames: int) -> Optional[np.ndarray]:
        """
        Read the next block of samples.

        Args:
            frames: Number of samples wanted

        Returns:
            A float32 block of exactly ``frames`` samples, or None once ended
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the stream. Subsequent reads return None."""
        pass

    @property
    @abstractmethod
    def ended(self) -> bool:
        pass


class BackendHandle(ABC):
    """A loaded noise suppression model operating on fixed-size frames."""

    name: str = "backend"

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Native sample rate of the model."""
        pass

    @property
    @abstractmethod
    def frame_length(self) -> int:
        """Exact number of samples ``process_frame`` accepts."""
        pass

    @abstractmethod
    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        """
        Denoise one frame.

        Args:
            frame: float32 samples in [-1, 1], exactly ``frame_length`` long

        Returns:
            Denoised float32 frame of the same length
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the model. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


class AudioProcessor(ABC):
    """Common contract of every noise processor variant."""

    name: str = "processor"

    @property
    @abstractmethod
    def state(self) -> ProcessorState:
        pass

    @property
    @abstractmethod
    def processed_track(self):
        """Output MediaTrack, available only while ACTIVE."""
        pass

    @abstractmethod
    async def initialize(self, options: ProcessorOptions) -> None:
        """
        Build the processing graph for a live track.

        Args:
            options: Input track and optional shared audio context

        Raises:
            BackendUnavailable: If the backend cannot be loaded
        """
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Release all resources. Idempotent and exception-safe."""
        pass

    @abstractmethod
    async def restart(self, options: ProcessorOptions) -> None:
        """Destroy, then initialize again with ``options``."""
        pass

    @abstractmethod
    async def render(self, buffer: AudioBuffer) -> AudioBuffer:
        """
        Process a whole buffer offline through the active compute stage.

        Args:
            buffer: Audio to process

        Returns:
            A new processed buffer
        """
        pass

    @abstractmethod
    def add_fault_listener(self, listener: Callable[[FrameFaultEvent], None]) -> None:
        pass
