"""Dry/wet mixer wrapping another processor."""

from typing import Optional

import numpy as np

from ..config import DEFAULT_PRE_GAIN, DEFAULT_STRENGTH
from ..graph import DestinationNode, GainNode, TrackSourceNode
from ..interfaces import AudioProcessor
from ..logging_utils import get_logger
from ..models import AudioBuffer, ProcessorOptions, ProcessorState
from .base import BaseProcessor

logger = get_logger(__name__)


class DryWetMixer(BaseProcessor):
    """Blends the input with an inner processor's output.

    Graph::

        source -> pre_gain -> dry_gain ------------------> destination
                          \\-> inner processor -> wet_gain -/

    ``dry = 1 - strength`` and ``wet = strength``. Strength and pre-gain
    changes are applied to the live gain parameters immediately.
    """

    name = "dry-wet-mix"

    def __init__(
        self,
        inner: AudioProcessor,
        strength: float = DEFAULT_STRENGTH,
        pre_gain: float = DEFAULT_PRE_GAIN,
    ) -> None:
        super().__init__()
        self._inner = inner
        self._strength = max(0.0, min(1.0, float(strength)))
        self._pre_gain_value = max(0.0, float(pre_gain))
        inner.add_fault_listener(self._publish_fault)

        self._source: Optional[TrackSourceNode] = None
        self._pre_gain: Optional[GainNode] = None
        self._pre_gain_destination: Optional[DestinationNode] = None
        self._dry: Optional[GainNode] = None
        self._wet: Optional[GainNode] = None
        self._wet_source: Optional[TrackSourceNode] = None
        self._destination: Optional[DestinationNode] = None

    def get_inner_processor(self) -> AudioProcessor:
        """Return the wrapped processor, e.g. to adjust backend-specific settings."""
        return self._inner

    @property
    def strength(self) -> float:
        return self._strength

    @strength.setter
    def strength(self, value: float) -> None:
        self._strength = max(0.0, min(1.0, float(value)))
        if self._state is ProcessorState.ACTIVE and self._dry is not None and self._wet is not None:
            self._dry.gain.set_value(1.0 - self._strength)
            self._wet.gain.set_value(self._strength)

    @property
    def pre_gain(self) -> float:
        return self._pre_gain_value

    def set_pre_gain(self, value: float) -> None:
        """Clamp to >= 0 and apply live. Ignored before initialization."""
        if self._pre_gain is None:
            return
        self._pre_gain_value = max(0.0, float(value))
        self._pre_gain.gain.set_value(self._pre_gain_value)

    async def initialize(self, options: ProcessorOptions) -> None:
        """
        Build the dry and wet paths and initialize the inner processor.

        The inner processor reads the pre-gained signal in the same audio
        context, so both paths advance together.

        Args:
            options: Input track and optional shared audio context

        Raises:
            Exception: Whatever the inner processor raised; the mixer is
                destroyed before it propagates
        """
        await self._begin_initialize()
        context = self._open_context(options)

        self._source = context.create_track_source(options.track)
        self._pre_gain = context.create_gain(self._pre_gain_value, name="pre-gain")
        self._dry = context.create_gain(1.0 - self._strength, name="dry")
        self._wet = context.create_gain(self._strength, name="wet")
        self._destination = context.create_destination()
        self._pre_gain_destination = context.create_destination()

        self._source.connect(self._pre_gain)
        self._pre_gain.connect(self._dry).connect(self._destination)
        self._pre_gain.connect(self._pre_gain_destination)

        try:
            await self._inner.initialize(ProcessorOptions(track=self._pre_gain_destination.track))
        except Exception:
            logger.warning(f"⚠️ {self.name}: inner {self._inner.name} failed to initialize")
            await self.destroy()
            raise

        inner_track = self._inner.processed_track
        if inner_track is not None:
            self._wet_source = context.create_track_source(inner_track)
            self._wet_source.connect(self._wet).connect(self._destination)

        self._processed_track = self._destination.track
        self._transition(ProcessorState.ACTIVE)
        logger.debug(
            f"🎚️ {self.name} active around {self._inner.name} "
            f"(strength {self._strength:.2f}, pre-gain {self._pre_gain_value:.2f})"
        )

    async def destroy(self) -> None:
        """Stop the output, destroy the inner processor and release the graph."""
        if self._processed_track is not None:
            self._processed_track.stop()

        try:
            await self._inner.destroy()
        except Exception as e:
            logger.error(f"Failed to destroy inner {self._inner.name}: {e}")

        for node in (
            self._source,
            self._pre_gain,
            self._pre_gain_destination,
            self._dry,
            self._wet_source,
            self._wet,
            self._destination,
        ):
            if node is not None:
                try:
                    node.disconnect()
                except Exception as e:
                    logger.error(f"Failed to disconnect {node.name}: {e}")

        self._source = None
        self._pre_gain = None
        self._pre_gain_destination = None
        self._dry = None
        self._wet = None
        self._wet_source = None
        self._destination = None
        await self._finish_destroy()

    async def render(self, buffer: AudioBuffer) -> AudioBuffer:
        """
        Mix a whole buffer offline: ``pre * (1 - strength) + inner(pre) * strength``.

        Args:
            buffer: Input audio

        Returns:
            Mixed buffer with the input's shape and rate

        Raises:
            ProcessorStateError: If the mixer is not active
        """
        self._require_active()
        pre = buffer.samples * np.float32(self._pre_gain_value)
        wet = (await self._inner.render(buffer.with_samples(pre))).samples

        frames = buffer.frame_count
        if wet.shape[1] < frames:
            wet = np.pad(wet, ((0, 0), (0, frames - wet.shape[1])))
        wet = wet[:, :frames]

        mixed = pre * np.float32(1.0 - self._strength) + wet * np.float32(self._strength)
        return buffer.with_samples(mixed)
