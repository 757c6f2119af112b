"""Processors used when no suppression backend is selected."""

from typing import Optional

import numpy as np

from ..graph import DestinationNode, GainNode, TrackSourceNode
from ..logging_utils import get_logger
from ..models import AudioBuffer, ProcessorOptions, ProcessorState
from .base import BaseProcessor

logger = get_logger(__name__)


class PassThroughProcessor(BaseProcessor):
    """Identity processor: output equals input."""

    name = "passthrough"

    def __init__(self) -> None:
        super().__init__()
        self._source: Optional[TrackSourceNode] = None
        self._destination: Optional[DestinationNode] = None

    async def initialize(self, options: ProcessorOptions) -> None:
        await self._begin_initialize()
        context = self._open_context(options)
        self._source = context.create_track_source(options.track)
        self._destination = context.create_destination()
        self._source.connect(self._destination)
        self._processed_track = self._destination.track
        self._transition(ProcessorState.ACTIVE)

    async def destroy(self) -> None:
        for node in (self._source, self._destination):
            if node is not None:
                node.disconnect()
        self._source = None
        self._destination = None
        await self._finish_destroy()

    async def render(self, buffer: AudioBuffer) -> AudioBuffer:
        """Return ``buffer`` unchanged. Requires an active processor."""
        self._require_active()
        return buffer


class GainProcessor(BaseProcessor):
    """Applies pre-gain only; used when suppression is off but gain is not unity."""

    name = "gain-processor"

    def __init__(self, gain: float = 1.0) -> None:
        super().__init__()
        self._gain = max(0.0, float(gain))
        self._source: Optional[TrackSourceNode] = None
        self._gain_node: Optional[GainNode] = None
        self._destination: Optional[DestinationNode] = None

    @property
    def gain(self) -> float:
        return self._gain

    def set_gain(self, value: float) -> None:
        """Clamp to >= 0 and apply to the live gain node when there is one."""
        self._gain = max(0.0, float(value))
        if self._gain_node is not None:
            self._gain_node.gain.set_value(self._gain)

    async def initialize(self, options: ProcessorOptions) -> None:
        await self._begin_initialize()
        context = self._open_context(options)
        self._source = context.create_track_source(options.track)
        self._gain_node = context.create_gain(self._gain, name="pre-gain")
        self._destination = context.create_destination()
        self._source.connect(self._gain_node).connect(self._destination)
        self._processed_track = self._destination.track
        self._transition(ProcessorState.ACTIVE)
        logger.debug(f"🎚️ Gain processor active (gain {self._gain:.2f})")

    async def destroy(self) -> None:
        for node in (self._source, self._gain_node, self._destination):
            if node is not None:
                node.disconnect()
        self._source = None
        self._gain_node = None
        self._destination = None
        await self._finish_destroy()

    async def render(self, buffer: AudioBuffer) -> AudioBuffer:
        self._require_active()
        return buffer.with_samples(buffer.samples * np.float32(self._gain))
