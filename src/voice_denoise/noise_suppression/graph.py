"""Minimal pull-based audio graph.

Tracks are read block by block. A read on a destination's track pulls every
upstream node once per read position. Nodes cache the last block they
rendered, so a node feeding several outputs is only computed once.
"""

import itertools
import threading
from typing import Callable, Optional

import numpy as np

from .exceptions import GraphError
from .interfaces import MediaTrack
from .logging_utils import get_logger
from .models import AudioBuffer

logger = get_logger(__name__)

_track_ids = itertools.count(1)


class AudioParam:
    """A single automatable value, set immediately."""

    def __init__(self, value: float) -> None:
        self.value = float(value)

    def set_value(self, value: float) -> None:
        self.value = float(value)


class AudioNode:
    """Base node: sums its inputs then transforms the block."""

    def __init__(self, context: "AudioContext", name: str) -> None:
        self.context = context
        self.name = name
        self._inputs: list[AudioNode] = []
        self._outputs: list[AudioNode] = []
        self._cache_key: Optional[tuple[int, int]] = None
        self._cache: Optional[np.ndarray] = None

    @property
    def inputs(self) -> tuple["AudioNode", ...]:
        return tuple(self._inputs)

    @property
    def outputs(self) -> tuple["AudioNode", ...]:
        return tuple(self._outputs)

    def connect(self, destination: "AudioNode") -> "AudioNode":
        """
        Route this node's output into ``destination``.

        Args:
            destination: Node in the same, still open, context

        Returns:
            ``destination``, so connections can be chained

        Raises:
            GraphError: If either context is closed or they differ
        """
        if self.context.state == "closed" or destination.context.state == "closed":
            raise GraphError(f"Cannot connect {self.name}: context is closed")
        if destination.context is not self.context:
            raise GraphError(f"Cannot connect {self.name} to a node of another context")
        if destination not in self._outputs:
            self._outputs.append(destination)
            destination._inputs.append(self)
        return destination

    def disconnect(self) -> None:
        """Remove every outgoing connection."""
        for destination in tuple(self._outputs):
            if self in destination._inputs:
                destination._inputs.remove(self)
        self._outputs.clear()

    @property
    def ended(self) -> bool:
        inputs = self.inputs
        return bool(inputs) and all(node.ended for node in inputs)

    def pull(self, position: int, frames: int) -> np.ndarray:
        """
        Render ``frames`` samples at stream ``position``.

        Inputs are pulled and summed, then passed through ``process``. A
        repeated pull for the same block returns the cached result.
        """
        key = (position, frames)
        if key == self._cache_key and self._cache is not None:
            return self._cache

        block = np.zeros(frames, dtype=np.float32)
        for node in self.inputs:
            block += node.pull(position, frames)
        block = self.process(block)

        self._cache_key = key
        self._cache = block
        return block

    def process(self, block: np.ndarray) -> np.ndarray:
        return block


class GainNode(AudioNode):
    def __init__(self, context: "AudioContext", value: float = 1.0, name: str = "gain") -> None:
        super().__init__(context, name)
        self.gain = AudioParam(value)

    def process(self, block: np.ndarray) -> np.ndarray:
        return block * np.float32(self.gain.value)


class ProcessingNode(AudioNode):
    """Runs a block callable; used for backend compute stages."""

    def __init__(
        self,
        context: "AudioContext",
        processor: Callable[[np.ndarray], np.ndarray],
        name: str = "processing",
    ) -> None:
        super().__init__(context, name)
        self._processor = processor

    def process(self, block: np.ndarray) -> np.ndarray:
        return np.asarray(self._processor(block), dtype=np.float32)


class TrackSourceNode(AudioNode):
    """Reads a MediaTrack into the graph."""

    def __init__(self, context: "AudioContext", track: MediaTrack) -> None:
        super().__init__(context, "track-source")
        if track.sample_rate != context.sample_rate:
            raise GraphError(
                f"Track rate {track.sample_rate} Hz does not match context "
                f"rate {context.sample_rate} Hz"
            )
        self.track = track
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def pull(self, position: int, frames: int) -> np.ndarray:
        key = (position, frames)
        if key == self._cache_key and self._cache is not None:
            return self._cache

        block = None if self._ended else self.track.read(frames)
        if block is None:
            self._ended = True
            block = np.zeros(frames, dtype=np.float32)
        elif len(block) < frames:
            block = np.pad(block, (0, frames - len(block)))

        self._cache_key = key
        self._cache = np.asarray(block, dtype=np.float32)
        return self._cache


class DestinationNode(AudioNode):
    """Graph sink exposing its mix as a live track."""

    def __init__(self, context: "AudioContext") -> None:
        super().__init__(context, "destination")
        self.track = GraphTrack(self)


class GraphTrack(MediaTrack):
    """Live output of a destination node."""

    def __init__(self, destination: DestinationNode) -> None:
        self.id = f"graph-track-{next(_track_ids)}"
        self._destination = destination
        self._position = 0
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def sample_rate(self) -> int:
        return self._destination.context.sample_rate

    @property
    def ended(self) -> bool:
        return self._stopped

    def read(self, frames: int) -> Optional[np.ndarray]:
        with self._lock:
            if self._stopped or self._destination.context.state == "closed":
                return None
            if not self._destination.inputs or self._destination.ended:
                self._stopped = True
                return None
            block = self._destination.pull(self._position, frames)
            self._position += frames
            self._destination.context.advance_to(self._position)
            return block.copy()

    def stop(self) -> None:
        self._stopped = True


class BufferTrack(MediaTrack):
    """Plays the first channel of an AudioBuffer as a live track."""

    def __init__(self, buffer: AudioBuffer) -> None:
        self.id = f"buffer-track-{next(_track_ids)}"
        self._samples = buffer.channel(0)
        self._sample_rate = buffer.sample_rate
        self._position = 0
        self._stopped = False

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def ended(self) -> bool:
        return self._stopped or self._position >= len(self._samples)

    def read(self, frames: int) -> Optional[np.ndarray]:
        if self.ended:
            return None
        block = self._samples[self._position : self._position + frames]
        self._position += len(block)
        if len(block) < frames:
            block = np.pad(block, (0, frames - len(block)))
        return np.array(block, dtype=np.float32)

    def stop(self) -> None:
        self._stopped = True


class SwitchableTrack(MediaTrack):
    """Stable output track whose upstream source can be swapped.

    Never ends on its own: when the current source has ended or is missing,
    reads return silence until it is stopped.
    """

    def __init__(self, source: MediaTrack) -> None:
        self.id = f"switchable-track-{next(_track_ids)}"
        self._source = source
        self._sample_rate = source.sample_rate
        self._stopped = False
        self._source_ended = False

    @property
    def source(self) -> MediaTrack:
        return self._source

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def source_ended(self) -> bool:
        """True while reads are padding an ended source with silence."""
        return self._source_ended

    @property
    def ended(self) -> bool:
        return self._stopped

    def switch(self, source: MediaTrack) -> None:
        """
        Read from ``source`` from the next block on.

        Raises:
            GraphError: If ``source`` runs at another sample rate
        """
        if source.sample_rate != self._sample_rate:
            raise GraphError(
                f"Cannot switch to a {source.sample_rate} Hz track on a "
                f"{self._sample_rate} Hz output"
            )
        self._source = source
        self._source_ended = False
        logger.debug(f"🔀 Output switched to {getattr(source, 'id', source)}")

    def read(self, frames: int) -> Optional[np.ndarray]:
        if self._stopped:
            return None
        block = self._source.read(frames)
        self._source_ended = block is None
        if block is None:
            return np.zeros(frames, dtype=np.float32)
        return block

    def stop(self) -> None:
        self._stopped = True


class AudioContext:
    """Owns a set of nodes running at one sample rate."""

    def __init__(self, sample_rate: int) -> None:
        if sample_rate <= 0:
            raise GraphError(f"Sample rate must be positive, got {sample_rate}")
        self.sample_rate = int(sample_rate)
        self.state = "running"
        self._frames_rendered = 0

    @property
    def current_time(self) -> float:
        return self._frames_rendered / self.sample_rate

    def advance_to(self, position: int) -> None:
        """Move the clock to the furthest position any destination has read."""
        self._frames_rendered = max(self._frames_rendered, position)

    def _check_open(self) -> None:
        if self.state == "closed":
            raise GraphError("Audio context is closed")

    def create_gain(self, value: float = 1.0, name: str = "gain") -> GainNode:
        self._check_open()
        return GainNode(self, value, name)

    def create_track_source(self, track: MediaTrack) -> TrackSourceNode:
        self._check_open()
        return TrackSourceNode(self, track)

    def create_processing_node(
        self, processor: Callable[[np.ndarray], np.ndarray], name: str = "processing"
    ) -> ProcessingNode:
        self._check_open()
        return ProcessingNode(self, processor, name)

    def create_destination(self) -> DestinationNode:
        self._check_open()
        return DestinationNode(self)

    async def close(self) -> None:
        if self.state != "closed":
            self.state = "closed"
            logger.trace(f"🔇 Audio context closed at {self.current_time:.3f}s")
