"""Processors that run a loaded backend over fixed-size frames."""

import asyncio
import math
import threading
from typing import Callable, Optional

import numpy as np

from ..backends.registry import BackendLoader, get_default_loader
from ..exceptions import BackendUnavailable, FrameProcessingFault
from ..graph import DestinationNode, ProcessingNode, TrackSourceNode
from ..interfaces import BackendHandle
from ..logging_utils import get_logger
from ..models import (
    AudioBuffer,
    BackendConfig,
    BackendKind,
    FrameFaultEvent,
    ProcessorOptions,
    ProcessorState,
)
from ..resampling import StreamingResampler, resample
from .base import BaseProcessor

logger = get_logger(__name__)


class BackendStage:
    """Frames pipeline-rate audio for a backend and adapts sample rates.

    A frame the backend fails on is passed through unmodified and reported.
    The live path keeps FIFOs between arbitrary block sizes and the
    backend's fixed frame length; the offline path copies the final
    partial frame through unprocessed.

    Calls into the handle hold ``lock``. The owning processor closes the
    handle under the same lock, so a frame in flight always completes first.
    """

    def __init__(
        self,
        handle: BackendHandle,
        pipeline_rate: int,
        name: str,
        on_fault: Optional[Callable[[FrameProcessingFault], None]] = None,
        lock: Optional[threading.Lock] = None,
    ) -> None:
        self.handle = handle
        self.name = name
        self.pipeline_rate = pipeline_rate
        self.native_rate = handle.sample_rate
        self.frame_length = handle.frame_length
        self.frames_processed = 0
        self._on_fault = on_fault
        self._lock = lock or threading.Lock()

        self._to_native = StreamingResampler(pipeline_rate, self.native_rate)
        self._to_pipeline = StreamingResampler(self.native_rate, pipeline_rate)
        self._input_fifo = np.zeros(0, dtype=np.float32)

        # Primed with silence so reads never run dry while a frame fills
        latency = math.ceil(self.frame_length * pipeline_rate / self.native_rate) + 2
        self._output_fifo = np.zeros(latency, dtype=np.float32)

    @property
    def resampling(self) -> bool:
        return self.native_rate != self.pipeline_rate

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        """Run one native-rate frame through the handle.

        Args:
            frame: Exactly ``frame_length`` samples at the backend rate

        Returns:
            The processed frame, or ``frame`` itself when the handle is
            closed or fails on it
        """
        index = self.frames_processed
        self.frames_processed += 1
        try:
            with self._lock:
                if self.handle.closed:
                    return frame
                output = np.asarray(self.handle.process_frame(frame), dtype=np.float32)
            if output.shape != frame.shape:
                raise ValueError(f"returned {output.shape} for a {frame.shape} frame")
            return output
        except Exception as e:
            fault = FrameProcessingFault(self.name, index, e)
            logger.warning(f"⚠️ {fault}")
            if self._on_fault is not None:
                self._on_fault(fault)
            return frame

    def process_block(self, block: np.ndarray) -> np.ndarray:
        """Live path: any block size in, same block size out."""
        self._input_fifo = np.concatenate([self._input_fifo, self._to_native.process(block)])

        produced = []
        while len(self._input_fifo) >= self.frame_length:
            frame = self._input_fifo[: self.frame_length]
            self._input_fifo = self._input_fifo[self.frame_length :]
            produced.append(self.process_frame(frame))

        if produced:
            converted = self._to_pipeline.process(np.concatenate(produced))
            self._output_fifo = np.concatenate([self._output_fifo, converted])

        frames = len(block)
        if len(self._output_fifo) < frames:
            logger.trace(f"{self.name}: output underrun by {frames - len(self._output_fifo)}")
            self._output_fifo = np.pad(self._output_fifo, (frames - len(self._output_fifo), 0))
        output = self._output_fifo[:frames]
        self._output_fifo = self._output_fifo[frames:]
        return output

    def render(self, samples: np.ndarray) -> np.ndarray:
        """Offline path: whole signal in, same length out."""
        length = len(samples)
        native = resample(samples, self.pipeline_rate, self.native_rate)

        output = native.copy()
        full = len(native) - len(native) % self.frame_length
        for start in range(0, full, self.frame_length):
            output[start : start + self.frame_length] = self.process_frame(
                native[start : start + self.frame_length]
            )

        converted = resample(output, self.native_rate, self.pipeline_rate)
        if len(converted) < length:
            converted = np.pad(converted, (0, length - len(converted)))
        return converted[:length]


class BackendProcessor(BaseProcessor):
    """Common lifecycle for the backend-driven processor variants."""

    kind: BackendKind = BackendKind.SPECTRAL

    def __init__(
        self,
        loader: Optional[BackendLoader] = None,
        config: Optional[BackendConfig] = None,
    ) -> None:
        super().__init__()
        self._loader = loader or get_default_loader()
        self._config = config or BackendConfig()
        self._handle: Optional[BackendHandle] = None
        self._handle_lock = threading.Lock()
        self._stage: Optional[BackendStage] = None
        self._source: Optional[TrackSourceNode] = None
        self._node: Optional[ProcessingNode] = None
        self._destination: Optional[DestinationNode] = None
        self._frames_before_restart = 0

    @property
    def handle(self) -> Optional[BackendHandle]:
        return self._handle

    @property
    def frames_processed(self) -> int:
        """Frames handed to the backend since construction."""
        current = self._stage.frames_processed if self._stage else 0
        return self._frames_before_restart + current

    def _report_fault(self, fault: FrameProcessingFault) -> None:
        self._publish_fault(FrameFaultEvent(self.name, fault.frame_index, str(fault.cause)))

    def _make_stage(self, handle: BackendHandle, pipeline_rate: int) -> BackendStage:
        return BackendStage(
            handle, pipeline_rate, self.name, on_fault=self._report_fault, lock=self._handle_lock
        )

    async def initialize(self, options: ProcessorOptions) -> None:
        """
        Load the backend and wire ``source -> backend -> destination``.

        Args:
            options: Input track and optional shared audio context

        Raises:
            BackendUnavailable: If the backend fails to load; the processor
                is left destroyed
        """
        await self._begin_initialize()
        logger.debug(f"⏳ Loading {self.kind.value} backend for {self.name}")

        result = await asyncio.to_thread(self._loader.load, self.kind, self._config)
        if not result.ok:
            self._transition(ProcessorState.DESTROYED)
            raise BackendUnavailable(self.kind.value, result.error or "unknown error")

        self._handle = result.handle
        try:
            context = self._open_context(options)
            self._stage = self._make_stage(self._handle, context.sample_rate)
            self._source = context.create_track_source(options.track)
            self._node = context.create_processing_node(self._stage.process_block, name=self.name)
            self._destination = context.create_destination()
            self._source.connect(self._node).connect(self._destination)
        except Exception:
            await self.destroy()
            raise

        self._processed_track = self._destination.track
        self._transition(ProcessorState.ACTIVE)
        logger.info(
            f"✅ {self.name} active ({self._handle.sample_rate} Hz backend, "
            f"{context.sample_rate} Hz pipeline)"
        )

    async def destroy(self) -> None:
        """
        Stop the output, disconnect the graph and release the backend.

        The handle is closed only after any frame the audio thread is
        processing has returned. Safe to call more than once.
        """
        if self._processed_track is not None:
            self._processed_track.stop()

        # Source side first, then the compute node, then the destination
        for node in (self._source, self._node, self._destination):
            if node is not None:
                try:
                    node.disconnect()
                except Exception as e:
                    logger.error(f"Failed to disconnect {node.name}: {e}")

        if self._handle is not None:
            try:
                await asyncio.to_thread(self._release_handle)
            except Exception as e:
                logger.error(f"Failed to release {self.kind.value} backend: {e}")

        if self._stage is not None:
            self._frames_before_restart += self._stage.frames_processed

        self._source = None
        self._node = None
        self._destination = None
        self._stage = None
        self._handle = None
        await self._finish_destroy()

    def _release_handle(self) -> None:
        with self._handle_lock:
            if self._handle is not None and not self._handle.closed:
                self._handle.close()

    def _on_backend_disposed(self) -> None:
        self._release_handle()

    async def render(self, buffer: AudioBuffer) -> AudioBuffer:
        """
        Process a whole buffer offline through the loaded backend.

        Backends keep per-stream state, so only the first channel is
        processed, as in the live graph, and its result fills every channel.

        Args:
            buffer: Input audio at any sample rate

        Returns:
            Buffer with the same shape and rate as ``buffer``

        Raises:
            ProcessorStateError: If the processor is not active
        """
        self._require_active()
        stage = self._make_stage(self._handle, buffer.sample_rate)
        processed = stage.render(buffer.channel(0))
        self._frames_before_restart += stage.frames_processed
        logger.debug(f"🎛️ {self.name} rendered {stage.frames_processed} frames offline")
        return buffer.with_samples(np.tile(processed, (buffer.channel_count, 1)))
