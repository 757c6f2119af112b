"""Lifecycle shared by every processor variant."""

import asyncio
from typing import Callable, Optional

from ..exceptions import ProcessorStateError
from ..graph import AudioContext
from ..interfaces import AudioProcessor, MediaTrack
from ..logging_utils import get_logger
from ..models import BackendEvent, FrameFaultEvent, ProcessorOptions, ProcessorState

logger = get_logger(__name__)

_TRANSITIONS = {
    ProcessorState.UNINITIALIZED: {ProcessorState.LOADING, ProcessorState.DESTROYED},
    ProcessorState.LOADING: {ProcessorState.ACTIVE, ProcessorState.DESTROYED},
    ProcessorState.ACTIVE: {ProcessorState.DESTROYED},
    ProcessorState.DESTROYED: {ProcessorState.LOADING, ProcessorState.DESTROYED},
}


class BaseProcessor(AudioProcessor):
    """State machine, restart serialisation and fault listeners."""

    name = "processor"

    def __init__(self) -> None:
        self._state = ProcessorState.UNINITIALIZED
        self._processed_track: Optional[MediaTrack] = None
        self._context: Optional[AudioContext] = None
        self._owns_context = False
        self._restart_lock = asyncio.Lock()
        self._fault_listeners: list[Callable[[FrameFaultEvent], None]] = []

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def processed_track(self) -> Optional[MediaTrack]:
        return self._processed_track

    @property
    def context(self) -> Optional[AudioContext]:
        return self._context

    def _transition(self, new_state: ProcessorState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise ProcessorStateError(
                f"{self.name}: invalid transition {self._state.value} -> {new_state.value}"
            )
        logger.trace(f"{self.name}: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _require_active(self) -> None:
        if self._state is not ProcessorState.ACTIVE:
            raise ProcessorStateError(f"{self.name} is {self._state.value}, not active")

    def _open_context(self, options: ProcessorOptions) -> AudioContext:
        if options.context is not None:
            self._context = options.context
            self._owns_context = False
        else:
            self._context = AudioContext(options.track.sample_rate)
            self._owns_context = True
        return self._context

    async def _close_context(self) -> None:
        context, owned = self._context, self._owns_context
        self._context = None
        self._owns_context = False
        if context is not None and owned and context.state != "closed":
            await context.close()

    async def _begin_initialize(self) -> None:
        if self._state is ProcessorState.ACTIVE:
            logger.debug(f"{self.name}: re-initializing an active processor")
            await self.destroy()
        self._transition(ProcessorState.LOADING)

    async def _finish_destroy(self) -> None:
        if self._processed_track is not None:
            self._processed_track.stop()
            self._processed_track = None
        await self._close_context()
        if self._state in (ProcessorState.LOADING, ProcessorState.ACTIVE):
            self._transition(ProcessorState.DESTROYED)

    async def restart(self, options: ProcessorOptions) -> None:
        """
        Destroy then initialize again with new options.

        Concurrent restarts queue on a lock, so each destroy/initialize pair
        completes before the next begins.

        Args:
            options: Options for the new initialization
        """
        async with self._restart_lock:
            logger.debug(f"🔄 Restarting {self.name}")
            await self.destroy()
            await self.initialize(options)

    def handle_backend_event(self, event: BackendEvent) -> None:
        """Feed backend ready/disposed callbacks into the lifecycle."""
        if event is BackendEvent.READY and self._state is ProcessorState.LOADING:
            logger.debug(f"{self.name}: backend ready")
        elif event is BackendEvent.DISPOSED and self._state is ProcessorState.ACTIVE:
            logger.warning(f"⚠️ {self.name}: backend disposed while active")
            self._on_backend_disposed()

    def _on_backend_disposed(self) -> None:
        pass

    def add_fault_listener(self, listener: Callable[[FrameFaultEvent], None]) -> None:
        """
        Register a callback for frames the backend failed on.

        Args:
            listener: Called with a FrameFaultEvent, possibly from the audio thread
        """
        self._fault_listeners.append(listener)

    def remove_fault_listener(self, listener: Callable[[FrameFaultEvent], None]) -> None:
        if listener in self._fault_listeners:
            self._fault_listeners.remove(listener)

    def _publish_fault(self, event: FrameFaultEvent) -> None:
        for listener in tuple(self._fault_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Fault listener failed: {e}")
