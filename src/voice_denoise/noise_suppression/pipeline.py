"""Live noise suppression pipeline for one microphone track."""

import asyncio
import threading
from typing import Any, Callable, Optional

import numpy as np

from .backends.registry import BackendLoader
from .config import DEFAULT_BLOCK_SIZE, MONITOR_SUPPORTED_SAMPLE_RATES
from .graph import SwitchableTrack
from .interfaces import AudioProcessor, MediaTrack
from .logging_utils import get_logger
from .models import BackendConfig, BackendKind, EffectSettings, ProcessorOptions
from .processors.factory import create_processor
from .processors.mixer import DryWetMixer
from .processors.passthrough import GainProcessor
from .settings_store import JsonSettingsStore
from .speech_monitor import SpeechMonitor

logger = get_logger(__name__)


class NoiseSuppressionPipeline:
    """Owns the active processor and exposes a stable output track.

    Backend switches build the new processor before tearing down the old
    one. Only the most recent switch request is installed, and a failed
    switch leaves the previous processor running.
    """

    def __init__(
        self,
        loader: Optional[BackendLoader] = None,
        backend_config: Optional[BackendConfig] = None,
        store: Optional[JsonSettingsStore] = None,
        settings: Optional[EffectSettings] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        self._loader = loader
        self._backend_config = backend_config
        self._store = store
        if settings is None:
            settings = store.load() if store is not None else EffectSettings()
        self._settings = settings
        self.block_size = block_size

        self._input: Optional[MediaTrack] = None
        self._output: Optional[SwitchableTrack] = None
        self._processor: Optional[AudioProcessor] = None
        self._monitor: Optional[SpeechMonitor] = None
        self._switch_nonce = 0
        self._switch_lock = asyncio.Lock()
        self.last_error: Optional[Exception] = None

        self._pump_thread: Optional[threading.Thread] = None
        self._pump_stop = threading.Event()

    @property
    def settings(self) -> EffectSettings:
        return self._settings

    @property
    def processor(self) -> Optional[AudioProcessor]:
        return self._processor

    @property
    def output_track(self) -> Optional[SwitchableTrack]:
        return self._output

    @property
    def speaking(self) -> Optional[bool]:
        return self._monitor.speaking if self._monitor is not None else None

    async def attach(
        self, track: MediaTrack, settings: Optional[EffectSettings] = None
    ) -> SwitchableTrack:
        """Start processing ``track``. Falls back to unprocessed audio on failure."""
        if settings is not None:
            self._settings = settings
        self._input = track
        self._output = SwitchableTrack(track)

        if track.sample_rate in MONITOR_SUPPORTED_SAMPLE_RATES:
            self._monitor = SpeechMonitor(track.sample_rate, self._settings.vad_sensitivity)
        else:
            logger.warning(f"⚠️ Speech gating unavailable at {track.sample_rate} Hz")

        try:
            await self._switch(self._settings)
        except Exception as e:
            self.last_error = e
            logger.warning(f"⚠️ Falling back to unprocessed audio: {e}")
            await self._switch(self._settings.replace(backend=None))
        return self._output

    async def update_settings(self, **changes: Any) -> EffectSettings:
        """Apply changes live.

        Strength and pre-gain are written to the running processor. Backend
        and attenuation changes rebuild it.

        Raises:
            BackendUnavailable: If the new backend fails to load; the
                previous processor and settings stay in place
        """
        new = self._settings.replace(**changes)
        if self._monitor is not None:
            self._monitor.set_sensitivity(new.vad_sensitivity)

        if self._processor is None:
            self._settings = new
        elif self._needs_rebuild(new):
            try:
                await self._switch(new)
            except Exception as e:
                self.last_error = e
                logger.warning(f"⚠️ Keeping {self._processor.name}: {e}")
                raise
        else:
            self._apply_live(new)
            self._settings = new

        self._persist()
        return self._settings

    def _needs_rebuild(self, new: EffectSettings) -> bool:
        current = self._settings
        if new.backend != current.backend:
            return True
        if new.backend is not None:
            return (
                new.backend is BackendKind.DEEPFILTER
                and new.deepfilter_level != current.deepfilter_level
            )
        return type(create_processor(new)) is not type(self._processor)

    def _apply_live(self, new: EffectSettings) -> None:
        processor = self._processor
        if isinstance(processor, DryWetMixer):
            processor.strength = new.strength
            processor.set_pre_gain(new.pre_gain)
        elif isinstance(processor, GainProcessor):
            processor.set_gain(new.pre_gain)

    async def _switch(self, settings: EffectSettings) -> None:
        self._switch_nonce += 1
        nonce = self._switch_nonce

        async with self._switch_lock:
            if nonce != self._switch_nonce:
                logger.debug("Switch superseded before it started")
                return

            processor = create_processor(settings, self._loader, self._backend_config)
            await processor.initialize(ProcessorOptions(track=self._input))

            if nonce != self._switch_nonce:
                logger.debug(f"Discarding {processor.name}: a newer switch was requested")
                await processor.destroy()
                return

            previous = self._processor
            self._processor = processor
            self._output.switch(processor.processed_track)
            self._settings = settings
            if previous is not None:
                await previous.destroy()
            logger.info(f"🔀 Active processor: {processor.name}")

    def _persist(self) -> None:
        if self._store is not None:
            self._store.save(self._settings)

    def start(self, sink: Callable[[np.ndarray], None]) -> None:
        """Run the audio pump on its own thread, delivering blocks to ``sink``."""
        if self._output is None:
            raise RuntimeError("Pipeline is not attached")
        if self._pump_thread is not None:
            return
        self._pump_stop.clear()
        self._pump_thread = threading.Thread(
            target=self._pump, args=(sink,), name="noise-suppression-pump", daemon=True
        )
        self._pump_thread.start()

    def _pump(self, sink: Callable[[np.ndarray], None]) -> None:
        idle_wait = self.block_size / self._output.sample_rate
        while not self._pump_stop.is_set():
            block = self._output.read(self.block_size)
            if block is None:
                break
            if self._output.source_ended:
                # Nothing upstream is pacing reads, so hold to real time
                self._pump_stop.wait(idle_wait)
            if self._settings.vad_enabled and self._monitor is not None:
                if not self._monitor.process_block(block):
                    block = np.zeros_like(block)
            sink(block)

    def stop(self) -> None:
        """Stop the pump thread, waiting briefly for it to exit."""
        self._pump_stop.set()
        if self._pump_thread is not None:
            self._pump_thread.join(timeout=1.0)
            self._pump_thread = None

    async def detach(self) -> None:
        """Stop the pump, destroy the active processor and end the output track."""
        self.stop()
        if self._processor is not None:
            await self._processor.destroy()
            self._processor = None
        if self._output is not None:
            self._output.stop()
        self._monitor = None
