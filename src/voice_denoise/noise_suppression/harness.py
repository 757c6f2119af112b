"""Offline A/B test harness: record, process, measure, play and export."""

import asyncio
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from .analysis import FFTCache, compute_metrics, compute_spectrogram, waveform_envelope
from .audio_capture import AudioCapture
from .backends.registry import BackendLoader
from .config import (
    DEFAULT_RECORD_DURATION,
    DIAGNOSTIC_LOG_SIZE,
    MAX_RECORD_DURATION,
    MIN_RECORD_DURATION,
    REPROCESS_DEBOUNCE,
)
from .exceptions import CaptureError, NoiseSuppressionError
from .graph import BufferTrack
from .logging_utils import get_logger
from .models import (
    AudioBuffer,
    BackendConfig,
    BackendKind,
    EffectSettings,
    FrameFaultEvent,
    HarnessResult,
    ProcessorOptions,
)
from .playback import AudioPlayer
from .processors.factory import create_processor
from .voice_gate import apply_voice_gate
from .wav_export import export_filename, export_wav

logger = get_logger(__name__)


class DiagnosticLog:
    """Bounded, timestamped, most-recent-first message trail."""

    def __init__(self, size: int = DIAGNOSTIC_LOG_SIZE) -> None:
        self._entries: deque[str] = deque(maxlen=size)

    def log(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self._entries.appendleft(f"[{stamp}] {message}")
        logger.debug(message)

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NoiseTestHarness:
    """Captures a raw clip and compares it with the processed result.

    Settings changes trigger a debounced reprocess. Only one reprocess runs
    at a time; a change made while one is running is picked up by the next
    debounce window.
    """

    def __init__(
        self,
        capture: Optional[AudioCapture] = None,
        player: Optional[AudioPlayer] = None,
        loader: Optional[BackendLoader] = None,
        backend_config: Optional[BackendConfig] = None,
        settings: Optional[EffectSettings] = None,
        debounce: float = REPROCESS_DEBOUNCE,
    ) -> None:
        self._capture = capture or AudioCapture()
        self._player = player or AudioPlayer()
        self._loader = loader
        self._backend_config = backend_config
        self._settings = settings or EffectSettings()
        self.debounce = debounce

        self.diagnostics = DiagnosticLog()
        self.fft_cache = FFTCache()
        self._raw: Optional[AudioBuffer] = None
        self._result: Optional[HarnessResult] = None
        self._processing = False
        self._pending = False
        self._debounce_task: Optional[asyncio.Task] = None

    @property
    def settings(self) -> EffectSettings:
        return self._settings

    @property
    def raw(self) -> Optional[AudioBuffer]:
        return self._raw

    @property
    def result(self) -> Optional[HarnessResult]:
        return self._result

    @property
    def processing(self) -> bool:
        return self._processing

    async def record(self, duration: float = DEFAULT_RECORD_DURATION) -> HarnessResult:
        """Capture ``duration`` seconds (3-10) and process them."""
        if not MIN_RECORD_DURATION <= duration <= MAX_RECORD_DURATION:
            raise ValueError(
                f"Duration must be between {MIN_RECORD_DURATION} and {MAX_RECORD_DURATION}s"
            )

        self.diagnostics.log(f"🎙️ Recording {duration:.1f}s")
        try:
            raw = await self._capture.record(duration)
        except CaptureError as e:
            self.diagnostics.log(f"❌ Capture failed: {e}")
            raise

        self.diagnostics.log(f"Captured {raw.frame_count} samples at {raw.sample_rate} Hz")
        return await self.load(raw)

    async def load(self, raw: AudioBuffer) -> HarnessResult:
        """Use ``raw`` as the current clip and process it immediately."""
        self._raw = raw
        result = await self.reprocess()
        if result is None:
            # A reprocess was already running; wait for the follow-up pass
            await self.wait_idle()
            result = self._result
        return result

    async def process_raw(
        self, raw: AudioBuffer, settings: Optional[EffectSettings] = None
    ) -> HarnessResult:
        """Render ``raw`` through the effect chain without audible output."""
        settings = settings or self._settings
        processed = raw
        regions = []

        processor = create_processor(settings, self._loader, self._backend_config)
        processor.add_fault_listener(self._on_fault)
        try:
            await processor.initialize(ProcessorOptions(track=BufferTrack(raw)))
            processed = await processor.render(raw)
            self.diagnostics.log(f"✅ {processor.name} rendered {processed.duration:.2f}s")
        except NoiseSuppressionError as e:
            self.diagnostics.log(f"⚠️ {processor.name} failed, showing raw audio: {e}")
        except Exception as e:
            logger.error(f"❌ Unexpected processing error in {processor.name}: {e}")
            self.diagnostics.log(f"❌ {processor.name} error: {e}")
        finally:
            await processor.destroy()

        if settings.vad_enabled:
            vad = apply_voice_gate(processed, settings.vad_sensitivity)
            processed = vad.gated
            regions = vad.regions
            self.diagnostics.log(f"🗣️ {len(regions)} speech regions")

        return HarnessResult(
            raw=raw,
            processed=processed,
            settings=settings,
            raw_metrics=compute_metrics(raw),
            processed_metrics=compute_metrics(processed),
            regions=regions,
            raw_spectrogram=compute_spectrogram(
                raw.channel(0), raw.sample_rate, cache=self.fft_cache
            ),
            processed_spectrogram=compute_spectrogram(
                processed.channel(0), processed.sample_rate, cache=self.fft_cache
            ),
            raw_waveform=waveform_envelope(raw.channel(0)),
            processed_waveform=waveform_envelope(processed.channel(0)),
        )

    def _on_fault(self, event: FrameFaultEvent) -> None:
        self.diagnostics.log(f"⚠️ {event.processor} frame {event.frame_index}: {event.error}")

    async def reprocess(self) -> Optional[HarnessResult]:
        """Process the current clip unless a pass is already running."""
        if self._raw is None:
            return None
        if self._processing:
            self._pending = True
            return None

        self._processing = True
        try:
            self._result = await self.process_raw(self._raw, self._settings)
            return self._result
        finally:
            self._processing = False
            if self._pending:
                self._pending = False
                self._schedule_reprocess()

    def update_settings(self, **changes: Any) -> EffectSettings:
        """Apply setting changes and schedule a debounced reprocess."""
        self._settings = self._settings.replace(**changes)
        self._schedule_reprocess()
        return self._settings

    def toggle_backend(self, kind: BackendKind) -> EffectSettings:
        """Backends are mutually exclusive; toggling the active one turns it off."""
        self._settings = self._settings.toggle_backend(kind)
        self._schedule_reprocess()
        return self._settings

    def _schedule_reprocess(self) -> None:
        if self._raw is None:
            return
        if self._debounce_task is not None:
            self._debounce_task.cancel()
        self._debounce_task = asyncio.ensure_future(self._debounced_reprocess())

    async def _debounced_reprocess(self) -> None:
        await asyncio.sleep(self.debounce)
        self._debounce_task = None
        await self.reprocess()

    async def wait_idle(self) -> None:
        """Wait until no debounce window is open and no reprocess is running."""
        while self._debounce_task is not None or self._processing:
            if self._debounce_task is not None:
                await asyncio.wait({self._debounce_task})
            else:
                await asyncio.sleep(0.01)

    def _clip(self, which: str) -> AudioBuffer:
        if self._result is None:
            raise NoiseSuppressionError("Nothing recorded yet")
        if which == "raw":
            return self._result.raw
        if which == "processed":
            return self._result.processed
        raise ValueError(f"Unknown clip {which!r}, use 'raw' or 'processed'")

    async def play(self, which: str = "processed") -> None:
        """
        Play one clip of the last recording.

        Args:
            which: "raw" or "processed"

        Raises:
            NoiseSuppressionError: If nothing has been recorded
            ValueError: If ``which`` names no clip
        """
        await self._player.play(self._clip(which))

    async def play_ab(self) -> None:
        """Raw first, then processed, with a fixed gap."""
        await self._player.play_ab(self._clip("raw"), self._clip("processed"))

    def stop_playback(self) -> None:
        self._player.stop()

    def export(
        self,
        which: str,
        path: Optional[Union[str, Path]] = None,
        sample_format: str = "int16",
        directory: Optional[Path] = None,
    ) -> Path:
        """
        Write a clip of the last recording to a WAV file.

        Args:
            which: "raw" or "processed"
            path: Target file; a timestamped name in ``directory`` when omitted
            sample_format: "int16" or "float32"
            directory: Where to place a generated filename

        Returns:
            Path of the written file
        """
        clip = self._clip(which)
        if path is None:
            path = Path(directory or ".") / export_filename(which, clip)
        written = export_wav(clip, path, sample_format)
        self.diagnostics.log(f"💾 Exported {which} to {written}")
        return written

    async def close(self) -> None:
        """Cancel any pending reprocess and stop playback."""
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        self._player.stop()
