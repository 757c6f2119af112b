"""Speaker playback of recorded and processed clips."""

import asyncio
from typing import Any, Optional

import numpy as np
import pyaudio

from .config import AB_PLAYBACK_GAP, PLAYBACK_BLOCK_SIZE, PLAYBACK_CHANNELS
from .exceptions import PlaybackError
from .logging_utils import get_logger
from .models import AudioBuffer

logger = get_logger(__name__)


class AudioPlayer:
    """Plays buffers one at a time through the default output device.

    ``stop()`` is synchronous: it halts output, releases the device and
    cancels a pending A/B gap before returning.
    """

    def __init__(self, block_size: int = PLAYBACK_BLOCK_SIZE) -> None:
        self.block_size = block_size
        self._pyaudio = None
        self._stream = None
        self._frames: Optional[np.ndarray] = None
        self._position = 0
        self._done: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._gap_task: Optional[asyncio.Task] = None
        self._stopped = False
        self._generation = 0

    @property
    def playing(self) -> bool:
        return self._stream is not None or self._gap_task is not None

    async def play(self, buffer: AudioBuffer) -> None:
        """Play ``buffer`` and wait until it finishes or ``stop()`` is called."""
        self.stop()
        self._stopped = False
        await self._play(buffer)

    async def _play(self, buffer: AudioBuffer) -> None:
        self._loop = asyncio.get_running_loop()
        self._generation += 1
        self._done = self._loop.create_future()
        self._frames = self._interleave(buffer)
        self._position = 0

        try:
            self._pyaudio = pyaudio.PyAudio()
            self._stream = self._pyaudio.open(
                format=pyaudio.paFloat32,
                channels=PLAYBACK_CHANNELS,
                rate=buffer.sample_rate,
                output=True,
                frames_per_buffer=self.block_size,
                stream_callback=self._on_output,
            )
            self._stream.start_stream()
        except OSError as e:
            self._release()
            raise PlaybackError(f"Failed to open output stream: {e}") from e

        logger.debug(f"🔈 Playing {buffer.duration:.2f}s")
        await self._done

    async def play_ab(self, first: AudioBuffer, second: AudioBuffer) -> None:
        """Play ``first``, pause 400 ms, then play ``second``."""
        self.stop()
        self._stopped = False
        await self._play(first)
        if self._stopped:
            return

        self._gap_task = asyncio.ensure_future(asyncio.sleep(AB_PLAYBACK_GAP))
        try:
            await self._gap_task
        except asyncio.CancelledError:
            return
        finally:
            self._gap_task = None

        if not self._stopped:
            await self._play(second)

    def stop(self) -> None:
        self._stopped = True
        if self._gap_task is not None:
            self._gap_task.cancel()
            self._gap_task = None
        self._release()
        self._resolve()

    @staticmethod
    def _interleave(buffer: AudioBuffer) -> np.ndarray:
        samples = buffer.samples
        if buffer.channel_count == 1:
            samples = np.repeat(samples, PLAYBACK_CHANNELS, axis=0)
        return np.ascontiguousarray(samples[:PLAYBACK_CHANNELS].T, dtype=np.float32)

    def _on_output(self, in_data: Any, frame_count: int, time_info: Any, status: int) -> tuple:
        frames = self._frames
        if frames is None:
            return (bytes(frame_count * PLAYBACK_CHANNELS * 4), pyaudio.paComplete)

        chunk = frames[self._position : self._position + frame_count]
        self._position += len(chunk)
        if len(chunk) < frame_count:
            chunk = np.pad(chunk, ((0, frame_count - len(chunk)), (0, 0)))
            if self._loop is not None:
                self._loop.call_soon_threadsafe(self._finish, self._generation)
            return (chunk.tobytes(), pyaudio.paComplete)
        return (chunk.tobytes(), pyaudio.paContinue)

    def _finish(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._release()
        self._resolve()

    def _resolve(self) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    def _release(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.warning(f"⚠️ Error closing output stream: {e}")
            self._stream = None
        if self._pyaudio is not None:
            self._pyaudio.terminate()
            self._pyaudio = None
        self._frames = None
