"""Reading and writing clips as WAV files."""

import wave
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import numpy as np
from scipy.io import wavfile

from .logging_utils import get_logger
from .models import AudioBuffer

logger = get_logger(__name__)

SAMPLE_FORMATS = ("int16", "float32")


def export_filename(label: str, buffer: AudioBuffer, timestamp: Optional[datetime] = None) -> str:
    """Timestamped file name including the clip duration."""
    timestamp = timestamp or datetime.now()
    stamp = timestamp.strftime("%Y%m%d_%H%M%S")
    milliseconds = timestamp.microsecond // 1000
    return f"{label}_{stamp}_{milliseconds:03d}_{buffer.duration * 1000:.1f}ms.wav"


def _stereo(buffer: AudioBuffer) -> np.ndarray:
    """``(frames, 2)`` samples, duplicating mono into both channels."""
    samples = buffer.samples
    if buffer.channel_count == 1:
        samples = np.repeat(samples, 2, axis=0)
    return np.ascontiguousarray(samples[:2].T)


def export_wav(
    buffer: AudioBuffer, path: Union[str, Path], sample_format: str = "int16"
) -> Path:
    """
    Write a buffer as a stereo WAV file at its own sample rate.

    Args:
        buffer: Audio to write; mono is duplicated into both channels
        path: Output file path
        sample_format: "int16" for 16-bit PCM or "float32" for 32-bit float

    Returns:
        Path of the written file
    """
    if sample_format not in SAMPLE_FORMATS:
        raise ValueError(f"Unsupported sample format {sample_format!r}, use {SAMPLE_FORMATS}")

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    stereo = np.clip(_stereo(buffer), -1.0, 1.0)

    if sample_format == "int16":
        pcm = (stereo * 32767.0).astype("<i2")
        with wave.open(str(output_path), "wb") as wav_file:
            wav_file.setnchannels(2)
            wav_file.setsampwidth(2)
            wav_file.setframerate(buffer.sample_rate)
            wav_file.writeframes(pcm.tobytes())
    else:
        wavfile.write(str(output_path), buffer.sample_rate, stereo.astype(np.float32))

    logger.debug(f"💾 Saved {sample_format} WAV: {output_path}")
    return output_path


def read_wav(path: Union[str, Path]) -> AudioBuffer:
    """Load a WAV file as float32 in [-1, 1], one row per channel."""
    sample_rate, data = wavfile.read(str(path))
    if np.issubdtype(data.dtype, np.integer):
        scale = float(np.iinfo(data.dtype).max) + 1.0
        if data.dtype == np.uint8:
            data = data.astype(np.float32) - 128.0
            scale = 128.0
        samples = data.astype(np.float32) / scale
    else:
        samples = data.astype(np.float32)

    if samples.ndim == 1:
        samples = samples[np.newaxis, :]
    else:
        samples = samples.T
    return AudioBuffer(samples, int(sample_rate))
