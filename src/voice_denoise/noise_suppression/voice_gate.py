"""Offline energy-based voice gate with redemption hysteresis."""

import numpy as np

from .config import (
    VAD_BASE_THRESHOLD,
    VAD_FADE_IN_DURATION,
    VAD_FRAME_DURATION,
    VAD_REDEMPTION_FRAMES,
    VAD_THRESHOLD_RANGE,
)
from .logging_utils import get_logger
from .models import AudioBuffer, SpeechRegion, VadResult

logger = get_logger(__name__)


def gate_threshold(sensitivity: float) -> float:
    """Linear RMS threshold: 0.005 at sensitivity 0 up to 0.045 at 1."""
    sensitivity = max(0.0, min(1.0, sensitivity))
    return VAD_BASE_THRESHOLD + sensitivity * VAD_THRESHOLD_RANGE


def apply_voice_gate(buffer: AudioBuffer, sensitivity: float) -> VadResult:
    """Silence everything outside detected speech.

    A 30 ms frame is speech when its RMS exceeds the threshold. Speech
    continues through up to 8 quiet frames (redemption), all of which stay
    in the output; the 8th closes the region at its start time. Samples
    outside speech are zeroed and every silence-to-speech boundary gets a
    5 ms linear fade-in. Audio that opens with speech is not faded.

    Args:
        buffer: Input audio; only channel 0 is analysed and gated
        sensitivity: 0..1, higher means a higher energy threshold

    Returns:
        Gated copy of the first channel plus the speech regions found
    """
    samples = buffer.channel(0)
    sample_rate = buffer.sample_rate
    frame_size = max(1, int(round(sample_rate * VAD_FRAME_DURATION)))
    threshold = gate_threshold(sensitivity)

    speech_mask = np.zeros(len(samples), dtype=bool)
    regions: list[SpeechRegion] = []
    speaking = False
    silence_frames = 0
    speech_start = 0.0

    for start in range(0, len(samples), frame_size):
        end = min(start + frame_size, len(samples))
        frame = samples[start:end].astype(np.float64)
        rms = float(np.sqrt(np.mean(frame * frame)))
        time_sec = start / sample_rate

        if rms > threshold:
            if not speaking:
                speaking = True
                speech_start = time_sec
            silence_frames = 0
            speech_mask[start:end] = True
        elif speaking:
            silence_frames += 1
            speech_mask[start:end] = True
            if silence_frames >= VAD_REDEMPTION_FRAMES:
                speaking = False
                regions.append(SpeechRegion(speech_start, time_sec))

    if speaking:
        regions.append(SpeechRegion(speech_start, len(samples) / sample_rate))

    gated = np.where(speech_mask, samples, 0.0).astype(np.float32)

    fade = int(round(sample_rate * VAD_FADE_IN_DURATION))
    if fade > 0 and len(speech_mask):
        onsets = np.flatnonzero(speech_mask & ~np.concatenate([[True], speech_mask[:-1]]))
        ramp = np.arange(fade, dtype=np.float32) / fade
        for onset in onsets:
            length = min(fade, len(gated) - onset)
            gated[onset : onset + length] *= ramp[:length]

    logger.debug(f"🗣️ Voice gate: {len(regions)} regions at threshold {threshold:.3f}")
    return VadResult(gated=AudioBuffer.from_mono(gated, sample_rate), regions=regions)
