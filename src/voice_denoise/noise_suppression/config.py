"""Configuration constants for noise suppression."""

import os
from pathlib import Path

# Audio Configuration
DEFAULT_SAMPLE_RATE = 48000  # Hz, requested capture rate
DEFAULT_BLOCK_SIZE = 480  # samples per graph block (10ms at 48kHz)
CAPTURE_CHANNELS = 1

# Recording
MIN_RECORD_DURATION = 3.0  # seconds
MAX_RECORD_DURATION = 10.0  # seconds
DEFAULT_RECORD_DURATION = 5.0  # seconds
RECORD_TAIL_PADDING = 0.2  # seconds - timer slack after the requested duration
MIN_CAPTURE_FRACTION = 0.5  # seconds of audio below which a recording is rejected

# Analysis
SPECTROGRAM_FFT_SIZE = 1024
SPECTROGRAM_HOP_SIZE = 256
SPECTROGRAM_FLOOR_DB = -100.0
SNR_MIN_SAMPLES = 20
SNR_NOISE_FRACTION = 0.1  # quietest share of samples treated as noise
SNR_SIGNAL_FRACTION = 0.5  # loudest share of samples treated as signal
SNR_SILENT_NOISE_DB = 60.0  # reported when the noise estimate is zero
WAVEFORM_DEFAULT_WIDTH = 800  # columns

# Offline voice gate
VAD_FRAME_DURATION = 0.03  # seconds
VAD_BASE_THRESHOLD = 0.005  # linear RMS at sensitivity 0
VAD_THRESHOLD_RANGE = 0.04  # added at sensitivity 1
VAD_REDEMPTION_FRAMES = 8
VAD_FADE_IN_DURATION = 0.005  # seconds
DEFAULT_VAD_SENSITIVITY = 0.5

# Live speech monitor (WebRTC VAD)
MONITOR_FRAME_DURATION = 30  # milliseconds
MONITOR_SUPPORTED_SAMPLE_RATES = [8000, 16000, 32000, 48000]  # Hz
MONITOR_REDEMPTION_MS = 240
MONITOR_MIN_SPEECH_MS = 90

# Mixer
DEFAULT_STRENGTH = 1.0
DEFAULT_PRE_GAIN = 1.0

# Backends
SPECTRAL_SAMPLE_RATE = 48000
SPECTRAL_FRAME_LENGTH = 480
SPECTRAL_NOISE_INIT_FRAMES = 10  # frames averaged before the noise estimate adapts
SPECTRAL_PRESENCE_RATIO = 5.0  # bin power over noise estimate that marks speech present
RNNOISE_SAMPLE_RATE = 48000
RNNOISE_FRAME_LENGTH = 480
DTLN_SAMPLE_RATE = 16000
DTLN_BLOCK_LENGTH = 512
DTLN_BLOCK_SHIFT = 128
DEEPFILTER_DEFAULT_LEVEL = 20.0  # dB attenuation limit in the harness
DEEPFILTER_MIN_LEVEL = 0.0
DEEPFILTER_MAX_LEVEL = 100.0
DEEPFILTER_CONTEXT_FRAMES = 8  # frames of history fed to each enhance call

DTLN_MODEL_DIR_ENV = "DTLN_MODEL_DIR"
KOALA_ACCESS_KEY_ENV = "PICOVOICE_ACCESS_KEY"

# Harness
REPROCESS_DEBOUNCE = 0.3  # seconds
DIAGNOSTIC_LOG_SIZE = 40  # entries
AB_PLAYBACK_GAP = 0.4  # seconds

# Playback
PLAYBACK_CHANNELS = 2
PLAYBACK_BLOCK_SIZE = 1024

# Storage
CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "voice_denoise"
SETTINGS_FILE = "effects.json"
EXPORT_DIR = Path("recordings")
