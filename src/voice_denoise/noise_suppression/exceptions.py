"""Custom exceptions for noise suppression."""

from typing import Optional


class NoiseSuppressionError(Exception):
    """Base exception for noise suppression errors."""

    pass


class BackendUnavailable(NoiseSuppressionError):
    """Raised when a backend's compiled module or model cannot be loaded."""

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"Backend '{backend}' unavailable: {reason}")


class CaptureError(NoiseSuppressionError):
    """Exception raised for audio capture related errors."""

    pass


class DeviceAccessDenied(CaptureError):
    """Exception raised when the operating system refuses microphone access."""

    pass


class MicrophoneNotFoundError(CaptureError):
    """Exception raised when no microphone is found."""

    pass


class InsufficientCapture(CaptureError):
    """Exception raised when a recording holds almost no audio."""

    def __init__(self, captured: int, required: int) -> None:
        self.captured = captured
        self.required = required
        super().__init__(
            f"Almost no audio captured ({captured} samples, need {required})"
        )


class FrameProcessingFault(NoiseSuppressionError):
    """A backend failed on a single frame; the frame is passed through."""

    def __init__(
        self, backend: str, frame_index: int, cause: Optional[BaseException] = None
    ) -> None:
        self.backend = backend
        self.frame_index = frame_index
        self.cause = cause
        super().__init__(f"{backend} failed on frame {frame_index}: {cause}")


class ProcessorStateError(NoiseSuppressionError):
    """Exception raised when a processor is used in the wrong lifecycle state."""

    pass


class GraphError(NoiseSuppressionError):
    """Exception raised for invalid audio graph operations."""

    pass


class PlaybackError(NoiseSuppressionError):
    """Exception raised for audio output errors."""

    pass
