from __future__ import annotations

from typing import Any

TIMEOUT_MESSAGE = (
    "Could not identify the circle. Please try to move the phone "
    "around to enable more precise measurement and try "
    "starting the analysis again."
)
VIEW_NOT_READY_MESSAGE = (
    "View was not available yet. Please, move the camera around and try again"
)
SAVE_FAILED_MESSAGE = (
    "Error while saving the circle identification data. Please try again."
)
SESSION_MESSAGES = {
    "camera_unavailable": "Camera not available. Try restarting the app.",
    "destroyed": "Session Destroyed. Try restarting the app.",
    "paused": "Session Paused Abruptly. Try restarting the app.",
}


class MeasurementError(RuntimeError):
    """Base class for failures of the measurement engine."""

    user_message: str = "Measurement failed. Please try again."


class ProbeMiss(MeasurementError):
    """A single probe found no trackable at the requested point."""

    def __init__(self, image_x: float, image_y: float) -> None:
        super().__init__(f"no trackable hit at image point ({image_x:.1f}, {image_y:.1f})")
        self.image_x = image_x
        self.image_y = image_y


class InsufficientSamples(MeasurementError):
    """A full estimator sweep produced zero usable samples."""

    def __init__(self, message: str, record: Any = None) -> None:
        super().__init__(message)
        self.record = record


class SessionUnavailable(MeasurementError):
    """The tracking session is not ready, paused, or destroyed."""

    def __init__(self, reason: str = "camera_unavailable") -> None:
        if reason not in SESSION_MESSAGES:
            raise ValueError(
                "reason must be one of: " + ", ".join(sorted(SESSION_MESSAGES))
            )
        super().__init__(f"tracking session unavailable: {reason}")
        self.reason = reason

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return SESSION_MESSAGES[self.reason]


class AnalysisTimeout(MeasurementError):
    """The scan timeout fired before a valid record was produced."""

    user_message = TIMEOUT_MESSAGE


class ViewNotReady(MeasurementError):
    """The display collaborator is not bound yet."""

    user_message = VIEW_NOT_READY_MESSAGE


class ImageNotYetAvailable(MeasurementError):
    """The camera image for the current frame cannot be acquired yet."""
