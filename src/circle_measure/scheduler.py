from __future__ import annotations

import logging
import queue
import random
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import numpy as np

from .diameter import DiameterEstimator
from .errors import (
    SAVE_FAILED_MESSAGE,
    VIEW_NOT_READY_MESSAGE,
    AnalysisTimeout,
    ImageNotYetAvailable,
    InsufficientSamples,
    MeasurementError,
    SessionUnavailable,
    ViewNotReady,
)
from .models import CONVERSION_TO_CM, MeasurementConfig
from .probe import AnchorProbe, TrackingSession
from .raw_depth import RawDepthEstimator
from .records import Circle, CircleDetectionRecord, OverlayGeometry

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    READY = "ready"
    MEASURING = "measuring"


class TickOutcome(str, Enum):
    NONE = "none"
    COMPLETED = "completed"
    RETRY = "retry"
    ABORTED = "aborted"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CapturedOverlay:
    """Circle defined from the overlay crop of one camera image."""

    circle: Circle
    overlay: OverlayGeometry
    frame_timestamp: str
    image: np.ndarray | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CaptureFailed:
    reason: str


@dataclass(frozen=True)
class TickResult:
    """Scheduler state after one frame tick."""

    state: ScanState
    countdown: int
    outcome: TickOutcome = TickOutcome.NONE
    record: CircleDetectionRecord | None = None
    message: str | None = None
    overlay_image: np.ndarray | None = field(default=None, compare=False, repr=False)


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]
RecordSink = Callable[[CircleDetectionRecord], None]
TransitionListener = Callable[[ScanState, ScanState], None]
MessageListener = Callable[[str], None]


def _default_timer(interval: float, function: Callable[[], None]) -> Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TimeoutGuard:
    """Analysis timeout whose expiry is consumed by the render thread.

    The timer thread only flags expiry for the scan generation it was armed
    with; the scheduler applies the abort on its next tick.
    """

    def __init__(self, timeout_s: float, timer_factory: TimerFactory | None = None) -> None:
        self.timeout_s = timeout_s
        self._timer_factory = timer_factory or _default_timer
        self._lock = threading.Lock()
        self._timer: Timer | None = None
        self._armed_generation: int | None = None
        self._expired_generation: int | None = None

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._armed_generation is not None

    def arm(self, generation: int) -> None:
        self.cancel()
        timer = self._timer_factory(self.timeout_s, lambda: self._expire(generation))
        with self._lock:
            self._timer = timer
            self._armed_generation = generation
            self._expired_generation = None
        timer.start()
        logger.debug("analysis timer started (%.1f s)", self.timeout_s)

    def cancel(self) -> None:
        with self._lock:
            timer = self._timer
            self._timer = None
            self._armed_generation = None
            self._expired_generation = None
        if timer is not None:
            timer.cancel()
            logger.debug("analysis timer cancelled")

    def _expire(self, generation: int) -> None:
        with self._lock:
            if generation != self._armed_generation:
                return
            self._expired_generation = generation

    def consume_expired(self, generation: int) -> bool:
        with self._lock:
            if self._expired_generation != generation:
                return False
            self._expired_generation = None
            self._armed_generation = None
            self._timer = None
            return True


class CircleHandoff:
    """Single-slot, lock-protected handoff from the capture worker."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slot: CapturedOverlay | CaptureFailed | None = None
        self._generation = 0

    def open(self) -> int:
        with self._lock:
            self._generation += 1
            self._slot = None
            return self._generation

    def post(self, generation: int, value: CapturedOverlay | CaptureFailed) -> bool:
        with self._lock:
            if generation != self._generation:
                return False
            self._slot = value
            return True

    def take(self) -> CapturedOverlay | CaptureFailed | None:
        with self._lock:
            value = self._slot
            self._slot = None
            return value

    def discard(self) -> None:
        with self._lock:
            self._generation += 1
            self._slot = None


def crop_overlay(
    image: np.ndarray,
    overlay_radius: float,
    circle_radius_rate: float,
    frame_timestamp: str,
) -> CapturedOverlay:
    """Crop the square overlay region around the image center and define the circle."""

    if image.ndim < 2:
        raise ValueError("camera image must be at least two-dimensional")
    height, width = image.shape[:2]
    crop_size = int(overlay_radius * 2)
    if crop_size <= 0:
        raise ValueError("overlay radius must be positive")

    center_x = width // 2
    center_y = height // 2
    crop_x = int(center_x - crop_size / 2)
    crop_y = int(center_y - crop_size / 2)
    if crop_x < 0 or crop_y < 0 or crop_x + crop_size > width or crop_y + crop_size > height:
        raise ValueError(
            f"overlay of {crop_size}px does not fit camera image {width}x{height}"
        )

    cropped = np.ascontiguousarray(image[crop_y : crop_y + crop_size, crop_x : crop_x + crop_size])
    return CapturedOverlay(
        circle=Circle(
            x=float(crop_size // 2),
            y=float(crop_size // 2),
            r_outer=overlay_radius * circle_radius_rate,
            found=True,
        ),
        overlay=OverlayGeometry(
            original_width=width,
            original_height=height,
            crop_x=crop_x,
            crop_y=crop_y,
            crop_width=crop_size,
            crop_height=crop_size,
        ),
        frame_timestamp=frame_timestamp,
        image=cropped,
    )


class ScanScheduler:
    """Frame-driven scan cycle: countdown, capture, measurement, timeout.

    ``tick`` must be called once per rendered frame from a single thread;
    that thread is the only one that mutates scheduler state. ``on_tap`` and
    ``request_cancel`` may be called from any thread and take effect on the
    next tick.
    """

    def __init__(
        self,
        session: TrackingSession,
        sink: RecordSink | None = None,
        config: MeasurementConfig | None = None,
        *,
        rng: random.Random | None = None,
        timer_factory: TimerFactory | None = None,
        executor: Executor | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.config = config or MeasurementConfig()
        self.probe = AnchorProbe(session)
        self.diameter_estimator = DiameterEstimator(self.probe, self.config)
        self.raw_depth_estimator = RawDepthEstimator(session, self.config, rng=rng)

        self._sink = sink
        self._timeout = TimeoutGuard(self.config.analysis_timeout_s, timer_factory)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="overlay-capture"
        )
        self._clock = clock or _utc_now
        self._handoff = CircleHandoff()
        self._capture_token = 0
        self._taps: queue.SimpleQueue[None] = queue.SimpleQueue()
        self._cancel_requested = threading.Event()

        self._state = ScanState.IDLE
        self._countdown = 0
        self._generation = 0
        self._overlay_radius = 0.0

        self._frames_until_autofocus = self.config.autofocus_frames
        self._first_autofocus = True
        self._focus_reset_requested = False

        self._transition_listeners: list[TransitionListener] = []
        self._message_listeners: list[MessageListener] = []

    def __enter__(self) -> ScanScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def countdown(self) -> int:
        return self._countdown

    @property
    def active(self) -> bool:
        return self._state is not ScanState.IDLE

    @property
    def overlay_radius(self) -> float:
        return self._overlay_radius

    @property
    def timeout_armed(self) -> bool:
        return self._timeout.armed

    def add_transition_listener(self, listener: TransitionListener) -> None:
        self._transition_listeners.append(listener)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def on_surface_changed(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("surface width and height must be positive")
        # shorter dimension keeps the overlay on screen
        self._overlay_radius = min(width, height) * self.config.overlay_screen_rate / 2

    def on_tap(self) -> None:
        self._taps.put(None)

    def request_cancel(self) -> None:
        self._cancel_requested.set()

    def consume_focus_reset(self) -> bool:
        requested = self._focus_reset_requested
        self._focus_reset_requested = False
        return requested

    def arm(self) -> bool:
        """Start a scan cycle; rejected while another cycle is active."""

        if self.active:
            logger.info("scan already active (%s); arm request ignored", self._state.value)
            return False
        self._generation += 1
        self._countdown = self.config.circle_detect_countdown
        self._set_state(ScanState.COUNTING_DOWN)
        self._timeout.arm(self._generation)
        logger.info("scan %d armed", self._generation)
        return True

    def cancel(self) -> bool:
        if not self.active:
            return False
        self._timeout.cancel()
        self._reset_to_idle()
        logger.info("scan %d cancelled", self._generation)
        return True

    def close(self) -> None:
        self._timeout.cancel()
        self._handoff.discard()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def tick(self, frame: Any) -> TickResult:
        if self._cancel_requested.is_set():
            self._cancel_requested.clear()
            if self.cancel():
                return self._result(TickOutcome.CANCELLED)

        if self.active and self._timeout.consume_expired(self._generation):
            return self._abort(AnalysisTimeout("analysis timeout elapsed"))

        self._update_autofocus()

        try:
            tracking = self.session.is_tracking(frame)
        except SessionUnavailable as error:
            return self._skip_unavailable(error)
        if not tracking:
            return self._result(TickOutcome.SKIPPED)

        if self._state is ScanState.COUNTING_DOWN:
            result = self._count_down(frame)
        elif self._state is ScanState.READY:
            result = self._measure_if_ready(frame)
        else:
            result = self._result(TickOutcome.NONE)

        if self._poll_tap() and self.arm():
            result = replace(result, state=self._state, countdown=self._countdown)
        return result

    def _poll_tap(self) -> bool:
        try:
            self._taps.get_nowait()
        except queue.Empty:
            return False
        logger.debug("tap detected")
        self._focus_reset_requested = True
        return True

    def _update_autofocus(self) -> None:
        self._frames_until_autofocus -= 1
        if self._frames_until_autofocus <= 0 and self._first_autofocus:
            self._first_autofocus = False
            self._focus_reset_requested = True

    def _count_down(self, frame: Any) -> TickResult:
        if self._countdown > 0:
            self._countdown -= 1
        if self._countdown > 0:
            return self._result(TickOutcome.NONE)
        return self._start_capture(frame)

    def _start_capture(self, frame: Any) -> TickResult:
        if self._overlay_radius <= 0:
            self._notify(VIEW_NOT_READY_MESSAGE)
            self._rearm()
            return self._result(TickOutcome.RETRY, message=VIEW_NOT_READY_MESSAGE)

        try:
            image = self.session.acquire_image(frame)
        except ImageNotYetAvailable:
            logger.info("camera image not yet available; re-arming countdown")
            self._rearm()
            return self._result(TickOutcome.RETRY)
        except SessionUnavailable as error:
            return self._skip_unavailable(error)

        frame_timestamp = self._clock().isoformat()
        self._capture_token = self._handoff.open()
        self._set_state(ScanState.READY)
        self._executor.submit(
            self._capture_job,
            self._capture_token,
            image,
            self._overlay_radius,
            frame_timestamp,
        )
        return self._result(TickOutcome.NONE)

    def _capture_job(
        self,
        token: int,
        image: np.ndarray,
        overlay_radius: float,
        frame_timestamp: str,
    ) -> None:
        try:
            captured: CapturedOverlay | CaptureFailed = crop_overlay(
                image, overlay_radius, self.config.circle_radius_rate, frame_timestamp
            )
        except ValueError as error:
            logger.warning("overlay capture failed: %s", error)
            captured = CaptureFailed(str(error))
        except Exception as error:
            logger.exception("overlay capture crashed")
            captured = CaptureFailed(f"{type(error).__name__}: {error}")
        if not self._handoff.post(token, captured):
            logger.debug("stale overlay capture %d dropped", token)

    def _measure_if_ready(self, frame: Any) -> TickResult:
        captured = self._handoff.take()
        if captured is None:
            return self._result(TickOutcome.NONE)
        if isinstance(captured, CaptureFailed):
            self._rearm()
            return self._result(TickOutcome.RETRY)

        self._set_state(ScanState.MEASURING)
        try:
            record = self._measure(frame, captured)
        except SessionUnavailable as error:
            logger.warning("session unavailable during measurement: %s", error)
            self._handoff.post(self._capture_token, captured)
            self._set_state(ScanState.READY)
            self._notify(error.user_message)
            return self._result(TickOutcome.SKIPPED, message=error.user_message)
        except ViewNotReady as error:
            logger.warning("view not ready during measurement: %s", error)
            self._notify(error.user_message)
            self._rearm()
            return self._result(TickOutcome.RETRY, message=error.user_message)
        except InsufficientSamples as error:
            logger.info("%s; re-arming countdown", error)
            self._rearm()
            return self._result(TickOutcome.RETRY, record=error.record)

        return self._complete(record, captured)

    def _skip_unavailable(self, error: SessionUnavailable) -> TickResult:
        logger.warning("session unavailable; frame skipped: %s", error)
        self._notify(error.user_message)
        return self._result(TickOutcome.SKIPPED, message=error.user_message)

    def _measure(self, frame: Any, captured: CapturedOverlay) -> CircleDetectionRecord:
        session_timestamp = self._clock().isoformat()
        center_x = captured.overlay.center_x
        center_y = captured.overlay.center_y

        anchor = self.probe.probe(frame, center_x, center_y)
        if not anchor.hit:
            raise InsufficientSamples(
                f"no anchor at circle center ({center_x:.1f}, {center_y:.1f})"
            )

        raw = self.raw_depth_estimator.estimate(frame, center_x, center_y)
        diameter = self.diameter_estimator.estimate(
            frame, captured.circle, center=(center_x, center_y)
        )
        rotation = self.session.camera_rotation(frame)
        logger.info(
            "measurement: diameter %.2f cm, distance %.3f m vs raw %.3f m",
            diameter.diameter_cm,
            diameter.distance_m,
            raw.distance_m,
        )

        record = CircleDetectionRecord(
            radius_cm=diameter.diameter_cm,
            avg_distance_cm=diameter.distance_m * CONVERSION_TO_CM,
            avg_raw_distance_cm=raw.distance_m * CONVERSION_TO_CM,
            frame_rotation=float(rotation),
            overlay=captured.overlay,
            session_timestamp=session_timestamp,
            frame_timestamp=captured.frame_timestamp,
            circle=captured.circle,
            diameter_samples=diameter.samples,
            distance_samples=raw.samples,
        )
        if record.radius_cm == 0:
            raise InsufficientSamples("diameter sweep produced no usable pairs", record=record)
        return record

    def _complete(self, record: CircleDetectionRecord, captured: CapturedOverlay) -> TickResult:
        self._timeout.cancel()
        try:
            if self._sink is not None:
                self._sink(record)
        except OSError as error:
            logger.error("record handoff failed: %s", error)
            self._reset_to_idle()
            self._notify(SAVE_FAILED_MESSAGE)
            return self._result(TickOutcome.ABORTED, record=record, message=SAVE_FAILED_MESSAGE)

        self._reset_to_idle()
        message = f"Data saved. R outer: {record.radius_cm}"
        logger.info("scan %d completed", self._generation)
        self._notify(message)
        return self._result(
            TickOutcome.COMPLETED,
            record=record,
            message=message,
            overlay_image=captured.image,
        )

    def _abort(self, error: MeasurementError) -> TickResult:
        logger.warning("scan %d aborted: %s", self._generation, error)
        self._timeout.cancel()
        self._reset_to_idle()
        self._notify(error.user_message)
        return self._result(TickOutcome.ABORTED, message=error.user_message)

    def _rearm(self) -> None:
        self._handoff.discard()
        self._countdown = self.config.circle_detect_countdown
        self._set_state(ScanState.COUNTING_DOWN)

    def _reset_to_idle(self) -> None:
        self._handoff.discard()
        self._countdown = 0
        self._set_state(ScanState.IDLE)

    def _set_state(self, state: ScanState) -> None:
        previous = self._state
        self._state = state
        if previous is state:
            return
        logger.debug("scan state %s -> %s", previous.value, state.value)
        for listener in self._transition_listeners:
            listener(previous, state)

    def _notify(self, message: str) -> None:
        logger.info("user message: %s", message)
        for listener in self._message_listeners:
            listener(message)

    def _result(
        self,
        outcome: TickOutcome,
        record: CircleDetectionRecord | None = None,
        message: str | None = None,
        overlay_image: np.ndarray | None = None,
    ) -> TickResult:
        return TickResult(
            state=self._state,
            countdown=self._countdown,
            outcome=outcome,
            record=record,
            message=message,
            overlay_image=overlay_image,
        )
