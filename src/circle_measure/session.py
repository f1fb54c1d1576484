from __future__ import annotations

import logging
import random
from collections import Counter
from collections.abc import Callable
from concurrent.futures import Executor, Future
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from .errors import SessionUnavailable
from .models import MeasurementConfig
from .probe import TrackingSession
from .records import CircleDetectionRecord
from .scheduler import RecordSink, ScanScheduler, ScanState, TickOutcome
from .synthetic import SyntheticSceneConfig, SyntheticTrackingSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanSessionConfig:
    """Configuration for driving one scan over a stream of frames."""

    max_frames: int = 900
    frame_interval_s: float = 1.0 / 30.0
    tap_at_frame: int = 0

    def __post_init__(self) -> None:
        if self.max_frames < 1:
            raise ValueError("max_frames must be >= 1")
        if self.frame_interval_s <= 0:
            raise ValueError("frame_interval_s must be positive")
        if not 0 <= self.tap_at_frame < self.max_frames:
            raise ValueError("tap_at_frame must fall within max_frames")


@dataclass(frozen=True)
class ScanTransition:
    frame: int
    from_state: str
    to_state: str


@dataclass(frozen=True)
class ScanSessionResult:
    """Everything observed while a scheduler ran over the frame stream."""

    status: str
    records: tuple[CircleDetectionRecord, ...]
    transitions: tuple[ScanTransition, ...]
    messages: tuple[str, ...]
    frames: int
    outcome_counts: dict[str, int]
    focus_resets: int
    overlay_radius: float
    expected_diameter_cm: float | None = None

    @property
    def record(self) -> CircleDetectionRecord | None:
        return self.records[-1] if self.records else None


class SimulatedTimer:
    def __init__(self, queue: SimulatedTimerQueue, interval: float, function: Callable[[], None]):
        self._queue = queue
        self.interval = interval
        self.function = function
        self.due_s: float | None = None
        self.cancelled = False

    def start(self) -> None:
        self.due_s = self._queue.now_s + self.interval
        self._queue._pending.append(self)

    def cancel(self) -> None:
        self.cancelled = True


class SimulatedTimerQueue:
    """Timer factory driven by simulated frame time instead of a thread."""

    def __init__(self) -> None:
        self.now_s = 0.0
        self._pending: list[SimulatedTimer] = []

    def timer(self, interval: float, function: Callable[[], None]) -> SimulatedTimer:
        return SimulatedTimer(self, interval, function)

    def advance(self, dt: float) -> int:
        self.now_s += dt
        due = [
            timer
            for timer in self._pending
            if not timer.cancelled and timer.due_s is not None and timer.due_s <= self.now_s
        ]
        self._pending = [
            timer for timer in self._pending if not timer.cancelled and timer not in due
        ]
        for timer in due:
            timer.function()
        return len(due)


class ImmediateExecutor(Executor):
    """Runs submitted work inline so a simulated scan stays deterministic."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as error:  # delivered through the future
            future.set_exception(error)
        return future


def run_scan_session(
    session: TrackingSession,
    view_size: tuple[int, int],
    measurement: MeasurementConfig | None = None,
    config: ScanSessionConfig | None = None,
    *,
    rng: random.Random | None = None,
    sink: RecordSink | None = None,
    started_at: datetime | None = None,
) -> ScanSessionResult:
    """Tap once and tick the scheduler until the scan completes or aborts."""

    config = config or ScanSessionConfig()
    timers = SimulatedTimerQueue()
    origin = started_at or datetime.now(UTC)

    records: list[CircleDetectionRecord] = []
    transitions: list[ScanTransition] = []
    messages: list[str] = []
    outcomes: Counter[str] = Counter()
    focus_resets = 0
    frame_index = 0

    def collect(record: CircleDetectionRecord) -> None:
        if sink is not None:
            sink(record)
        records.append(record)

    def on_transition(previous: ScanState, current: ScanState) -> None:
        transitions.append(ScanTransition(frame_index, previous.value, current.value))

    scheduler = ScanScheduler(
        session,
        collect,
        measurement,
        rng=rng,
        timer_factory=timers.timer,
        executor=ImmediateExecutor(),
        clock=lambda: origin + timedelta(seconds=timers.now_s),
    )
    scheduler.add_transition_listener(on_transition)
    scheduler.add_message_listener(messages.append)

    status = "incomplete"
    frames = 0
    with scheduler:
        scheduler.on_surface_changed(*view_size)
        for frame_index in range(config.max_frames):
            frames = frame_index + 1
            if frame_index == config.tap_at_frame:
                scheduler.on_tap()

            try:
                frame = session.update()
            except SessionUnavailable as error:
                logger.warning("frame %d skipped: %s", frame_index, error)
                messages.append(error.user_message)
                outcomes[TickOutcome.SKIPPED.value] += 1
                timers.advance(config.frame_interval_s)
                continue

            result = scheduler.tick(frame)
            outcomes[result.outcome.value] += 1
            if scheduler.consume_focus_reset():
                focus_resets += 1

            if result.outcome is TickOutcome.COMPLETED:
                status = "completed"
                break
            if result.outcome is TickOutcome.ABORTED:
                status = "aborted"
                break
            timers.advance(config.frame_interval_s)

    logger.info(
        "scan session %s after %d frames (%d records)", status, frames, len(records)
    )
    return ScanSessionResult(
        status=status,
        records=tuple(records),
        transitions=tuple(transitions),
        messages=tuple(messages),
        frames=frames,
        outcome_counts=dict(outcomes),
        focus_resets=focus_resets,
        overlay_radius=scheduler.overlay_radius,
    )


def run_synthetic_scan(
    scene: SyntheticSceneConfig | None = None,
    measurement: MeasurementConfig | None = None,
    config: ScanSessionConfig | None = None,
    *,
    sink: RecordSink | None = None,
    started_at: datetime | None = None,
) -> ScanSessionResult:
    scene = scene or SyntheticSceneConfig()
    measurement = measurement or MeasurementConfig()
    config = config or ScanSessionConfig()
    session = SyntheticTrackingSession(scene, measurement, frame_interval_s=config.frame_interval_s)

    result = run_scan_session(
        session,
        session.view_size,
        measurement,
        config,
        rng=random.Random(scene.seed),
        sink=sink,
        started_at=started_at,
    )
    return replace(result, expected_diameter_cm=session.expected_diameter_cm(result.overlay_radius))
