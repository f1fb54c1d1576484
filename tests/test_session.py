from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pytest import approx

from circle_measure.errors import SESSION_MESSAGES, TIMEOUT_MESSAGE, VIEW_NOT_READY_MESSAGE
from circle_measure.models import MeasurementConfig
from circle_measure.records import CircleDetectionRecord, validate_record
from circle_measure.session import (
    ScanSessionConfig,
    SimulatedTimerQueue,
    run_scan_session,
    run_synthetic_scan,
)
from circle_measure.synthetic import SyntheticSceneConfig, SyntheticTrackingSession


def test_quiet_lab_scan_measures_known_diameter() -> None:
    started_at = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

    result = run_synthetic_scan(SyntheticSceneConfig(seed=4), started_at=started_at)

    assert result.status == "completed"
    assert result.frames == 22
    assert result.expected_diameter_cm == approx(20.0)
    record = result.record
    assert record is not None
    assert record.radius_cm == approx(20.0, rel=0.02)
    assert record.avg_distance_cm == approx(43.7, abs=1.0)
    assert record.avg_raw_distance_cm == approx(43.4, abs=1.0)
    assert record.included_diameter_pairs == 90
    assert record.session_timestamp.startswith("2026-03-01T09:30:00.7")
    assert validate_record(record) == []
    assert result.transitions[0].frame == 0
    assert (result.transitions[0].from_state, result.transitions[0].to_state) == (
        "idle",
        "counting_down",
    )
    assert result.messages == (f"Data saved. R outer: {record.radius_cm}",)
    assert result.focus_resets >= 1


@pytest.mark.parametrize("scenario", ["cluttered_background", "low_texture"])
def test_noisy_scenarios_still_complete(scenario: str) -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(scenario=scenario, seed=11))

    assert result.status == "completed"
    record = result.record
    assert record is not None
    assert record.radius_cm == approx(20.0, rel=0.1)
    assert validate_record(record) == []


def test_blind_scan_times_out() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(scenario="blind"))

    assert result.status == "aborted"
    assert result.records == ()
    assert result.messages[-1] == TIMEOUT_MESSAGE
    assert 295 <= result.frames <= 305
    assert result.outcome_counts["retry"] > 5


def test_paused_frame_is_skipped_and_reported() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(unavailable_frames=(5,)))

    assert result.status == "completed"
    assert SESSION_MESSAGES["paused"] in result.messages
    assert result.frames == 23


def test_tap_waits_for_tracking() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(untracked_frames=30))

    assert result.status == "completed"
    assert result.outcome_counts["skipped"] == 30
    assert result.frames == 52


def test_late_camera_image_rearms_once() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(image_available_after=25))

    assert result.status == "completed"
    assert result.outcome_counts["retry"] == 1
    assert result.frames == 42


def test_unbound_display_reports_view_message_until_timeout() -> None:
    result = run_synthetic_scan(SyntheticSceneConfig(display_bound=False))

    assert result.status == "aborted"
    assert VIEW_NOT_READY_MESSAGE in result.messages


def test_run_scan_session_hands_record_to_sink() -> None:
    measurement = MeasurementConfig(circle_detect_countdown=5)
    session = SyntheticTrackingSession(SyntheticSceneConfig(seed=2), measurement)
    saved: list[CircleDetectionRecord] = []

    result = run_scan_session(
        session,
        session.view_size,
        measurement,
        ScanSessionConfig(max_frames=50, tap_at_frame=3),
        sink=saved.append,
    )

    assert result.status == "completed"
    assert saved == list(result.records)
    assert result.frames == 3 + 5 + 2


def test_incomplete_when_frames_run_out() -> None:
    result = run_synthetic_scan(config=ScanSessionConfig(max_frames=10))

    assert result.status == "incomplete"
    assert result.record is None


def test_simulated_timer_queue_fires_due_timers_once() -> None:
    timers = SimulatedTimerQueue()
    fired: list[str] = []
    first = timers.timer(1.0, lambda: fired.append("first"))
    second = timers.timer(0.5, lambda: fired.append("second"))
    first.start()
    second.start()
    second.cancel()

    assert timers.advance(0.6) == 0
    assert timers.advance(0.5) == 1
    assert timers.advance(5.0) == 0
    assert fired == ["first"]


def test_session_config_validates_tap_frame() -> None:
    with pytest.raises(ValueError, match="tap_at_frame"):
        ScanSessionConfig(max_frames=5, tap_at_frame=5)
