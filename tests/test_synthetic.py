from __future__ import annotations

import numpy as np
import pytest
from pytest import approx

from circle_measure.errors import ImageNotYetAvailable, SessionUnavailable, ViewNotReady
from circle_measure.models import MeasurementConfig
from circle_measure.probe import Classification
from circle_measure.synthetic import (
    SyntheticSceneConfig,
    SyntheticTrackingSession,
    available_scenarios,
    fill_distance_m,
    measurement_circle_radius_px,
)


def test_available_scenarios_are_sorted() -> None:
    assert available_scenarios() == (
        "blind",
        "cluttered_background",
        "low_texture",
        "quiet_lab",
    )


def test_fill_distance_places_disk_on_measurement_circle() -> None:
    scene = SyntheticSceneConfig()
    measurement = MeasurementConfig()

    assert measurement_circle_radius_px(scene, measurement) == approx(230.4)
    assert fill_distance_m(scene, measurement) == approx(1000.0 * 0.1 / 230.4)

    session = SyntheticTrackingSession(scene, measurement)
    assert session.expected_diameter_cm(288.0) == approx(20.0)


def test_hit_test_separates_object_and_background() -> None:
    session = SyntheticTrackingSession(SyntheticSceneConfig(seed=3))
    frame = session.update()

    center = session.hit_test(frame, 480.0, 360.0)
    corner = session.hit_test(frame, 0.0, 0.0)

    assert len(center) == 1
    assert center[0].trackable == "object"
    assert center[0].kinds == frozenset({Classification.DEPTH_POINT})
    assert center[0].distance == approx(session.distance_m, abs=0.005)
    assert corner[0].trackable == "background"
    assert corner[0].pose.tz == approx(session.distance_m + 0.35, abs=0.005)


def test_blind_scenario_never_hits() -> None:
    session = SyntheticTrackingSession(SyntheticSceneConfig(scenario="blind"))
    frame = session.update()

    assert all(not session.hit_test(frame, 480.0, 360.0) for _ in range(20))
    assert session.raw_depth_and_confidence(frame, 480, 360) is None


def test_raw_depth_reports_millimetres_with_confidence() -> None:
    session = SyntheticTrackingSession(SyntheticSceneConfig(seed=8))
    frame = session.update()

    readings = [session.raw_depth_and_confidence(frame, 480, 360) for _ in range(40)]

    confident = [value for value, confidence in readings if confidence > 0.9]
    assert confident
    assert np.median(confident) == approx(session.distance_m * 1000.0, abs=5.0)


def test_transform_maps_image_to_view() -> None:
    session = SyntheticTrackingSession()
    view = np.zeros(2, dtype=np.float32)

    session.transform_image_to_view(session.update(), np.array([640.0, 480.0]), view)

    assert view.tolist() == approx([480.0, 360.0])


def test_unbound_display_raises_view_not_ready() -> None:
    session = SyntheticTrackingSession(SyntheticSceneConfig(display_bound=False))
    frame = session.update()

    with pytest.raises(ViewNotReady):
        session.transform_image_to_view(frame, np.zeros(2), np.zeros(2))
    session.bind_display()
    session.transform_image_to_view(frame, np.zeros(2), np.zeros(2))


def test_frames_follow_configured_tracking_and_availability() -> None:
    session = SyntheticTrackingSession(
        SyntheticSceneConfig(untracked_frames=2, unavailable_frames=(3,))
    )

    frames = [session.update() for _ in range(3)]
    assert [session.is_tracking(frame) for frame in frames] == [False, False, True]
    with pytest.raises(SessionUnavailable) as error:
        session.update()
    assert error.value.reason == "paused"
    assert session.update().index == 4


def test_acquire_image_renders_disk() -> None:
    session = SyntheticTrackingSession(SyntheticSceneConfig(image_available_after=1))

    with pytest.raises(ImageNotYetAvailable):
        session.acquire_image(session.update())
    image = session.acquire_image(session.update())

    assert image.shape == (960, 1280)
    assert image.dtype == np.uint8
    assert image[480, 640] > image[10, 10]


def test_scene_rejects_unknown_scenario() -> None:
    with pytest.raises(ValueError, match="unsupported scenario"):
        SyntheticSceneConfig(scenario="foggy")
