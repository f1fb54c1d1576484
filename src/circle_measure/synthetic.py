from __future__ import annotations

import math
import random
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from .errors import ImageNotYetAvailable, SessionUnavailable, ViewNotReady
from .models import CONVERSION_TO_CM, MeasurementConfig
from .probe import Classification, HitResult, Pose


@dataclass(frozen=True)
class SyntheticSceneConfig:
    """Configuration for a simulated tracking session looking at a disk."""

    scenario: str = "quiet_lab"
    seed: int = 42
    object_diameter_cm: float = 20.0
    # None places the disk so it exactly fills the measurement circle
    distance_m: float | None = None
    background_offset_m: float = 0.35
    focal_length_px: float = 1000.0
    image_width: int = 1280
    image_height: int = 960
    view_width: int = 960
    view_height: int = 720
    rotation_deg: int = 90
    untracked_frames: int = 0
    image_available_after: int = 0
    unavailable_frames: tuple[int, ...] = ()
    unavailable_reason: str = "paused"
    display_bound: bool = True

    def __post_init__(self) -> None:
        if self.scenario not in BENCH_SCENARIOS:
            raise ValueError(f"unsupported scenario: {self.scenario}")
        if self.object_diameter_cm <= 0:
            raise ValueError("object_diameter_cm must be positive")
        if self.distance_m is not None and self.distance_m <= 0:
            raise ValueError("distance_m must be positive")
        if self.background_offset_m < 0:
            raise ValueError("background_offset_m must be >= 0")
        if self.focal_length_px <= 0:
            raise ValueError("focal_length_px must be positive")
        if min(self.image_width, self.image_height, self.view_width, self.view_height) <= 0:
            raise ValueError("image and view sizes must be positive")


@dataclass(frozen=True)
class BenchScenario:
    """Noise and artifact envelope for the simulated tracking subsystem."""

    hit_noise_m: float
    raw_noise_mm: float
    low_confidence_probability: float
    missing_hit_probability: float
    missing_raw_probability: float
    outlier_probability: float
    outlier_m: float
    has_background: bool = True
    object_kind: Classification = Classification.DEPTH_POINT


BENCH_SCENARIOS: dict[str, BenchScenario] = {
    "quiet_lab": BenchScenario(
        hit_noise_m=0.0005,
        raw_noise_mm=2.0,
        low_confidence_probability=0.05,
        missing_hit_probability=0.0,
        missing_raw_probability=0.0,
        outlier_probability=0.0,
        outlier_m=0.0,
    ),
    "cluttered_background": BenchScenario(
        hit_noise_m=0.0015,
        raw_noise_mm=6.0,
        low_confidence_probability=0.2,
        missing_hit_probability=0.05,
        missing_raw_probability=0.05,
        outlier_probability=0.08,
        outlier_m=0.03,
    ),
    "low_texture": BenchScenario(
        hit_noise_m=0.003,
        raw_noise_mm=12.0,
        low_confidence_probability=0.55,
        missing_hit_probability=0.35,
        missing_raw_probability=0.2,
        outlier_probability=0.03,
        outlier_m=0.05,
        object_kind=Classification.POINT,
    ),
    "blind": BenchScenario(
        hit_noise_m=0.0,
        raw_noise_mm=0.0,
        low_confidence_probability=1.0,
        missing_hit_probability=1.0,
        missing_raw_probability=1.0,
        outlier_probability=0.0,
        outlier_m=0.0,
        has_background=False,
    ),
}


@dataclass(frozen=True)
class SyntheticFrame:
    index: int
    timestamp_s: float
    tracking: bool


@dataclass(frozen=True)
class SyntheticAnchor:
    trackable: str
    pose: Pose


def measurement_circle_radius_px(
    scene: SyntheticSceneConfig, measurement: MeasurementConfig
) -> float:
    """Outer radius of the measurement circle, in camera-image pixels."""

    overlay_radius = min(scene.view_width, scene.view_height) * measurement.overlay_screen_rate / 2
    return overlay_radius * measurement.circle_radius_rate


def fill_distance_m(scene: SyntheticSceneConfig, measurement: MeasurementConfig) -> float:
    radius_px = measurement_circle_radius_px(scene, measurement)
    return scene.focal_length_px * (scene.object_diameter_cm / CONVERSION_TO_CM / 2) / radius_px


class SyntheticTrackingSession:
    """Deterministic tracking session: pinhole camera facing a disk on a wall.

    The disk is fronto-parallel at ``distance_m``; an optional background
    plane sits ``background_offset_m`` behind it.
    """

    def __init__(
        self,
        scene: SyntheticSceneConfig | None = None,
        measurement: MeasurementConfig | None = None,
        frame_interval_s: float = 1.0 / 30.0,
    ) -> None:
        if frame_interval_s <= 0:
            raise ValueError("frame_interval_s must be positive")
        self.scene = scene or SyntheticSceneConfig()
        self.measurement = measurement or MeasurementConfig()
        self.scenario = BENCH_SCENARIOS[self.scene.scenario]
        self.frame_interval_s = frame_interval_s
        self.distance_m = (
            self.scene.distance_m
            if self.scene.distance_m is not None
            else fill_distance_m(self.scene, self.measurement)
        )
        self.display_bound = self.scene.display_bound
        self.anchor_count = 0

        self._rng = random.Random(self.scene.seed)
        self._image_rng = np.random.default_rng(self.scene.seed)
        self._frame_index = -1
        self._unavailable = set(self.scene.unavailable_frames)

        self._cx = self.scene.image_width / 2
        self._cy = self.scene.image_height / 2
        self._view_scale = max(
            self.scene.view_width / self.scene.image_width,
            self.scene.view_height / self.scene.image_height,
        )
        self._view_offset_x = (self.scene.view_width - self.scene.image_width * self._view_scale) / 2
        self._view_offset_y = (
            self.scene.view_height - self.scene.image_height * self._view_scale
        ) / 2

    @property
    def view_size(self) -> tuple[int, int]:
        return self.scene.view_width, self.scene.view_height

    def bind_display(self) -> None:
        self.display_bound = True

    def expected_diameter_cm(self, overlay_radius: float) -> float:
        """Diameter the engine should report for a given overlay radius."""

        r_outer = overlay_radius * self.measurement.circle_radius_rate
        return 2 * r_outer * self.distance_m / self.scene.focal_length_px * CONVERSION_TO_CM

    def update(self) -> SyntheticFrame:
        self._frame_index += 1
        if self._frame_index in self._unavailable:
            raise SessionUnavailable(self.scene.unavailable_reason)
        return SyntheticFrame(
            index=self._frame_index,
            timestamp_s=self._frame_index * self.frame_interval_s,
            tracking=self._frame_index >= self.scene.untracked_frames,
        )

    def is_tracking(self, frame: SyntheticFrame) -> bool:
        return frame.tracking

    def camera_rotation(self, frame: SyntheticFrame) -> int:
        return self.scene.rotation_deg

    def transform_image_to_view(
        self, frame: SyntheticFrame, image_points: np.ndarray, view_points: np.ndarray
    ) -> None:
        if not self.display_bound:
            raise ViewNotReady("display geometry is not bound")
        view_points[0::2] = image_points[0::2] * self._view_scale + self._view_offset_x
        view_points[1::2] = image_points[1::2] * self._view_scale + self._view_offset_y

    def _view_to_image(self, view_x: float, view_y: float) -> tuple[float, float]:
        return (
            (view_x - self._view_offset_x) / self._view_scale,
            (view_y - self._view_offset_y) / self._view_scale,
        )

    def _ray(self, image_x: float, image_y: float) -> tuple[float, float]:
        focal = self.scene.focal_length_px
        return (image_x - self._cx) / focal, (image_y - self._cy) / focal

    def _on_object(self, ray_x: float, ray_y: float) -> bool:
        radius_m = self.scene.object_diameter_cm / CONVERSION_TO_CM / 2
        return math.hypot(ray_x * self.distance_m, ray_y * self.distance_m) <= radius_m

    def hit_test(self, frame: SyntheticFrame, view_x: float, view_y: float) -> Sequence[HitResult]:
        if self._rng.random() < self.scenario.missing_hit_probability:
            return []

        ray_x, ray_y = self._ray(*self._view_to_image(view_x, view_y))
        if self._on_object(ray_x, ray_y):
            depth = self.distance_m
            kind = self.scenario.object_kind
            trackable = "object"
        elif self.scenario.has_background:
            depth = self.distance_m + self.scene.background_offset_m
            kind = Classification.PLANE
            trackable = "background"
        else:
            return []

        depth += self._rng.gauss(0.0, self.scenario.hit_noise_m)
        if self._rng.random() < self.scenario.outlier_probability:
            depth += self.scenario.outlier_m if self._rng.random() < 0.5 else -self.scenario.outlier_m

        pose = Pose(tx=ray_x * depth, ty=ray_y * depth, tz=depth)
        return [
            HitResult(
                trackable=trackable,
                pose=pose,
                distance=depth * math.sqrt(1.0 + ray_x * ray_x + ray_y * ray_y),
                kinds=frozenset({kind}),
            )
        ]

    def raw_depth_and_confidence(
        self, frame: SyntheticFrame, view_x: int, view_y: int
    ) -> tuple[float, float] | None:
        if self._rng.random() < self.scenario.missing_raw_probability:
            return None

        ray_x, ray_y = self._ray(*self._view_to_image(view_x, view_y))
        if self._on_object(ray_x, ray_y):
            depth_m = self.distance_m
        elif self.scenario.has_background:
            depth_m = self.distance_m + self.scene.background_offset_m
        else:
            return 0.0, 0.0

        if self._rng.random() < self.scenario.low_confidence_probability:
            confidence = self._rng.uniform(0.3, 0.85)
            noise_scale = self.scenario.raw_noise_mm * 4.0
        else:
            confidence = self._rng.uniform(0.91, 0.99)
            noise_scale = self.scenario.raw_noise_mm
        value_mm = max(0.0, depth_m * 1000.0 + self._rng.gauss(0.0, noise_scale))
        return round(value_mm), confidence

    def create_anchor(self, trackable: str, pose: Pose) -> SyntheticAnchor:
        self.anchor_count += 1
        return SyntheticAnchor(trackable=trackable, pose=pose)

    def acquire_image(self, frame: SyntheticFrame) -> np.ndarray:
        if frame.index < self.scene.image_available_after:
            raise ImageNotYetAvailable(f"no camera image for frame {frame.index}")

        height, width = self.scene.image_height, self.scene.image_width
        rows, cols = np.mgrid[0:height, 0:width]
        radius_px = (
            self.scene.focal_length_px
            * (self.scene.object_diameter_cm / CONVERSION_TO_CM / 2)
            / self.distance_m
        )
        disk = (cols - self._cx) ** 2 + (rows - self._cy) ** 2 <= radius_px**2

        image = np.full((height, width), 70.0)
        image[disk] = 190.0
        image += self._image_rng.normal(0.0, 6.0, size=image.shape)
        return np.clip(image, 0, 255).astype(np.uint8)


def available_scenarios() -> tuple[str, ...]:
    return tuple(sorted(BENCH_SCENARIOS))
