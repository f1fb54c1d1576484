from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import numpy as np

from .errors import ProbeMiss

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    """Kind of trackable behind a probe, or MISS when nothing was hit."""

    DEPTH_POINT = "DepthPoint"
    PLANE = "Plane"
    POINT = "Point"
    UNDEFINED = "Undefined"
    MISS = "Miss"

    @property
    def is_hit(self) -> bool:
        return self is not Classification.MISS


# first matching kind wins
CLASSIFICATION_PRIORITY = (
    Classification.DEPTH_POINT,
    Classification.PLANE,
    Classification.POINT,
)


@dataclass(frozen=True)
class Pose:
    """Translation part of a tracking-space pose, in metres."""

    tx: float
    ty: float
    tz: float

    @property
    def translation(self) -> np.ndarray:
        return np.array([self.tx, self.ty, self.tz], dtype=np.float64)

    def distance_to(self, other: Pose) -> float:
        return float(np.linalg.norm(self.translation - other.translation))


@dataclass(frozen=True)
class HitResult:
    """One ranked entry returned by the session hit-test."""

    trackable: Any
    pose: Pose
    distance: float
    kinds: frozenset[Classification] = frozenset()


@dataclass(frozen=True)
class ProbeResult:
    """Classified outcome of probing a single image point."""

    classification: Classification
    distance: float = 0.0
    pose: Pose | None = None
    anchor: Any = field(default=None, compare=False, repr=False)

    @property
    def hit(self) -> bool:
        return self.classification.is_hit and self.pose is not None

    def require_pose(self, image_x: float, image_y: float) -> Pose:
        if self.pose is None or not self.classification.is_hit:
            raise ProbeMiss(image_x, image_y)
        return self.pose


MISS = ProbeResult(classification=Classification.MISS)


class TrackingSession(Protocol):
    """Operations consumed from the external spatial-tracking session."""

    def update(self) -> Any: ...

    def is_tracking(self, frame: Any) -> bool: ...

    def camera_rotation(self, frame: Any) -> int: ...

    def transform_image_to_view(
        self, frame: Any, image_points: np.ndarray, view_points: np.ndarray
    ) -> None: ...

    def hit_test(self, frame: Any, view_x: float, view_y: float) -> Sequence[HitResult]: ...

    def raw_depth_and_confidence(
        self, frame: Any, view_x: int, view_y: int
    ) -> tuple[float, float] | None: ...

    def create_anchor(self, trackable: Any, pose: Pose) -> Any: ...

    def acquire_image(self, frame: Any) -> np.ndarray: ...


def classify_kinds(kinds: Iterable[Classification]) -> Classification:
    present = set(kinds)
    for candidate in CLASSIFICATION_PRIORITY:
        if candidate in present:
            return candidate
    return Classification.UNDEFINED


class AnchorProbe:
    """Maps image-pixel points to classified tracking-space samples."""

    def __init__(self, session: TrackingSession) -> None:
        self._session = session
        # scratch buffers reused by every probe
        self._image_point = np.zeros(2, dtype=np.float32)
        self._view_point = np.zeros(2, dtype=np.float32)

    @property
    def session(self) -> TrackingSession:
        return self._session

    def to_view(self, frame: Any, image_x: float, image_y: float) -> tuple[float, float]:
        self._image_point[0] = image_x
        self._image_point[1] = image_y
        self._session.transform_image_to_view(frame, self._image_point, self._view_point)
        return float(self._view_point[0]), float(self._view_point[1])

    def probe(self, frame: Any, image_x: float, image_y: float) -> ProbeResult:
        view_x, view_y = self.to_view(frame, image_x, image_y)
        hits = self._session.hit_test(frame, view_x, view_y)
        if not hits:
            logger.debug("probe miss at image (%.1f, %.1f)", image_x, image_y)
            return MISS

        nearest = hits[0]
        classification = classify_kinds(nearest.kinds)
        anchor = self._session.create_anchor(nearest.trackable, nearest.pose)
        logger.debug(
            "probe hit %s at image (%.1f, %.1f), distance %.4f m",
            classification.value,
            image_x,
            image_y,
            nearest.distance,
        )
        return ProbeResult(
            classification=classification,
            distance=float(nearest.distance),
            pose=nearest.pose,
            anchor=anchor,
        )

    def probe_point(self, frame: Any, point: Sequence[float]) -> ProbeResult:
        if len(point) != 2:
            raise ValueError("point must have exactly two coordinates")
        return self.probe(frame, float(point[0]), float(point[1]))
