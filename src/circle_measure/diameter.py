from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from .aggregation import aggregate_pairs_detailed
from .models import CONVERSION_TO_CM, MeasurementConfig
from .probe import AnchorProbe
from .records import Circle, SamplePoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiameterEstimate:
    """Aggregated diameter sweep result with per-probe diagnostics."""

    diameter_cm: float
    distance_m: float
    samples: tuple[SamplePoint, ...]
    pair_count: int
    kept_pair_count: int

    @property
    def insufficient(self) -> bool:
        return self.pair_count == 0


def sweep_angles(config: MeasurementConfig) -> list[int]:
    """Angles in degrees covering half a turn; each also yields its opposite."""

    return list(range(config.start_angle_deg, config.stop_angle_deg, config.angle_step_deg))


def opposite_points(
    center_x: float, center_y: float, distance: float, angle_deg: float
) -> tuple[tuple[float, float], tuple[float, float]]:
    radians = math.radians(angle_deg)
    opposite = radians + math.pi
    first = (
        center_x + distance * math.sin(radians),
        center_y + distance * math.cos(radians),
    )
    second = (
        center_x + distance * math.sin(opposite),
        center_y + distance * math.cos(opposite),
    )
    return first, second


class DiameterEstimator:
    """Estimates the circle diameter from chords between opposite probes."""

    def __init__(self, probe: AnchorProbe, config: MeasurementConfig | None = None) -> None:
        self.probe = probe
        self.config = config or MeasurementConfig()

    def estimate(
        self,
        frame: Any,
        circle: Circle,
        center: tuple[float, float] | None = None,
    ) -> DiameterEstimate:
        """Sweep the circle and return (diameter in cm, distance in m).

        ``center`` is the circle center in full camera-image pixels; it
        defaults to the circle's own coordinates.
        """

        if not circle.found:
            raise ValueError("circle must be found before estimating its diameter")
        if circle.r_outer <= 0:
            raise ValueError("circle.r_outer must be positive")

        center_x, center_y = center if center is not None else (circle.x, circle.y)
        distance_from_center = circle.r_outer / self.config.radius_divider
        scale = circle.r_outer / distance_from_center

        pairs: list[tuple[float, float]] = []
        samples: list[SamplePoint] = []

        for angle in sweep_angles(self.config):
            (x1, y1), (x2, y2) = opposite_points(
                center_x, center_y, distance_from_center, angle
            )
            edge1 = self.probe.probe(frame, x1, y1)
            edge2 = self.probe.probe(frame, x2, y2)

            both_hit = edge1.hit and edge2.hit
            samples.append(SamplePoint.from_probe(x1, y1, edge1, included=both_hit))
            samples.append(SamplePoint.from_probe(x2, y2, edge2, included=both_hit))
            if not both_hit:
                continue

            pose1 = edge1.require_pose(x1, y1)
            pose2 = edge2.require_pose(x2, y2)
            chord_cm = pose1.distance_to(pose2) * CONVERSION_TO_CM
            diameter_cm = chord_cm * scale
            pair_distance = (edge1.distance + edge2.distance) / 2.0
            logger.debug(
                "angle %d: diameter %.3f cm, distance %.4f m", angle, diameter_cm, pair_distance
            )
            pairs.append((diameter_cm, pair_distance))

        aggregated = aggregate_pairs_detailed(pairs, outlier_fraction=self.config.outlier_fraction)
        if not pairs:
            logger.info("diameter sweep found no valid pairs")
        else:
            logger.info(
                "diameter sweep: %d pairs, %d kept, median %.3f cm, diameter %.3f cm",
                len(pairs),
                aggregated.kept,
                aggregated.median,
                aggregated.primary,
            )

        return DiameterEstimate(
            diameter_cm=aggregated.primary,
            distance_m=aggregated.secondary,
            samples=tuple(samples),
            pair_count=len(pairs),
            kept_pair_count=aggregated.kept,
        )
