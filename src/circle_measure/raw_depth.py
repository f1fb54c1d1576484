from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

import numpy as np

from .aggregation import aggregate_pairs
from .models import RAW_MM_PER_M, MeasurementConfig
from .probe import TrackingSession
from .records import SamplePoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawDepthEstimate:
    """Distance from the camera derived from the raw depth map."""

    distance_m: float
    samples: tuple[SamplePoint, ...]

    @property
    def contributing_count(self) -> int:
        return sum(1 for sample in self.samples if sample.included_in_calculation)


class RawDepthEstimator:
    """Samples confident raw depth values around a target point."""

    def __init__(
        self,
        session: TrackingSession,
        config: MeasurementConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.session = session
        self.config = config or MeasurementConfig()
        self.rng = rng or random.Random()
        self._image_point = np.zeros(2, dtype=np.float32)
        self._view_point = np.zeros(2, dtype=np.float32)

    def _accepts(self, value_mm: float, confidence: float) -> bool:
        return confidence > self.config.min_raw_depth_confidence and value_mm > 0

    def estimate(self, frame: Any, target_x: float, target_y: float) -> RawDepthEstimate:
        offset = self.config.raw_depth_offset_px
        base_x = int(target_x)
        base_y = int(target_y)

        distances: list[tuple[float, float]] = []
        samples: list[SamplePoint] = []

        for _ in range(self.config.raw_depth_repeats):
            image_x = self.rng.randint(base_x - offset, base_x + offset)
            image_y = self.rng.randint(base_y - offset, base_y + offset)

            self._image_point[0] = image_x
            self._image_point[1] = image_y
            self.session.transform_image_to_view(frame, self._image_point, self._view_point)
            raw = self.session.raw_depth_and_confidence(
                frame, int(self._view_point[0]), int(self._view_point[1])
            )
            if raw is None:
                logger.debug("no raw depth at image (%d, %d)", image_x, image_y)
                continue

            value_mm, confidence = float(raw[0]), float(raw[1])
            included = self._accepts(value_mm, confidence)
            samples.append(
                SamplePoint(
                    image_x=float(image_x),
                    image_y=float(image_y),
                    distance_from_camera=value_mm,
                    confidence=confidence,
                    included_in_calculation=included,
                )
            )
            if included:
                distances.append((value_mm, 0.0))

        if not distances:
            logger.info("raw depth: no sample passed the confidence gate")
            return RawDepthEstimate(distance_m=0.0, samples=tuple(samples))

        distance_mm, _ = aggregate_pairs(distances, outlier_fraction=self.config.outlier_fraction)
        logger.info(
            "raw depth: %d/%d samples accepted, distance %.1f mm",
            len(distances),
            self.config.raw_depth_repeats,
            distance_mm,
        )
        return RawDepthEstimate(distance_m=distance_mm / RAW_MM_PER_M, samples=tuple(samples))
