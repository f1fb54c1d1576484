from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .models import CONVERSION_TO_MM
from .probe import Classification, ProbeResult


@dataclass(frozen=True)
class Circle:
    """Circle to measure, in overlay-crop image pixels."""

    x: float = 0.0
    y: float = 0.0
    r_outer: float = 0.0
    found: bool = False


NO_CIRCLE = Circle()


@dataclass(frozen=True)
class SamplePoint:
    """Diagnostic record of one probe attempt."""

    image_x: float
    image_y: float
    distance_from_camera: float
    world_x: float = 0.0
    world_y: float = 0.0
    world_z: float = 0.0
    confidence: float = -1.0
    classification: Classification | None = None
    included_in_calculation: bool = False

    @classmethod
    def from_probe(
        cls,
        image_x: float,
        image_y: float,
        result: ProbeResult,
        included: bool,
    ) -> SamplePoint:
        pose = result.pose
        return cls(
            image_x=image_x,
            image_y=image_y,
            distance_from_camera=result.distance * CONVERSION_TO_MM,
            world_x=pose.tx if pose is not None else 0.0,
            world_y=pose.ty if pose is not None else 0.0,
            world_z=pose.tz if pose is not None else 0.0,
            classification=result.classification,
            included_in_calculation=included,
        )


@dataclass(frozen=True)
class OverlayGeometry:
    """Overlay crop rectangle inside the full camera image."""

    original_width: int
    original_height: int
    crop_x: int
    crop_y: int
    crop_width: int
    crop_height: int

    @property
    def center_x(self) -> float:
        return float(self.original_width // 2)

    @property
    def center_y(self) -> float:
        return float(self.original_height // 2)


@dataclass(frozen=True)
class CircleDetectionRecord:
    """Result of one completed detection cycle, handed to persistence."""

    radius_cm: float
    avg_distance_cm: float
    avg_raw_distance_cm: float
    frame_rotation: float
    overlay: OverlayGeometry
    session_timestamp: str
    frame_timestamp: str
    circle: Circle
    diameter_samples: tuple[SamplePoint, ...]
    distance_samples: tuple[SamplePoint, ...]

    @property
    def original_image_size(self) -> tuple[int, int]:
        return self.overlay.original_width, self.overlay.original_height

    @property
    def overlay_crop_rect(self) -> tuple[int, int, int, int]:
        return (
            self.overlay.crop_x,
            self.overlay.crop_y,
            self.overlay.crop_width,
            self.overlay.crop_height,
        )

    @property
    def included_diameter_pairs(self) -> int:
        return included_pairs(self.diameter_samples)

    @property
    def included_distance_samples(self) -> int:
        return sum(1 for sample in self.distance_samples if sample.included_in_calculation)


def _sample_to_dict(sample: SamplePoint) -> dict[str, Any]:
    return {
        "image_x": sample.image_x,
        "image_y": sample.image_y,
        "distance_from_camera": sample.distance_from_camera,
        "world_x": sample.world_x,
        "world_y": sample.world_y,
        "world_z": sample.world_z,
        "confidence": sample.confidence,
        "classification": sample.classification.value if sample.classification else "",
        "included_in_calculation": sample.included_in_calculation,
    }


def _sample_from_dict(payload: dict[str, Any], field: str, index: int) -> SamplePoint:
    try:
        classification_raw = payload.get("classification") or ""
        classification = Classification(classification_raw) if classification_raw else None
        return SamplePoint(
            image_x=float(payload["image_x"]),
            image_y=float(payload["image_y"]),
            distance_from_camera=float(payload["distance_from_camera"]),
            world_x=float(payload.get("world_x", 0.0)),
            world_y=float(payload.get("world_y", 0.0)),
            world_z=float(payload.get("world_z", 0.0)),
            confidence=float(payload.get("confidence", -1.0)),
            classification=classification,
            included_in_calculation=bool(payload["included_in_calculation"]),
        )
    except (KeyError, TypeError, ValueError) as error:
        raise ValueError(f"{field}[{index}] is not a valid sample point") from error


def _samples_from_list(values: Any, field: str) -> tuple[SamplePoint, ...]:
    if not isinstance(values, list):
        raise ValueError(f"{field} must be an array")
    samples: list[SamplePoint] = []
    for index, value in enumerate(values):
        if not isinstance(value, dict):
            raise ValueError(f"{field}[{index}] must be an object")
        samples.append(_sample_from_dict(value, field, index))
    return tuple(samples)


def record_to_dict(record: CircleDetectionRecord) -> dict[str, Any]:
    """Serialize a record into a JSON-ready dict; opaque handles are never included."""

    return {
        "radius_cm": record.radius_cm,
        "avg_distance_cm": record.avg_distance_cm,
        "avg_raw_distance_cm": record.avg_raw_distance_cm,
        "frame_rotation": record.frame_rotation,
        "original_image_size": {
            "width": record.overlay.original_width,
            "height": record.overlay.original_height,
        },
        "overlay_crop_rect": {
            "x": record.overlay.crop_x,
            "y": record.overlay.crop_y,
            "width": record.overlay.crop_width,
            "height": record.overlay.crop_height,
        },
        "session_timestamp": record.session_timestamp,
        "frame_timestamp": record.frame_timestamp,
        "circle": {
            "x": record.circle.x,
            "y": record.circle.y,
            "r_outer": record.circle.r_outer,
            "found": record.circle.found,
        },
        "diameter_samples": [_sample_to_dict(sample) for sample in record.diameter_samples],
        "distance_samples": [_sample_to_dict(sample) for sample in record.distance_samples],
    }


def record_from_dict(payload: dict[str, Any]) -> CircleDetectionRecord:
    try:
        size = payload["original_image_size"]
        crop = payload["overlay_crop_rect"]
        circle = payload["circle"]
        overlay = OverlayGeometry(
            original_width=int(size["width"]),
            original_height=int(size["height"]),
            crop_x=int(crop["x"]),
            crop_y=int(crop["y"]),
            crop_width=int(crop["width"]),
            crop_height=int(crop["height"]),
        )
        return CircleDetectionRecord(
            radius_cm=float(payload["radius_cm"]),
            avg_distance_cm=float(payload["avg_distance_cm"]),
            avg_raw_distance_cm=float(payload["avg_raw_distance_cm"]),
            frame_rotation=float(payload["frame_rotation"]),
            overlay=overlay,
            session_timestamp=str(payload["session_timestamp"]),
            frame_timestamp=str(payload["frame_timestamp"]),
            circle=Circle(
                x=float(circle["x"]),
                y=float(circle["y"]),
                r_outer=float(circle["r_outer"]),
                found=bool(circle["found"]),
            ),
            diameter_samples=_samples_from_list(
                payload["diameter_samples"], "diameter_samples"
            ),
            distance_samples=_samples_from_list(
                payload["distance_samples"], "distance_samples"
            ),
        )
    except KeyError as error:
        raise ValueError(f"record is missing field {error.args[0]!r}") from error
    except TypeError as error:
        raise ValueError("record has a malformed section") from error


def included_pairs(samples: Sequence[SamplePoint]) -> int:
    """Count consecutive sample pairs where both members were included."""

    count = 0
    for first, second in zip(samples[0::2], samples[1::2], strict=False):
        if first.included_in_calculation and second.included_in_calculation:
            count += 1
    return count


def validate_record(
    record: CircleDetectionRecord, min_raw_depth_confidence: float = 0.9
) -> list[str]:
    """Return the inclusion-rule violations found in a record."""

    errors: list[str] = []
    if len(record.diameter_samples) % 2:
        errors.append("diameter_samples must hold opposite-point pairs")

    pairs = zip(record.diameter_samples[0::2], record.diameter_samples[1::2], strict=False)
    for index, (first, second) in enumerate(pairs):
        if first.included_in_calculation != second.included_in_calculation:
            errors.append(f"diameter pair {index} is only partially included")
        elif first.included_in_calculation and (
            first.classification is Classification.MISS
            or second.classification is Classification.MISS
        ):
            errors.append(f"diameter pair {index} includes a missed probe")

    for index, sample in enumerate(record.distance_samples):
        if not sample.included_in_calculation:
            continue
        if sample.confidence <= min_raw_depth_confidence or sample.distance_from_camera <= 0:
            errors.append(f"distance sample {index} is included below the confidence gate")

    if record.radius_cm > 0 and included_pairs(record.diameter_samples) == 0:
        errors.append("radius_cm is set without any included diameter pair")
    return errors
