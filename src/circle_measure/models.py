from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

CONVERSION_TO_CM = 100.0
CONVERSION_TO_MM = 1000.0
RAW_MM_PER_M = 1000.0


@dataclass(frozen=True)
class MeasurementConfig:
    """Tunable constants for the scan cycle and both estimators."""

    circle_detect_countdown: int = 20
    analysis_timeout_s: float = 10.0
    autofocus_frames: int = 10

    # overlay radius relative to the shorter view dimension, from 0 to 1.0
    overlay_screen_rate: float = 0.8
    circle_radius_rate: float = 0.8

    angle_step_deg: int = 2
    start_angle_deg: int = 0
    stop_angle_deg: int = 180
    radius_divider: float = 2.0
    outlier_fraction: float = 0.15

    raw_depth_repeats: int = 10
    raw_depth_offset_px: int = 50
    min_raw_depth_confidence: float = 0.9

    def __post_init__(self) -> None:
        if self.circle_detect_countdown < 1:
            raise ValueError("circle_detect_countdown must be >= 1")
        if self.analysis_timeout_s <= 0:
            raise ValueError("analysis_timeout_s must be positive")
        if self.autofocus_frames < 0:
            raise ValueError("autofocus_frames must be >= 0")
        if not 0.0 < self.overlay_screen_rate <= 1.0:
            raise ValueError("overlay_screen_rate must be in (0, 1]")
        if not 0.0 < self.circle_radius_rate <= 1.0:
            raise ValueError("circle_radius_rate must be in (0, 1]")
        if self.angle_step_deg <= 0:
            raise ValueError("angle_step_deg must be positive")
        if self.stop_angle_deg <= self.start_angle_deg:
            raise ValueError("stop_angle_deg must be greater than start_angle_deg")
        if self.radius_divider < 1.0:
            raise ValueError("radius_divider must be >= 1")
        if not 0.0 <= self.outlier_fraction < 1.0:
            raise ValueError("outlier_fraction must be in [0, 1)")
        if self.raw_depth_repeats < 1:
            raise ValueError("raw_depth_repeats must be >= 1")
        if self.raw_depth_offset_px < 0:
            raise ValueError("raw_depth_offset_px must be >= 0")
        if not 0.0 <= self.min_raw_depth_confidence < 1.0:
            raise ValueError("min_raw_depth_confidence must be in [0, 1)")


def measurement_config_to_dict(config: MeasurementConfig) -> dict[str, Any]:
    return {field.name: getattr(config, field.name) for field in fields(config)}


def measurement_config_from_dict(payload: dict[str, Any]) -> MeasurementConfig:
    known = {field.name for field in fields(MeasurementConfig)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ValueError("unknown measurement config keys: " + ", ".join(unknown))
    return MeasurementConfig(**payload)


def load_measurement_config(path: Path) -> MeasurementConfig:
    """Load measurement config overrides from a YAML or JSON file."""

    if not path.exists():
        raise FileNotFoundError(path)

    suffix = path.suffix.strip().lower()
    raw_text = path.read_text(encoding="utf-8")

    if suffix == ".json":
        payload = json.loads(raw_text)
    else:
        try:
            import yaml
        except ModuleNotFoundError as error:
            raise ModuleNotFoundError(
                "PyYAML is required for YAML config support. Install package 'PyYAML'."
            ) from error
        payload = yaml.safe_load(raw_text)

    if payload is None:
        return MeasurementConfig()
    if not isinstance(payload, dict):
        raise ValueError("measurement config document must be an object")

    section = payload.get("measurement", payload)
    if not isinstance(section, dict):
        raise ValueError("measurement config section must be an object")
    return measurement_config_from_dict(section)
