"""Circle diameter and distance estimation from spatial-tracking probes."""

from .aggregation import (
    DEFAULT_OUTLIER_FRACTION,
    AggregationResult,
    aggregate_pairs,
    aggregate_pairs_detailed,
    outlier_band,
)
from .diameter import DiameterEstimate, DiameterEstimator, opposite_points, sweep_angles
from .errors import (
    AnalysisTimeout,
    ImageNotYetAvailable,
    InsufficientSamples,
    MeasurementError,
    ProbeMiss,
    SessionUnavailable,
    ViewNotReady,
)
from .models import (
    MeasurementConfig,
    load_measurement_config,
    measurement_config_from_dict,
    measurement_config_to_dict,
)
from .probe import (
    AnchorProbe,
    Classification,
    HitResult,
    Pose,
    ProbeResult,
    TrackingSession,
    classify_kinds,
)
from .raw_depth import RawDepthEstimate, RawDepthEstimator
from .records import (
    Circle,
    CircleDetectionRecord,
    OverlayGeometry,
    SamplePoint,
    included_pairs,
    record_from_dict,
    record_to_dict,
    validate_record,
)
from .scheduler import (
    CircleHandoff,
    ScanScheduler,
    ScanState,
    TickOutcome,
    TickResult,
    TimeoutGuard,
    crop_overlay,
)
from .session import (
    ScanSessionConfig,
    ScanSessionResult,
    run_scan_session,
    run_synthetic_scan,
)
from .synthetic import (
    BENCH_SCENARIOS,
    BenchScenario,
    SyntheticSceneConfig,
    SyntheticTrackingSession,
    available_scenarios,
)

__all__ = [
    "DEFAULT_OUTLIER_FRACTION",
    "AggregationResult",
    "aggregate_pairs",
    "aggregate_pairs_detailed",
    "outlier_band",
    "Classification",
    "Pose",
    "HitResult",
    "ProbeResult",
    "TrackingSession",
    "AnchorProbe",
    "classify_kinds",
    "DiameterEstimate",
    "DiameterEstimator",
    "opposite_points",
    "sweep_angles",
    "RawDepthEstimate",
    "RawDepthEstimator",
    "Circle",
    "SamplePoint",
    "OverlayGeometry",
    "CircleDetectionRecord",
    "included_pairs",
    "record_to_dict",
    "record_from_dict",
    "validate_record",
    "ScanState",
    "TickOutcome",
    "TickResult",
    "TimeoutGuard",
    "CircleHandoff",
    "ScanScheduler",
    "crop_overlay",
    "MeasurementError",
    "ProbeMiss",
    "InsufficientSamples",
    "SessionUnavailable",
    "AnalysisTimeout",
    "ViewNotReady",
    "ImageNotYetAvailable",
    "MeasurementConfig",
    "load_measurement_config",
    "measurement_config_to_dict",
    "measurement_config_from_dict",
    "BenchScenario",
    "SyntheticSceneConfig",
    "SyntheticTrackingSession",
    "BENCH_SCENARIOS",
    "available_scenarios",
    "ScanSessionConfig",
    "ScanSessionResult",
    "run_scan_session",
    "run_synthetic_scan",
]
