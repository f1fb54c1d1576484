from __future__ import annotations

import statistics
from collections.abc import Sequence
from dataclasses import dataclass

# fraction of the median used to detect and then filter outliers
DEFAULT_OUTLIER_FRACTION = 0.15


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of median-band filtering over (primary, secondary) pairs."""

    primary: float
    secondary: float
    median: float
    lower: float
    upper: float
    kept: int
    rejected: int

    @property
    def as_pair(self) -> tuple[float, float]:
        return self.primary, self.secondary


def _validate_fraction(outlier_fraction: float) -> None:
    if not 0.0 <= outlier_fraction < 1.0:
        raise ValueError("outlier_fraction must be in [0, 1)")


def outlier_band(center: float, outlier_fraction: float) -> tuple[float, float]:
    """Return the inclusive [lower, upper] band around center."""

    _validate_fraction(outlier_fraction)
    low = center * (1.0 - outlier_fraction)
    high = center * (1.0 + outlier_fraction)
    return min(low, high), max(low, high)


def aggregate_pairs_detailed(
    pairs: Sequence[tuple[float, float]],
    outlier_fraction: float = DEFAULT_OUTLIER_FRACTION,
) -> AggregationResult:
    """Average pairs whose primary value lies within the band around the median.

    The median is taken over every primary value. Pairs outside
    ``median * (1 +/- outlier_fraction)`` are dropped, and both components of
    the survivors are averaged. Empty input yields zeros.
    """

    _validate_fraction(outlier_fraction)
    if not pairs:
        return AggregationResult(
            primary=0.0,
            secondary=0.0,
            median=0.0,
            lower=0.0,
            upper=0.0,
            kept=0,
            rejected=0,
        )

    center = statistics.median(float(primary) for primary, _ in pairs)
    lower, upper = outlier_band(center, outlier_fraction)
    kept = [
        (float(primary), float(secondary))
        for primary, secondary in pairs
        if lower <= primary <= upper
    ]

    # An even count can put the median between two far-apart values.
    if not kept:
        return AggregationResult(
            primary=0.0,
            secondary=0.0,
            median=center,
            lower=lower,
            upper=upper,
            kept=0,
            rejected=len(pairs),
        )

    return AggregationResult(
        primary=statistics.fmean(primary for primary, _ in kept),
        secondary=statistics.fmean(secondary for _, secondary in kept),
        median=center,
        lower=lower,
        upper=upper,
        kept=len(kept),
        rejected=len(pairs) - len(kept),
    )


def aggregate_pairs(
    pairs: Sequence[tuple[float, float]],
    outlier_fraction: float = DEFAULT_OUTLIER_FRACTION,
) -> tuple[float, float]:
    """Robust (primary, secondary) mean; see ``aggregate_pairs_detailed``."""

    return aggregate_pairs_detailed(pairs, outlier_fraction=outlier_fraction).as_pair
