from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

import numpy as np

from utils.date_utils import utcnow
from utils.forecast_config import (
    RECENT_WINDOW, EXTENDED_WINDOW, RECENT_WEIGHT, EXTENDED_WEIGHT,
    MIN_PLAUSIBLE_RATIO, MAX_PLAUSIBLE_RATIO,
)

AUTHORITATIVE = "authoritative"
HISTORICAL = "historical_transactions"
BOM_CALCULATION = "bom_calculation"
DEFAULT_BASELINE = "default_baseline"


@dataclass(frozen=True)
class DemandEstimate:
    material_id: int
    daily_usage: float
    expected_usage: float
    calculated_usage: float
    moving_avg_7: float
    moving_avg_14: float
    historical_avg: float
    trend_slope: float
    variance: float
    std_dev: float
    data_points: int
    method: str
    anomalous: bool = False
    computed_at: datetime = field(default_factory=utcnow, compare=False)

    @property
    def has_history(self) -> bool:
        return self.data_points > 0


def _quantities(series) -> np.ndarray:
    # Accepts (date, qty) pairs or bare quantities
    values = [q[1] if isinstance(q, tuple) else q for q in series]
    return np.asarray(values, dtype=float)


def moving_average(values: np.ndarray, window: int) -> float:
    """
    Mean of the most recent `window` points; the whole series when shorter.
    """
    if values.size == 0:
        return 0.0
    tail = values[-window:] if values.size >= window else values
    return float(tail.mean())


def linear_trend(values: Sequence[float]) -> float:
    """
    OLS slope of value against position 1..n. 0 for fewer than 2 points.
    """
    y = np.asarray(values, dtype=float)
    n = y.size
    if n < 2:
        return 0.0
    x = np.arange(1, n + 1, dtype=float)
    denominator = n * float(np.sum(x * x)) - float(np.sum(x)) ** 2
    if denominator == 0:
        return 0.0
    return float((n * float(np.sum(x * y)) - float(np.sum(x)) * float(np.sum(y))) / denominator)


def weighted_recent_usage(moving_avg_7: float, moving_avg_14: float) -> float:
    return moving_avg_7 * RECENT_WEIGHT + moving_avg_14 * EXTENDED_WEIGHT


def is_plausible(calculated: float, expected: float) -> bool:
    if expected <= 0:
        return True
    ratio = calculated / expected
    return MIN_PLAUSIBLE_RATIO <= ratio <= MAX_PLAUSIBLE_RATIO


def expected_daily_usage(bom_quantities: dict, baselines: dict) -> float:
    """
    BOM-derived baseline: sum of product baseline output x quantity per unit.
    `bom_quantities` maps product_id -> quantity_per_unit for one material.
    """
    total = 0.0
    for product_id in sorted(bom_quantities):
        total += max(0.0, baselines.get(product_id, 0.0)) * max(0.0, bom_quantities[product_id])
    return total


def estimate_demand(
        material_id: int,
        series,
        expected_usage: float = 0.0,
        authoritative_usage: float | None = None,
        default_usage: float = 0.0,
        computed_at: datetime | None = None,
) -> DemandEstimate:
    """
    Single daily-usage figure for a material.

    Precedence: authoritative figure, then recency-weighted history validated
    against the BOM baseline, then the BOM baseline, then the default.
    """
    values = _quantities(series)
    n = int(values.size)
    expected = max(0.0, float(expected_usage or 0.0))

    historical_avg = float(values.mean()) if n else 0.0
    ma7 = moving_average(values, RECENT_WINDOW)
    ma14 = moving_average(values, EXTENDED_WINDOW)
    variance = float(np.var(values)) if n else 0.0
    trend = linear_trend(values)
    calculated = weighted_recent_usage(ma7, ma14) if n else 0.0

    anomalous = False
    if authoritative_usage is not None and authoritative_usage > 0:
        daily_usage, method = float(authoritative_usage), AUTHORITATIVE
    elif n:
        if is_plausible(calculated, expected):
            daily_usage, method = calculated, HISTORICAL
        else:
            daily_usage, method, anomalous = expected, BOM_CALCULATION, True
    elif expected > 0:
        daily_usage, method = expected, BOM_CALCULATION
    else:
        daily_usage, method = max(0.0, float(default_usage)), DEFAULT_BASELINE

    return DemandEstimate(
        material_id=material_id,
        daily_usage=max(0.0, daily_usage),
        expected_usage=expected,
        calculated_usage=calculated,
        moving_avg_7=ma7,
        moving_avg_14=ma14,
        historical_avg=historical_avg,
        trend_slope=trend,
        variance=variance,
        std_dev=float(np.sqrt(variance)),
        data_points=n,
        method=method,
        anomalous=anomalous,
        computed_at=computed_at or utcnow(),
    )
