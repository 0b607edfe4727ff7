"""
Descriptive Statistics Engine

Per-column central tendency, dispersion, shape statistics and
quartiles/percentiles for the numeric columns of a TabularDataset.

All routines are free functions over plain lists of floats. Results must be
reproducible to the last bit, so:
- sums are accumulated left to right in row order (not math.fsum, not the
  compensated builtin sum of recent CPython, not numpy's pairwise sum)
- percentiles interpolate linearly at index = p/100 * (n - 1)
- variance uses Bessel's correction (n - 1)
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Sequence

from sheet_analyst.core.error_taxonomy import InsufficientSampleError
from sheet_analyst.data.dataset import TabularDataset

logger = logging.getLogger(__name__)

PERCENTILE_POINTS = (5, 10, 25, 50, 75, 90, 95)


@dataclass
class ColumnStatistics:
    """Summary statistics for one numeric column."""
    column_index: int
    count: int
    total: float
    mean: float
    median: float
    mode: List[float]
    minimum: float
    maximum: float
    range: float
    variance: Optional[float]
    standard_deviation: Optional[float]
    skewness: Optional[float]
    kurtosis: Optional[float]
    quartiles: List[float]
    percentiles: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_index": self.column_index,
            "count": self.count,
            "sum": self.total,
            "mean": self.mean,
            "median": self.median,
            "mode": self.mode,
            "min": self.minimum,
            "max": self.maximum,
            "range": self.range,
            "variance": self.variance,
            "standard_deviation": self.standard_deviation,
            "skewness": self.skewness,
            "kurtosis": self.kurtosis,
            "quartiles": self.quartiles,
            "percentiles": self.percentiles,
        }


# ===================
# PRIMITIVES
# ===================

def accumulate(values: Sequence[float]) -> float:
    """Plain left-to-right sum."""
    total = 0
    for value in values:
        total = total + value
    return total


def _require(values: Sequence[float], minimum: int, statistic: str) -> None:
    if len(values) < minimum:
        raise InsufficientSampleError(
            f"{statistic} needs at least {minimum} values, got {len(values)}",
            required=minimum,
            available=len(values),
            context={"component": statistic},
        )


def mean(values: Sequence[float]) -> float:
    _require(values, 1, "mean")
    return accumulate(values) / len(values)


def median(values: Sequence[float]) -> float:
    _require(values, 1, "median")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 != 0:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def mode(values: Sequence[float]) -> List[float]:
    """All values sharing the highest frequency, ascending."""
    _require(values, 1, "mode")
    frequency: Dict[float, int] = {}
    for value in values:
        frequency[value] = frequency.get(value, 0) + 1
    top = max(frequency.values())
    return sorted(value for value, count in frequency.items() if count == top)


def variance(values: Sequence[float]) -> float:
    """Sample variance (n - 1 denominator)."""
    _require(values, 2, "variance")
    center = mean(values)
    squared = []
    for value in values:
        deviation = value - center
        squared.append(deviation * deviation)
    return accumulate(squared) / (len(values) - 1)


def standard_deviation(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def skewness(values: Sequence[float]) -> Optional[float]:
    """Bias-corrected sample skewness; None when n < 3 or the spread is zero."""
    n = len(values)
    if n < 3:
        return None
    center = mean(values)
    spread = standard_deviation(values)
    if spread == 0:
        return None
    cubes = [((value - center) / spread) ** 3 for value in values]
    return (n / ((n - 1) * (n - 2))) * accumulate(cubes)


def kurtosis(values: Sequence[float]) -> Optional[float]:
    """Bias-corrected excess kurtosis; None when n < 4 or the spread is zero."""
    n = len(values)
    if n < 4:
        return None
    center = mean(values)
    spread = standard_deviation(values)
    if spread == 0:
        return None
    fourths = [((value - center) / spread) ** 4 for value in values]
    scale = (n * (n + 1)) / ((n - 1) * (n - 2) * (n - 3))
    correction = (3 * (n - 1) ** 2) / ((n - 2) * (n - 3))
    return scale * accumulate(fourths) - correction


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile of an already sorted sample.

    Args:
        sorted_values: Ascending values
        p: Percentile in [0, 100]
    """
    _require(sorted_values, 1, "percentile")
    index = (p / 100) * (len(sorted_values) - 1)
    fraction = math.fmod(index, 1)
    if fraction == 0:
        return sorted_values[int(index)]
    lower = sorted_values[math.floor(index)]
    upper = sorted_values[math.ceil(index)]
    return lower + (upper - lower) * fraction


def quartiles(values: Sequence[float]) -> List[float]:
    """[Q1, Q2, Q3]."""
    ordered = sorted(values)
    return [percentile(ordered, 25), percentile(ordered, 50), percentile(ordered, 75)]


def percentiles(values: Sequence[float]) -> Dict[str, float]:
    ordered = sorted(values)
    return {f"p{p}": percentile(ordered, p) for p in PERCENTILE_POINTS}


# ===================
# COLUMN SUMMARY
# ===================

def summarize_column(values: Sequence[float], column_index: int = 0) -> ColumnStatistics:
    """Full statistics record for one non-empty numeric sample."""
    _require(values, 1, f"column {column_index} statistics")
    low = min(values)
    high = max(values)
    has_spread = len(values) >= 2
    return ColumnStatistics(
        column_index=column_index,
        count=len(values),
        total=accumulate(values),
        mean=mean(values),
        median=median(values),
        mode=mode(values),
        minimum=low,
        maximum=high,
        range=high - low,
        variance=variance(values) if has_spread else None,
        standard_deviation=standard_deviation(values) if has_spread else None,
        skewness=skewness(values),
        kurtosis=kurtosis(values),
        quartiles=quartiles(values),
        percentiles=percentiles(values),
    )


def calculate_statistics(dataset: TabularDataset, skip_header: bool = True) -> Dict[int, ColumnStatistics]:
    """
    Statistics for every numeric column of the dataset.

    Columns are chosen by the row-1 type check. A column whose filtered
    sample is empty is omitted from the result.
    """
    stats: Dict[int, ColumnStatistics] = {}
    for column in dataset.numeric_columns():
        values = dataset.numeric_column_values(column, skip_header=skip_header)
        if not values:
            logger.debug(f"Column {column} has no numeric values, skipping statistics")
            continue
        stats[column] = summarize_column(values, column_index=column)
    return stats
