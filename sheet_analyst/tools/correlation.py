"""
Correlation Engine

Pairwise Pearson correlation across the numeric columns of a dataset.

Each column is filtered to its numeric values on its own, then the two
samples are paired by position up to the shorter length. This is a
truncation, not an inner join on rows where both cells are numeric.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Any, List, Sequence, Tuple

from scipy.stats import t

from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.descriptive_statistics import accumulate

logger = logging.getLogger(__name__)

SIGNIFICANCE_LEVEL = 0.05


@dataclass
class CorrelationRecord:
    """Correlation between two numeric columns."""
    column_a: int
    column_b: int
    coefficient: float
    strength: str
    interpretation: str
    sample_size: int
    p_value: float
    is_significant: bool  # p < 0.05

    @property
    def key(self) -> str:
        return correlation_key(self.column_a, self.column_b)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": [self.column_a, self.column_b],
            "coefficient": self.coefficient,
            "strength": self.strength,
            "interpretation": self.interpretation,
            "sample_size": self.sample_size,
            "p_value": self.p_value,
            "is_significant": self.is_significant,
        }


def correlation_key(column_a: int, column_b: int) -> str:
    return f"col_{column_a}_col_{column_b}"


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson coefficient by the raw-sums formula.

    Pairs x and y up to the shorter length. Returns 0 when fewer than two
    pairs exist or when either side has no variance.
    """
    n = min(len(x), len(y))
    if n < 2:
        return 0
    xs = x[:n]
    ys = y[:n]

    sum_x = accumulate(xs)
    sum_y = accumulate(ys)
    sum_xy = accumulate([xi * yi for xi, yi in zip(xs, ys)])
    sum_x2 = accumulate([xi * xi for xi in xs])
    sum_y2 = accumulate([yi * yi for yi in ys])

    numerator = n * sum_xy - sum_x * sum_y
    radicand = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    # Rounding can push a zero-variance product slightly negative
    if radicand <= 0:
        return 0
    denominator = math.sqrt(radicand)
    if denominator == 0:
        return 0
    return numerator / denominator


def correlation_strength(coefficient: float) -> str:
    magnitude = abs(coefficient)
    if magnitude >= 0.9:
        return "very strong"
    if magnitude >= 0.7:
        return "strong"
    if magnitude >= 0.5:
        return "moderate"
    if magnitude >= 0.3:
        return "weak"
    return "very weak"


def interpret_correlation(coefficient: float) -> str:
    if coefficient > 0.7:
        return "Strong positive relationship"
    if coefficient > 0.3:
        return "Moderate positive relationship"
    if coefficient > 0:
        return "Weak positive relationship"
    if coefficient == 0:
        return "No linear relationship"
    if coefficient > -0.3:
        return "Weak negative relationship"
    if coefficient > -0.7:
        return "Moderate negative relationship"
    return "Strong negative relationship"


def correlation_p_value(coefficient: float, n: int) -> float:
    """Two-tailed p-value of a Pearson coefficient from the t distribution."""
    if n < 3 or abs(coefficient) >= 1.0:
        return 1.0 if abs(coefficient) < 1.0 else 0.0
    t_stat = coefficient * math.sqrt((n - 2) / (1 - coefficient ** 2))
    return float(2 * (1 - t.cdf(abs(t_stat), n - 2)))


def correlate(x: Sequence[float], y: Sequence[float], column_a: int = 0, column_b: int = 1) -> CorrelationRecord:
    coefficient = pearson(x, y)
    n = min(len(x), len(y))
    p_value = correlation_p_value(coefficient, n)
    return CorrelationRecord(
        column_a=column_a,
        column_b=column_b,
        coefficient=coefficient,
        strength=correlation_strength(coefficient),
        interpretation=interpret_correlation(coefficient),
        sample_size=n,
        p_value=p_value,
        is_significant=p_value < SIGNIFICANCE_LEVEL,
    )


def calculate_correlations(dataset: TabularDataset, skip_header: bool = True) -> Dict[str, CorrelationRecord]:
    """
    Correlation records for every pair (i < j) of numeric columns.

    Pairs where either column has fewer than two numeric values are left out.
    """
    columns = dataset.numeric_columns()
    samples = {c: dataset.numeric_column_values(c, skip_header=skip_header) for c in columns}
    correlations: Dict[str, CorrelationRecord] = {}

    for i, col_a in enumerate(columns):
        for col_b in columns[i + 1:]:
            data_a, data_b = samples[col_a], samples[col_b]
            if len(data_a) < 2 or len(data_b) < 2:
                logger.debug(f"Skipping correlation {col_a}/{col_b}: too few values")
                continue
            record = correlate(data_a, data_b, column_a=col_a, column_b=col_b)
            correlations[record.key] = record

    return correlations


def filter_correlations(
    correlations: Dict[str, CorrelationRecord],
    threshold: float = 0.5,
) -> Dict[str, CorrelationRecord]:
    """Keep records whose absolute coefficient reaches the threshold."""
    return {key: rec for key, rec in correlations.items() if abs(rec.coefficient) >= threshold}


def correlation_matrix(dataset: TabularDataset, skip_header: bool = True) -> Tuple[List[int], List[List[float]]]:
    """Symmetric coefficient matrix over the numeric columns, 1.0 on the diagonal."""
    columns = dataset.numeric_columns()
    records = calculate_correlations(dataset, skip_header=skip_header)
    matrix = []
    for col_a in columns:
        row = []
        for col_b in columns:
            if col_a == col_b:
                row.append(1.0)
                continue
            key = correlation_key(min(col_a, col_b), max(col_a, col_b))
            row.append(records[key].coefficient if key in records else 0.0)
        matrix.append(row)
    return columns, matrix
