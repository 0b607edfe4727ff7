"""
Outlier Detector

IQR-fence classification per numeric column. Quartiles come from the same
percentile routine as the descriptive statistics, so fences agree with the
reported Q1/Q3.

    mild     outside Q1 - 1.5*IQR .. Q3 + 1.5*IQR, inside the 3*IQR fences
    extreme  outside Q1 - 3*IQR .. Q3 + 3*IQR
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Sequence

from sheet_analyst.core.error_taxonomy import InsufficientSampleError
from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.descriptive_statistics import quartiles

logger = logging.getLogger(__name__)

MIN_SAMPLES = 4
MILD_MULTIPLIER = 1.5
EXTREME_MULTIPLIER = 3.0


@dataclass
class OutlierRecord:
    """IQR outlier classification for one column."""
    column_index: int
    q1: float
    q3: float
    iqr: float
    lower_fence: float
    upper_fence: float
    extreme_lower_fence: float
    extreme_upper_fence: float
    mild: List[float]
    extreme: List[float]
    sample_size: int
    percentage: float
    impact: str
    recommendations: List[str] = field(default_factory=list)

    @property
    def flagged_count(self) -> int:
        return len(self.mild) + len(self.extreme)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_index": self.column_index,
            "q1": self.q1,
            "q3": self.q3,
            "iqr": self.iqr,
            "bounds": {"lower": self.lower_fence, "upper": self.upper_fence},
            "extreme_bounds": {"lower": self.extreme_lower_fence, "upper": self.extreme_upper_fence},
            "mild": {"count": len(self.mild), "values": self.mild},
            "extreme": {"count": len(self.extreme), "values": self.extreme},
            "sample_size": self.sample_size,
            "percentage": self.percentage,
            "impact": self.impact,
            "recommendations": self.recommendations,
        }


def outlier_impact(flagged: int, sample_size: int) -> str:
    """high above 10% flagged, medium above 5%, otherwise low."""
    fraction = flagged / sample_size
    if fraction > 0.1:
        return "high"
    if fraction > 0.05:
        return "medium"
    return "low"


def outlier_recommendations(record: OutlierRecord) -> List[str]:
    recommendations = []
    if record.percentage > 10:
        recommendations.append("High outlier rate - investigate data collection process")
    if record.extreme:
        recommendations.append("Extreme outliers detected - verify data accuracy")
    if record.impact == "high":
        recommendations.append("Consider robust statistical methods")
    recommendations.append("Use conditional formatting to highlight outliers")
    return recommendations


def classify_outliers(values: Sequence[float], column_index: int = 0) -> OutlierRecord:
    """
    Fence classification for one sample.

    Raises:
        InsufficientSampleError: fewer than 4 values
    """
    if len(values) < MIN_SAMPLES:
        raise InsufficientSampleError(
            f"Outlier detection needs at least {MIN_SAMPLES} values, got {len(values)}",
            required=MIN_SAMPLES,
            available=len(values),
            context={"component": "outliers", "column": column_index},
        )

    q1, _, q3 = quartiles(values)
    iqr = q3 - q1
    lower = q1 - MILD_MULTIPLIER * iqr
    upper = q3 + MILD_MULTIPLIER * iqr
    extreme_lower = q1 - EXTREME_MULTIPLIER * iqr
    extreme_upper = q3 + EXTREME_MULTIPLIER * iqr

    mild: List[float] = []
    extreme: List[float] = []
    for value in values:
        if value < extreme_lower or value > extreme_upper:
            extreme.append(value)
        elif value < lower or value > upper:
            mild.append(value)

    flagged = len(mild) + len(extreme)
    record = OutlierRecord(
        column_index=column_index,
        q1=q1,
        q3=q3,
        iqr=iqr,
        lower_fence=lower,
        upper_fence=upper,
        extreme_lower_fence=extreme_lower,
        extreme_upper_fence=extreme_upper,
        mild=mild,
        extreme=extreme,
        sample_size=len(values),
        percentage=(flagged / len(values)) * 100,
        impact=outlier_impact(flagged, len(values)),
    )
    record.recommendations = outlier_recommendations(record)
    return record


def detect_outliers(dataset: TabularDataset, skip_header: bool = True) -> Dict[int, OutlierRecord]:
    """Outlier records for numeric columns with at least 4 values."""
    results: Dict[int, OutlierRecord] = {}
    for column in dataset.numeric_columns():
        values = dataset.numeric_column_values(column, skip_header=skip_header)
        if len(values) < MIN_SAMPLES:
            logger.debug(f"Column {column}: {len(values)} values, outlier detection skipped")
            continue
        results[column] = classify_outliers(values, column_index=column)
    return results
