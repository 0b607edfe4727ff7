"""
Data Quality Assessor

Scores a dataset on completeness, uniqueness, consistency and accuracy and
maps the mean of the four to a letter grade.

Consistency and accuracy are not yet modeled: they default to fixed scores.
Pass a scorer callable to replace either one.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Any, List, Optional

from sheet_analyst.data.dataset import TabularDataset

logger = logging.getLogger(__name__)

CONSISTENCY_NOT_MODELED = 0.85
ACCURACY_NOT_MODELED = 0.90

QualityScorer = Callable[[TabularDataset], float]

GRADE_BOUNDARIES = (
    (0.9, "A", "Excellent data quality - maintain current standards"),
    (0.8, "B", "Good data quality - minor improvements needed"),
    (0.7, "C", "Moderate data quality - focus on key issues"),
    (0.6, "D", "Poor data quality - significant improvements required"),
)
FAILING_GRADE = ("F", "Very poor data quality - major data cleansing needed")


@dataclass
class QualityScore:
    score: float
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, **self.details}


@dataclass
class QualityAssessment:
    completeness: QualityScore
    uniqueness: QualityScore
    consistency: QualityScore
    accuracy: QualityScore
    overall: float
    grade: str
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completeness": self.completeness.to_dict(),
            "uniqueness": self.uniqueness.to_dict(),
            "consistency": self.consistency.to_dict(),
            "accuracy": self.accuracy.to_dict(),
            "overall": {
                "score": self.overall,
                "grade": self.grade,
                "recommendations": self.recommendations,
            },
        }


@dataclass
class DatasetProfile:
    """Shape and type summary of the selection."""
    has_headers: bool
    data_types: List[str]
    numeric_columns: int
    text_columns: int
    missing_values: int
    row_count: int
    column_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_headers": self.has_headers,
            "data_types": self.data_types,
            "numeric_columns": self.numeric_columns,
            "text_columns": self.text_columns,
            "missing_values": self.missing_values,
            "row_count": self.row_count,
            "column_count": self.column_count,
        }


def quality_grade(score: float) -> str:
    for boundary, grade, _ in GRADE_BOUNDARIES:
        if score >= boundary:
            return grade
    return FAILING_GRADE[0]


def quality_recommendations(score: float) -> List[str]:
    for boundary, _, message in GRADE_BOUNDARIES:
        if score >= boundary:
            return [message]
    return [FAILING_GRADE[1]]


def count_duplicate_rows(dataset: TabularDataset) -> int:
    """Rows whose serialized content repeats an earlier row."""
    serialized = dataset.serialized_rows()
    return len(serialized) - len(set(serialized))


def assess_data_quality(
    dataset: TabularDataset,
    consistency_scorer: Optional[QualityScorer] = None,
    accuracy_scorer: Optional[QualityScorer] = None,
) -> QualityAssessment:
    """
    Quality record for the dataset.

    An empty dataset scores 1.0 for completeness and uniqueness: there is
    nothing missing and nothing repeated.
    """
    total_cells = dataset.total_cells
    missing = dataset.missing_count()
    duplicates = count_duplicate_rows(dataset)

    completeness = 1 - (missing / total_cells) if total_cells else 1.0
    uniqueness = 1 - (duplicates / dataset.row_count) if dataset.row_count else 1.0

    if consistency_scorer is not None:
        consistency = float(consistency_scorer(dataset))
        consistency_details = {"modeled": True}
    else:
        consistency = CONSISTENCY_NOT_MODELED
        consistency_details = {"modeled": False}

    if accuracy_scorer is not None:
        accuracy = float(accuracy_scorer(dataset))
        accuracy_details = {"modeled": True}
    else:
        accuracy = ACCURACY_NOT_MODELED
        accuracy_details = {"modeled": False}

    for label, value in (("consistency", consistency), ("accuracy", accuracy)):
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{label} scorer returned {value}, expected a value in [0, 1]")

    overall = (completeness + uniqueness + consistency + accuracy) / 4
    logger.debug(f"Quality for {dataset.address or 'selection'}: {overall:.3f}")

    return QualityAssessment(
        completeness=QualityScore(completeness, {"missing_values": missing, "total_cells": total_cells}),
        uniqueness=QualityScore(uniqueness, {"duplicate_rows": duplicates, "total_rows": dataset.row_count}),
        consistency=QualityScore(consistency, consistency_details),
        accuracy=QualityScore(accuracy, accuracy_details),
        overall=overall,
        grade=quality_grade(overall),
        recommendations=quality_recommendations(overall),
    )


def profile_dataset(dataset: TabularDataset) -> DatasetProfile:
    return DatasetProfile(
        has_headers=dataset.has_headers(),
        data_types=dataset.cell_kinds(),
        numeric_columns=len(dataset.numeric_columns()),
        text_columns=len(dataset.text_columns()),
        missing_values=dataset.missing_count(),
        row_count=dataset.row_count,
        column_count=dataset.column_count,
    )
