"""
Scenario Generator

Derives what-if scenarios from a baseline dataset by applying percentage
multipliers to its numeric columns, and compares or weights a set of
scenarios.

Standard set (fixed design constants):

    optimistic   +20%  x1.20  probability 0.25  risk Low
    realistic     +6%  x1.06  probability 0.60  risk Medium
    pessimistic  -15%  x0.85  probability 0.15  risk High

Probabilities are relative weights. Custom scenarios carry whatever the
caller supplies and nothing forces a set to sum to 1.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Sequence, Tuple

from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError
from sheet_analyst.data.dataset import TabularDataset, column_letter
from sheet_analyst.tools.descriptive_statistics import accumulate, mean, variance

logger = logging.getLogger(__name__)

SCENARIO_TYPES = ("optimistic", "realistic", "pessimistic")
SENSITIVITY_STEP = 10
MAX_SENSITIVITY_STEPS = 1000
Z_95 = 1.96


@dataclass(frozen=True)
class ScenarioTemplate:
    scenario_type: str
    name: str
    description: str
    assumptions: Tuple[str, ...]
    percentage: float
    rationale: str
    expected_outcome: str
    risk_level: str
    probability: float


STANDARD_SCENARIOS: Dict[str, ScenarioTemplate] = {
    "optimistic": ScenarioTemplate(
        scenario_type="optimistic",
        name="Optimistic Scenario",
        description="Best-case projections with positive growth assumptions",
        assumptions=(
            "15-25% growth in key metrics",
            "Improved operational efficiency",
            "Market expansion opportunities",
        ),
        percentage=20,
        rationale="Optimistic growth projection",
        expected_outcome="Significant improvement in overall performance",
        risk_level="Low",
        probability=0.25,
    ),
    "pessimistic": ScenarioTemplate(
        scenario_type="pessimistic",
        name="Pessimistic Scenario",
        description="Worst-case projections with conservative assumptions",
        assumptions=(
            "10-15% decline in key metrics",
            "Economic downturn impact",
            "Increased operational costs",
        ),
        percentage=-15,
        rationale="Conservative downturn projection",
        expected_outcome="Challenging performance requiring mitigation strategies",
        risk_level="High",
        probability=0.15,
    ),
    "realistic": ScenarioTemplate(
        scenario_type="realistic",
        name="Realistic Scenario",
        description="Most likely projections based on current trends",
        assumptions=(
            "5-8% steady growth",
            "Stable market conditions",
            "Incremental improvements",
        ),
        percentage=6,
        rationale="Realistic growth based on historical trends",
        expected_outcome="Steady, sustainable growth",
        risk_level="Medium",
        probability=0.60,
    ),
}

# Literal multipliers for the standard set
SCENARIO_FACTORS = {"optimistic": 1.2, "pessimistic": 0.85, "realistic": 1.06}


@dataclass
class ScenarioModification:
    """One column's perturbation inside a scenario."""
    column: str  # "Column B"
    column_index: int
    percentage: float
    factor: float
    rationale: str
    formula: str
    baseline_value: Optional[float] = None
    projected_value: Optional[float] = None

    @property
    def change(self) -> str:
        return format_change(self.percentage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "column_index": self.column_index,
            "change": self.change,
            "percentage": self.percentage,
            "factor": self.factor,
            "formula": self.formula,
            "rationale": self.rationale,
            "baseline_value": self.baseline_value,
            "projected_value": self.projected_value,
        }


@dataclass
class Scenario:
    """A named what-if hypothesis over the baseline dataset."""
    name: str
    scenario_type: str
    description: str
    assumptions: List[str]
    modifications: List[ScenarioModification]
    expected_outcome: str
    risk_level: str
    probability: float
    expected_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.scenario_type,
            "description": self.description,
            "assumptions": self.assumptions,
            "modifications": [m.to_dict() for m in self.modifications],
            "expected_outcome": self.expected_outcome,
            "risk_level": self.risk_level,
            "probability": self.probability,
            "expected_value": self.expected_value,
        }


@dataclass
class CustomScenarioSpec:
    """Caller-defined scenario: per-column percentage changes plus a free probability weight."""
    name: str
    changes: Dict[int, float]
    probability: float
    description: str = "Custom scenario"
    assumptions: List[str] = field(default_factory=list)
    rationale: str = "User-defined adjustment"
    risk_level: str = "Medium"
    expected_outcome: str = "Custom projection"


@dataclass
class ScenarioComparison:
    best: Scenario
    worst: Scenario
    most_likely: Scenario
    mean: float
    variance: float
    standard_deviation: float
    confidence_interval: Tuple[float, float]
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_case": {"name": self.best.name, "expected_value": self.best.expected_value},
            "worst_case": {"name": self.worst.name, "expected_value": self.worst.expected_value},
            "most_likely": {"name": self.most_likely.name, "probability": self.most_likely.probability},
            "risk_analysis": {
                "mean": self.mean,
                "variance": self.variance,
                "standard_deviation": self.standard_deviation,
                "confidence_interval": {
                    "lower": self.confidence_interval[0],
                    "upper": self.confidence_interval[1],
                },
            },
            "recommendations": self.recommendations,
        }


@dataclass
class WeightedPrediction:
    weighted_sum: float  # sum(p_i * o_i)
    total_probability: float
    normalized: Optional[float]  # weighted_sum / total_probability

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weighted_sum": self.weighted_sum,
            "total_probability": self.total_probability,
            "normalized": self.normalized,
        }


@dataclass
class SensitivityPoint:
    change: float
    multiplier: float
    impact: str
    formula: str
    projected_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change": f"{format_number(self.change)}%",
            "value": format_change(self.change),
            "multiplier": self.multiplier,
            "impact": self.impact,
            "formula": self.formula,
            "projected_value": self.projected_value,
        }


@dataclass
class SensitivityAnalysis:
    variable: str
    change_range: Tuple[float, float]
    points: List[SensitivityPoint]
    recommendations: List[Dict[str, str]]
    baseline_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variable": self.variable,
            "change_range": list(self.change_range),
            "baseline_value": self.baseline_value,
            "impacts": [p.to_dict() for p in self.points],
            "recommendations": self.recommendations,
        }


# ===================
# FORMATTING
# ===================

def format_number(value: float) -> str:
    """Shortest round-trip text; integral values without a trailing .0"""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def format_change(percentage: float) -> str:
    sign = "+" if percentage > 0 else ""
    return f"{sign}{format_number(percentage)}%"


def column_reference(column_index: int) -> str:
    return f"Column {column_letter(column_index)}"


# ===================
# GENERATION
# ===================

def _modification(
    dataset: TabularDataset,
    column: int,
    percentage: float,
    factor: float,
    rationale: str,
    skip_header: bool,
) -> ScenarioModification:
    values = dataset.numeric_column_values(column, skip_header=skip_header)
    baseline = accumulate(values) if values else None
    return ScenarioModification(
        column=column_reference(column),
        column_index=column,
        percentage=percentage,
        factor=factor,
        rationale=rationale,
        formula=f"=ORIGINAL_VALUE * {format_number(factor)}",
        baseline_value=baseline,
        projected_value=baseline * factor if baseline is not None else None,
    )


def _expected_value(modifications: Sequence[ScenarioModification]) -> Optional[float]:
    projected = [m.projected_value for m in modifications if m.projected_value is not None]
    if not projected:
        return None
    return accumulate(projected)


def build_standard_scenario(dataset: TabularDataset, scenario_type: str, skip_header: bool = True) -> Scenario:
    """One of the fixed optimistic / realistic / pessimistic scenarios."""
    if scenario_type not in STANDARD_SCENARIOS:
        raise InputShapeError(
            f"Unknown scenario type: {scenario_type}. Available: {list(SCENARIO_TYPES)}",
            category=ErrorCategory.INVALID_PARAMETER,
        )
    template = STANDARD_SCENARIOS[scenario_type]
    factor = SCENARIO_FACTORS[scenario_type]
    modifications = [
        _modification(dataset, col, template.percentage, factor, template.rationale, skip_header)
        for col in dataset.numeric_columns()
    ]
    return Scenario(
        name=template.name,
        scenario_type=template.scenario_type,
        description=template.description,
        assumptions=list(template.assumptions),
        modifications=modifications,
        expected_outcome=template.expected_outcome,
        risk_level=template.risk_level,
        probability=template.probability,
        expected_value=_expected_value(modifications),
    )


def build_custom_scenario(dataset: TabularDataset, spec: CustomScenarioSpec, skip_header: bool = True) -> Scenario:
    """Scenario from caller-supplied percentage changes."""
    modifications = []
    for col, percentage in sorted(spec.changes.items()):
        if col < 0 or col >= dataset.column_count:
            raise InputShapeError(
                f"Scenario '{spec.name}' references column {col}, dataset has {dataset.column_count}",
                category=ErrorCategory.INVALID_PARAMETER,
            )
        factor = 1 + percentage / 100
        modifications.append(_modification(dataset, col, percentage, factor, spec.rationale, skip_header))
    return Scenario(
        name=spec.name,
        scenario_type="custom",
        description=spec.description,
        assumptions=list(spec.assumptions),
        modifications=modifications,
        expected_outcome=spec.expected_outcome,
        risk_level=spec.risk_level,
        probability=spec.probability,
        expected_value=_expected_value(modifications),
    )


def generate_scenarios(
    dataset: TabularDataset,
    scenario_type: str = "all",
    custom: Optional[Sequence[CustomScenarioSpec]] = None,
    skip_header: bool = True,
) -> List[Scenario]:
    """
    Build scenarios for a baseline dataset.

    Args:
        dataset: Baseline data
        scenario_type: "all", one of optimistic/realistic/pessimistic, or "custom"
        custom: Caller-defined scenarios, appended after the standard set
    """
    if scenario_type == "all":
        types = ["optimistic", "pessimistic", "realistic"]
    elif scenario_type == "custom":
        types = []
    else:
        types = [scenario_type]

    scenarios = [build_standard_scenario(dataset, t, skip_header) for t in types]
    for spec in custom or []:
        scenarios.append(build_custom_scenario(dataset, spec, skip_header))

    logger.info(f"Generated {len(scenarios)} scenario(s) for {dataset.address or 'selection'}")
    return scenarios


def apply_scenario(dataset: TabularDataset, scenario: Scenario, skip_header: bool = True) -> TabularDataset:
    """The baseline dataset with each modified column scaled by its factor."""
    factors = {m.column_index: m.factor for m in scenario.modifications}
    return dataset.with_column_factors(factors, skip_header=skip_header)


# ===================
# COMPARISON
# ===================

def _outcome(scenario: Scenario) -> float:
    if scenario.expected_value is None:
        raise InputShapeError(
            f"Scenario '{scenario.name}' has no numeric expected value",
            category=ErrorCategory.INVALID_PARAMETER,
        )
    return scenario.expected_value


def compare_scenarios(scenarios: Sequence[Scenario]) -> ScenarioComparison:
    """
    Best/worst/most-likely plus spread of the expected outcomes.

    Ties keep the scenario that came first. Variance is the plain sample
    variance of the outcomes, not probability-weighted.
    """
    if len(scenarios) < 2:
        raise InputShapeError(
            "At least 2 scenarios are required for comparison",
            category=ErrorCategory.INVALID_PARAMETER,
        )
    outcomes = [_outcome(s) for s in scenarios]

    best = scenarios[0]
    worst = scenarios[0]
    most_likely = scenarios[0]
    for scenario in scenarios[1:]:
        if scenario.expected_value > best.expected_value:
            best = scenario
        if scenario.expected_value < worst.expected_value:
            worst = scenario
        if scenario.probability > most_likely.probability:
            most_likely = scenario

    center = mean(outcomes)
    spread_var = variance(outcomes)
    spread_std = math.sqrt(spread_var)
    half_width = Z_95 * spread_std / math.sqrt(len(outcomes))

    recommendations = [
        f"Plan around '{most_likely.name}' as the most probable outcome",
        f"Prepare contingency plans for '{worst.name}'",
        "Monitor leading indicators",
        "Update scenarios regularly",
    ]
    if center != 0 and spread_std / abs(center) > 0.2:
        recommendations.insert(0, "Outcomes vary widely across scenarios - treat projections with caution")

    return ScenarioComparison(
        best=best,
        worst=worst,
        most_likely=most_likely,
        mean=center,
        variance=spread_var,
        standard_deviation=spread_std,
        confidence_interval=(center - half_width, center + half_width),
        recommendations=recommendations,
    )


def weighted_prediction(scenarios: Sequence[Scenario]) -> WeightedPrediction:
    """Sum of probability x outcome, plus the same normalized by total probability."""
    if not scenarios:
        raise InputShapeError("No scenarios to weight", category=ErrorCategory.INVALID_PARAMETER)
    products = [s.probability * _outcome(s) for s in scenarios]
    weighted = accumulate(products)
    total = accumulate([s.probability for s in scenarios])
    return WeightedPrediction(
        weighted_sum=weighted,
        total_probability=total,
        normalized=weighted / total if total else None,
    )


# ===================
# SENSITIVITY
# ===================

def impact_description(change: float) -> str:
    if change > 20:
        return "Significant positive impact"
    if change > 10:
        return "Moderate positive impact"
    if change > 0:
        return "Minor positive impact"
    if change == 0:
        return "No change"
    if change > -10:
        return "Minor negative impact"
    if change > -20:
        return "Moderate negative impact"
    return "Significant negative impact"


def sensitivity_recommendations(points: Sequence[SensitivityPoint]) -> List[Dict[str, str]]:
    recommendations = []
    if any(abs(p.change) > 15 for p in points):
        recommendations.append({
            "type": "risk_management",
            "message": "High sensitivity detected - implement monitoring and controls",
            "priority": "high",
        })
    recommendations.append({
        "type": "optimization",
        "message": "Focus on variables with highest positive impact potential",
        "priority": "medium",
    })
    recommendations.append({
        "type": "contingency",
        "message": "Prepare contingency plans for negative scenarios",
        "priority": "medium",
    })
    return recommendations


def check_sensitivity_range(low: float, high: float) -> None:
    """
    Raises:
        InputShapeError: non-finite or reversed bounds, or more than
            MAX_SENSITIVITY_STEPS steps between them
    """
    if not (math.isfinite(low) and math.isfinite(high)):
        raise InputShapeError(
            f"Change range bounds must be finite, got ({low}, {high})",
            category=ErrorCategory.INVALID_PARAMETER,
        )
    if low > high:
        raise InputShapeError(
            f"Invalid change range: {low} > {high}",
            category=ErrorCategory.INVALID_PARAMETER,
        )
    steps = (high - low) / SENSITIVITY_STEP
    if steps > MAX_SENSITIVITY_STEPS:
        raise InputShapeError(
            f"Change range ({low}, {high}) spans {steps:.0f} steps, limit is {MAX_SENSITIVITY_STEPS}",
            category=ErrorCategory.INVALID_PARAMETER,
            context={"steps": int(steps), "max_steps": MAX_SENSITIVITY_STEPS},
        )


def sensitivity_analysis(
    variable: str,
    change_range: Tuple[float, float] = (-50, 50),
    dataset: Optional[TabularDataset] = None,
    column_index: Optional[int] = None,
    skip_header: bool = True,
) -> SensitivityAnalysis:
    """
    One record per 10-point step across change_range, inclusive.

    When a dataset and column are given, each step also carries the
    projected column total.
    """
    low, high = change_range
    check_sensitivity_range(low, high)

    baseline = None
    if dataset is not None and column_index is not None:
        values = dataset.numeric_column_values(column_index, skip_header=skip_header)
        baseline = accumulate(values) if values else None

    points = []
    for step in range(int((high - low) // SENSITIVITY_STEP) + 1):
        change = low + step * SENSITIVITY_STEP
        multiplier = 1 + change / 100
        points.append(SensitivityPoint(
            change=change,
            multiplier=multiplier,
            impact=impact_description(change),
            formula=f"=ORIGINAL_{variable.upper()} * {format_number(multiplier)}",
            projected_value=baseline * multiplier if baseline is not None else None,
        ))

    return SensitivityAnalysis(
        variable=variable,
        change_range=(low, high),
        points=points,
        recommendations=sensitivity_recommendations(points),
        baseline_value=baseline,
    )
