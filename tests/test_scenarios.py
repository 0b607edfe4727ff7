"""
Tests for the scenario generator, comparison and sensitivity analysis.
"""
import pytest

from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError
from sheet_analyst.data import TabularDataset
from sheet_analyst.tools.descriptive_statistics import mean, variance
from sheet_analyst.tools.scenarios import (
    MAX_SENSITIVITY_STEPS,
    SENSITIVITY_STEP,
    CustomScenarioSpec,
    Scenario,
    apply_scenario,
    compare_scenarios,
    format_change,
    format_number,
    generate_scenarios,
    impact_description,
    sensitivity_analysis,
    weighted_prediction,
)


@pytest.fixture
def baseline():
    return TabularDataset.from_values([["Item", "Amount"], ["a", 100]], address="Sheet1!A1:B2")


def _outcome(name, value, probability):
    return Scenario(
        name=name,
        scenario_type="custom",
        description="",
        assumptions=[],
        modifications=[],
        expected_outcome="",
        risk_level="",
        probability=probability,
        expected_value=value,
    )


class TestStandardScenarios:
    """The fixed optimistic / pessimistic / realistic set."""

    def test_factors_on_baseline_of_100(self, baseline):
        scenarios = {s.scenario_type: s for s in generate_scenarios(baseline)}
        assert scenarios["optimistic"].expected_value == pytest.approx(120)
        assert scenarios["pessimistic"].expected_value == pytest.approx(85)
        assert scenarios["realistic"].expected_value == pytest.approx(106)

    def test_order_and_metadata(self, baseline):
        scenarios = generate_scenarios(baseline)
        assert [s.name for s in scenarios] == [
            "Optimistic Scenario", "Pessimistic Scenario", "Realistic Scenario",
        ]
        assert [s.probability for s in scenarios] == [0.25, 0.15, 0.60]
        assert [s.risk_level for s in scenarios] == ["Low", "High", "Medium"]

    def test_modification_text(self, baseline):
        optimistic = generate_scenarios(baseline, scenario_type="optimistic")[0]
        mod = optimistic.modifications[0]
        assert mod.column == "Column B"
        assert mod.change == "+20%"
        assert mod.formula == "=ORIGINAL_VALUE * 1.2"
        assert mod.baseline_value == 100

    def test_single_type(self, baseline):
        scenarios = generate_scenarios(baseline, scenario_type="pessimistic")
        assert len(scenarios) == 1
        assert scenarios[0].modifications[0].change == "-15%"

    def test_unknown_type(self, baseline):
        with pytest.raises(InputShapeError) as exc:
            generate_scenarios(baseline, scenario_type="wild")
        assert exc.value.category == ErrorCategory.INVALID_PARAMETER


class TestCustomScenarios:
    """Caller-defined percentage changes."""

    def test_custom_only(self, baseline):
        spec = CustomScenarioSpec(name="Price hike", changes={1: 10}, probability=0.3)
        scenarios = generate_scenarios(baseline, scenario_type="custom", custom=[spec])
        assert len(scenarios) == 1
        assert scenarios[0].expected_value == pytest.approx(110)
        assert scenarios[0].modifications[0].factor == pytest.approx(1.1)

    def test_column_out_of_range(self, baseline):
        spec = CustomScenarioSpec(name="Bad", changes={5: 10}, probability=0.3)
        with pytest.raises(InputShapeError):
            generate_scenarios(baseline, scenario_type="custom", custom=[spec])

    def test_apply_scenario(self, baseline):
        optimistic = generate_scenarios(baseline, scenario_type="optimistic")[0]
        perturbed = apply_scenario(baseline, optimistic)
        assert perturbed.numeric_column_values(1) == pytest.approx([120])
        assert baseline.numeric_column_values(1) == [100]


class TestComparison:
    """Best/worst/most-likely plus spread."""

    def test_standard_set(self, baseline):
        comparison = compare_scenarios(generate_scenarios(baseline))
        assert comparison.best.scenario_type == "optimistic"
        assert comparison.worst.scenario_type == "pessimistic"
        assert comparison.most_likely.scenario_type == "realistic"
        assert comparison.mean == pytest.approx((120 + 85 + 106) / 3)
        lower, upper = comparison.confidence_interval
        assert lower < comparison.mean < upper

    def test_ties_keep_first(self):
        comparison = compare_scenarios([
            _outcome("first", 10, 0.5),
            _outcome("second", 10, 0.5),
        ])
        assert comparison.best.name == "first"
        assert comparison.worst.name == "first"
        assert comparison.most_likely.name == "first"
        assert comparison.variance == 0

    def test_spread_uses_shared_variance(self):
        """Outcome spread follows the same left-to-right summation as column statistics."""
        outcomes = [0.1, 0.2, 0.3, 1e16, -1e16]
        comparison = compare_scenarios([_outcome(f"s{i}", v, 0.2) for i, v in enumerate(outcomes)])
        assert comparison.mean == mean(outcomes)
        assert comparison.variance == variance(outcomes)
        assert comparison.standard_deviation == pytest.approx(variance(outcomes) ** 0.5)

    def test_needs_two(self):
        with pytest.raises(InputShapeError):
            compare_scenarios([_outcome("only", 1, 1)])

    def test_weighted_prediction(self, baseline):
        weighted = weighted_prediction(generate_scenarios(baseline))
        assert weighted.weighted_sum == pytest.approx(0.25 * 120 + 0.15 * 85 + 0.60 * 106)
        assert weighted.total_probability == pytest.approx(1.0)
        assert weighted.normalized == pytest.approx(weighted.weighted_sum)

    def test_weighted_prediction_normalizes(self):
        weighted = weighted_prediction([_outcome("a", 10, 2), _outcome("b", 20, 2)])
        assert weighted.weighted_sum == 60
        assert weighted.normalized == 15


class TestSensitivity:
    """Stepped what-if on one variable."""

    def test_default_range(self):
        analysis = sensitivity_analysis("price")
        assert [p.change for p in analysis.points] == list(range(-50, 51, 10))
        assert analysis.points[0].formula == "=ORIGINAL_PRICE * 0.5"
        assert analysis.points[5].impact == "No change"
        assert analysis.points[5].formula == "=ORIGINAL_PRICE * 1"
        assert analysis.recommendations[0]["type"] == "risk_management"

    def test_projected_total(self, baseline):
        analysis = sensitivity_analysis("amount", (0, 20), dataset=baseline, column_index=1)
        assert analysis.baseline_value == 100
        assert [p.projected_value for p in analysis.points] == pytest.approx([100, 110, 120])

    def test_narrow_range_has_no_risk_flag(self):
        analysis = sensitivity_analysis("units", (-10, 10))
        assert all(r["type"] != "risk_management" for r in analysis.recommendations)

    def test_inverted_range(self):
        with pytest.raises(InputShapeError):
            sensitivity_analysis("price", (10, -10))

    @pytest.mark.parametrize("bounds", [
        (float("-inf"), 0),
        (0, float("inf")),
        (float("-inf"), float("inf")),
        (float("nan"), 10),
    ])
    def test_non_finite_range_rejected(self, bounds):
        with pytest.raises(InputShapeError) as exc:
            sensitivity_analysis("price", bounds)
        assert exc.value.category == ErrorCategory.INVALID_PARAMETER

    def test_step_count_capped(self):
        with pytest.raises(InputShapeError) as exc:
            sensitivity_analysis("price", (-1e6, 1e6))
        assert exc.value.category == ErrorCategory.INVALID_PARAMETER
        assert exc.value.context["max_steps"] == MAX_SENSITIVITY_STEPS

    def test_widest_allowed_range(self):
        high = MAX_SENSITIVITY_STEPS * SENSITIVITY_STEP
        analysis = sensitivity_analysis("price", (0, high))
        assert len(analysis.points) == MAX_SENSITIVITY_STEPS + 1
        assert analysis.points[-1].change == high

    def test_impact_text(self):
        assert impact_description(25) == "Significant positive impact"
        assert impact_description(15) == "Moderate positive impact"
        assert impact_description(5) == "Minor positive impact"
        assert impact_description(-5) == "Minor negative impact"
        assert impact_description(-15) == "Moderate negative impact"
        assert impact_description(-30) == "Significant negative impact"


class TestFormatting:
    def test_numbers(self):
        assert format_number(1.0) == "1"
        assert format_number(1.06) == "1.06"
        assert format_change(-15) == "-15%"
        assert format_change(6) == "+6%"
