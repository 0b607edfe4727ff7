"""
Tests for the orchestrator: merged reports, failure isolation,
recommendations and the optional narrative.
"""
import pytest

from config.settings import AnalysisConfig, AppConfig, ModelProvider
from sheet_analyst.agents import spreadsheet_analyst as analyst_module
from sheet_analyst.agents.spreadsheet_analyst import (
    AnalysisReport,
    SpreadsheetAnalyst,
    derive_recommendations,
)
from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError
from sheet_analyst.core.model_router import LLMResponse
from sheet_analyst.data import TabularDataset


MONTHLY_SALES = [
    ["Month", "Sales"],
    ["Jan", 100],
    ["Feb", 110],
    ["Mar", 120],
    ["Apr", 130],
]


class StubRouter:
    """Stands in for ModelRouter; records prompts and returns canned text."""

    def __init__(self, content="Sales rose steadily.", error=None):
        self.content = content
        self.error = error
        self.prompts = []

    def generate_with_system(self, system_prompt, user_message, temperature=None, max_tokens=None):
        self.prompts.append((system_prompt, user_message))
        if self.error:
            raise self.error
        return LLMResponse(
            content=self.content,
            model="gpt-4o",
            provider=ModelProvider.OPENAI,
            usage={"prompt_tokens": 120, "completion_tokens": 40},
        )


class FailingFormulas:
    def suggestions_for(self, analysis_type, dataset):
        raise RuntimeError("template store unavailable")


@pytest.fixture
def config():
    return AppConfig(active_model="gpt-4o", analysis=AnalysisConfig(trace_export_dir=None))


@pytest.fixture
def analyst(config):
    return SpreadsheetAnalyst(router=StubRouter(), config=config)


@pytest.fixture
def sales():
    return TabularDataset.from_values(MONTHLY_SALES, address="Sheet1!A1:B5")


class TestDeepAnalysis:
    """End-to-end report over a small range."""

    def test_month_sales(self, analyst, sales):
        """Mean 115, slope 10, increasing, forecast 140."""
        report = analyst.deep_analysis(sales, forecast_horizon=1)
        assert report.statistics[1].mean == 115
        assert report.trends[1].linear.slope == pytest.approx(10)
        assert report.trends[1].linear.direction == "increasing"
        assert report.trends[1].forecast.values[0] == pytest.approx(140)
        assert report.errors == []
        assert report.trace_id.startswith("trace_")
        assert report.profile.has_headers

    def test_scenarios_and_formulas_included(self, analyst, sales):
        report = analyst.deep_analysis(sales)
        assert [s.scenario_type for s in report.scenarios] == ["optimistic", "pessimistic", "realistic"]
        assert report.scenarios[0].expected_value == pytest.approx(552)
        assert any(f.formula == "=AVERAGE(Sheet1!B2:B5)" for f in report.formulas)

    def test_trend_recommendation_only(self, analyst, sales):
        report = analyst.deep_analysis(sales)
        assert [(r.category, r.priority) for r in report.recommendations] == [("Trend Analysis", "high")]
        assert report.recommendations[0].message == "Significant increasing trend in column_1"

    def test_engine_failure_is_isolated(self, analyst, sales, monkeypatch):
        """One engine raising leaves the rest of the report intact."""
        def broken(*args, **kwargs):
            raise ZeroDivisionError("float division by zero")

        monkeypatch.setattr(analyst_module, "analyze_trends", broken)
        report = analyst.deep_analysis(sales)
        assert report.trends == {}
        assert report.statistics[1].mean == 115
        assert len(report.errors) == 1
        assert report.errors[0].analysis_phase == "trends"
        assert report.errors[0].category == ErrorCategory.CALCULATION_ERROR
        assert report.to_dict()["partial"] is True

    def test_formula_failure_is_isolated(self, config, sales):
        analyst = SpreadsheetAnalyst(router=StubRouter(), formula_generator=FailingFormulas(), config=config)
        report = analyst.deep_analysis(sales)
        assert report.formulas == []
        assert report.errors[0].analysis_phase == "formulas"
        assert report.quality is not None

    def test_empty_dataset_fails_request(self, analyst):
        with pytest.raises(InputShapeError) as exc:
            analyst.deep_analysis(TabularDataset.from_values([]))
        assert exc.value.category == ErrorCategory.EMPTY_DATASET

    def test_deterministic(self, analyst, sales):
        first = analyst.deep_analysis(sales, forecast_horizon=3).to_dict()
        second = analyst.deep_analysis(sales, forecast_horizon=3).to_dict()
        first.pop("trace_id")
        second.pop("trace_id")
        assert first == second


class TestRecommendations:
    """Threshold rules over a finished report."""

    def test_low_quality_first(self, analyst):
        ds = TabularDataset.from_values([["a", "b"], [1, None], [None, None], [2, None], [None, None]])
        report = analyst.deep_analysis(ds)
        assert report.quality.overall < 0.8
        assert report.recommendations[0].category == "Data Quality"
        assert report.recommendations[0].priority == "high"

    def test_strong_correlation(self, analyst):
        ds = TabularDataset.from_values([["x", "y"], [1, 2], [2, 4], [3, 6.5]])
        report = analyst.deep_analysis(ds)
        stats = [r for r in report.recommendations if r.category == "Statistical Analysis"]
        assert len(stats) == 1
        assert "col_0_col_1" in stats[0].message

    def test_outlier_rate(self, analyst):
        values = [[v] for v in [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]]
        report = analyst.deep_analysis(TabularDataset.from_values([["v"]] + values))
        outlier_recs = [r for r in report.recommendations if r.category == "Outlier Management"]
        assert outlier_recs[0].message == "10.0% outliers detected in column_0"

    def test_empty_report(self):
        assert derive_recommendations(AnalysisReport(address="")) == []


class TestAnalyzeDispatch:
    """Single analysis types."""

    def test_statistical(self, analyst, sales):
        result = analyst.analyze(sales, "statistical")
        assert result["column_1"]["mean"] == 115

    def test_basic(self, analyst, sales):
        assert analyst.analyze(sales, "basic")["row_count"] == 5

    def test_trends_with_horizon(self, analyst, sales):
        result = analyst.analyze(sales, "trends", forecast_horizon=2)
        assert result["column_1"]["forecast"]["values"] == pytest.approx([140, 150])

    def test_comprehensive(self, analyst, sales):
        result = analyst.analyze(sales, "comprehensive")
        assert set(result) >= {"basic_stats", "statistical_summary", "data_quality", "recommendations"}


class TestNarrative:
    """Optional LLM prose over the finished report."""

    def test_narrative_added(self, config, sales):
        router = StubRouter()
        analyst = SpreadsheetAnalyst(router=router, config=config)
        report = analyst.deep_analysis(sales, forecast_horizon=1)
        assert analyst.generate_narrative(report, context="Quarterly review") == "Sales rose steadily."
        assert report.narrative == "Sales rose steadily."
        system_prompt, prompt = router.prompts[0]
        assert prompt.startswith("Quarterly review")
        assert "slope 10" in prompt
        assert "do not recalculate" in system_prompt

    def test_narrative_failure_keeps_report(self, config, sales):
        analyst = SpreadsheetAnalyst(router=StubRouter(error=Exception("429 rate limit")), config=config)
        report = analyst.deep_analysis(sales)
        assert analyst.generate_narrative(report) is None
        assert report.narrative is None
        assert report.errors[-1].category == ErrorCategory.LLM_RATE_LIMITED
        assert report.statistics[1].mean == 115

    def test_narrative_formula_screened(self, config, sales):
        """A whitelisted formula in the prose is offered; anything else is dropped."""
        text = "Average monthly sales:\n=AVERAGE(B2:B5)\nSales grow by about 10 a month."
        analyst = SpreadsheetAnalyst(router=StubRouter(content=text), config=config)
        report = analyst.deep_analysis(sales)
        analyst.generate_narrative(report)
        assert report.narrative_formula["formula"] == "=AVERAGE(B2:B5)"
        assert report.narrative_formula["description"] == "Average monthly sales:"
        assert report.to_dict()["narrative_formula"]["formula"] == "=AVERAGE(B2:B5)"

        unsafe = SpreadsheetAnalyst(router=StubRouter(content="Try =WEBSERVICE(A1)"), config=config)
        report = unsafe.deep_analysis(sales)
        unsafe.generate_narrative(report)
        assert report.narrative == "Try =WEBSERVICE(A1)"
        assert report.narrative_formula is None
