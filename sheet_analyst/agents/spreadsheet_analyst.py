"""
Spreadsheet Analyst

Composes the analysis engines into one report for a selected range:
1. Every engine is deterministic code; the language model never computes
2. Engines run independently; one failing engine leaves the others' results intact
3. Recommendations are derived by threshold tests over the finished results

The optional narrative wraps the finished report in prose through the
model router.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from config.settings import AppConfig, get_config
from sheet_analyst.core.error_taxonomy import ClassifiedError, ErrorCategory, InputShapeError, classify_error
from sheet_analyst.core.model_router import ModelRouter, get_router
from sheet_analyst.core.observability import SpanKind, Tracer
from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.correlation import CorrelationRecord, calculate_correlations
from sheet_analyst.tools.data_quality import DatasetProfile, QualityAssessment, assess_data_quality, profile_dataset
from sheet_analyst.tools.descriptive_statistics import ColumnStatistics, calculate_statistics
from sheet_analyst.tools.formula_generator import FormulaGenerator, FormulaSuggestion, get_formula_generator
from sheet_analyst.tools.outliers import OutlierRecord, detect_outliers
from sheet_analyst.tools.scenarios import CustomScenarioSpec, Scenario, generate_scenarios
from sheet_analyst.tools.trends import TrendAnalysis, analyze_trends

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUALITY_THRESHOLD = 0.8
CORRELATION_THRESHOLD = 0.7
OUTLIER_PERCENT_THRESHOLD = 5
SLOPE_THRESHOLD = 0.1


@dataclass
class Recommendation:
    category: str
    priority: str
    message: str
    actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "priority": self.priority,
            "message": self.message,
            "actions": self.actions,
        }


@dataclass
class AnalysisReport:
    """Merged output of every engine for one dataset."""
    address: str
    profile: Optional[DatasetProfile] = None
    statistics: Dict[int, ColumnStatistics] = field(default_factory=dict)
    quality: Optional[QualityAssessment] = None
    correlations: Dict[str, CorrelationRecord] = field(default_factory=dict)
    outliers: Dict[int, OutlierRecord] = field(default_factory=dict)
    trends: Dict[int, TrendAnalysis] = field(default_factory=dict)
    scenarios: List[Scenario] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    formulas: List[FormulaSuggestion] = field(default_factory=list)
    errors: List[ClassifiedError] = field(default_factory=list)
    trace_id: Optional[str] = None
    narrative: Optional[str] = None
    narrative_formula: Optional[Dict[str, str]] = None

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "basic_stats": self.profile.to_dict() if self.profile else None,
            "statistical_summary": {f"column_{c}": s.to_dict() for c, s in self.statistics.items()},
            "data_quality": self.quality.to_dict() if self.quality else None,
            "correlations": {k: r.to_dict() for k, r in self.correlations.items()},
            "outliers": {f"column_{c}": r.to_dict() for c, r in self.outliers.items()},
            "trends": {f"column_{c}": t.to_dict() for c, t in self.trends.items()},
            "scenarios": [s.to_dict() for s in self.scenarios],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "formulas": [f.to_dict() for f in self.formulas],
            "errors": [e.to_dict() for e in self.errors],
            "partial": self.is_partial,
            "trace_id": self.trace_id,
            "narrative": self.narrative,
            "narrative_formula": self.narrative_formula,
        }


def derive_recommendations(report: AnalysisReport) -> List[Recommendation]:
    """Threshold tests over each sub-result, in a fixed order."""
    recommendations: List[Recommendation] = []

    if report.quality is not None and report.quality.overall < QUALITY_THRESHOLD:
        recommendations.append(Recommendation(
            category="Data Quality",
            priority="high",
            message="Improve data quality by addressing missing values and inconsistencies",
            actions=[
                "Use IFERROR() functions to handle missing data",
                "Implement data validation rules",
                "Create data cleansing formulas",
            ],
        ))

    for key, corr in report.correlations.items():
        if abs(corr.coefficient) > CORRELATION_THRESHOLD:
            recommendations.append(Recommendation(
                category="Statistical Analysis",
                priority="medium",
                message=f"Strong {corr.strength} correlation detected between variables ({key})",
                actions=[
                    "Create scatter plots to visualize relationship",
                    "Consider regression analysis",
                    "Investigate causal relationships",
                ],
            ))

    for column, outlier in report.outliers.items():
        if outlier.percentage > OUTLIER_PERCENT_THRESHOLD:
            recommendations.append(Recommendation(
                category="Outlier Management",
                priority="medium",
                message=f"{outlier.percentage:.1f}% outliers detected in column_{column}",
                actions=[
                    "Investigate outlier causes",
                    "Consider robust statistical methods",
                    "Implement outlier detection formulas",
                ],
            ))

    for column, trend in report.trends.items():
        if abs(trend.linear.slope) > SLOPE_THRESHOLD:
            recommendations.append(Recommendation(
                category="Trend Analysis",
                priority="high",
                message=f"Significant {trend.linear.direction} trend in column_{column}",
                actions=[
                    "Create trend line charts",
                    "Implement forecasting formulas",
                    "Monitor trend sustainability",
                ],
            ))

    return recommendations


class SpreadsheetAnalyst:
    """
    Orchestrates the analysis engines for a dataset.
    """

    SYSTEM_PROMPT = """You are a data analyst explaining spreadsheet analysis results.
Use the pre-calculated figures exactly as provided - do not recalculate.
Summarize key findings, notable trends and outliers, data quality, and next steps in plain language."""

    ANALYSIS_TYPES = ("basic", "statistical", "quality", "correlations", "outliers", "trends", "comprehensive")

    def __init__(
        self,
        router: Optional[ModelRouter] = None,
        formula_generator: Optional[FormulaGenerator] = None,
        config: Optional[AppConfig] = None,
    ):
        self._router = router
        self.formula_generator = formula_generator or get_formula_generator()
        self.config = config or get_config()

    @property
    def router(self) -> ModelRouter:
        """Created on first use so numeric analysis never needs model credentials."""
        if self._router is None:
            self._router = get_router()
        return self._router

    def _new_tracer(self) -> Tracer:
        return Tracer(export_dir=self.config.analysis.trace_export_dir)

    def _run_engine(
        self,
        tracer: Tracer,
        report: AnalysisReport,
        name: str,
        func: Callable[..., T],
        *args,
        default: T = None,
        **kwargs,
    ) -> T:
        """Run one engine in its own span; a failure is logged and recorded, not raised."""
        try:
            with tracer.start_span(name, SpanKind.ANALYSIS_ENGINE) as span:
                result = func(*args, **kwargs)
                if span is not None and hasattr(result, "__len__"):
                    span.attributes["result_count"] = len(result)
                return result
        except Exception as e:
            logger.error(f"{name} failed for {report.address or 'selection'}: {e}")
            report.errors.append(classify_error(e, analysis_phase=name, context={"address": report.address}))
            return default

    def deep_analysis(
        self,
        dataset: TabularDataset,
        forecast_horizon: Optional[int] = None,
        scenario_type: str = "all",
        custom_scenarios: Optional[Sequence[CustomScenarioSpec]] = None,
    ) -> AnalysisReport:
        """
        Run every engine over the dataset and merge the results.

        Only an empty dataset fails the whole request; anything an engine
        raises ends up in report.errors.
        """
        if dataset.is_empty:
            raise InputShapeError("The selected range contains no values", category=ErrorCategory.EMPTY_DATASET)

        report = AnalysisReport(address=dataset.address)
        tracer = self._new_tracer()
        confidence = self.config.analysis.confidence_level

        with tracer.start_trace("deep_analysis", address=dataset.address) as trace:
            report.trace_id = trace.trace_id
            report.profile = self._run_engine(tracer, report, "profile", profile_dataset, dataset)
            report.statistics = self._run_engine(
                tracer, report, "statistics", calculate_statistics, dataset, default={})
            report.quality = self._run_engine(tracer, report, "quality", assess_data_quality, dataset)
            report.correlations = self._run_engine(
                tracer, report, "correlations", calculate_correlations, dataset, default={})
            report.outliers = self._run_engine(tracer, report, "outliers", detect_outliers, dataset, default={})
            report.trends = self._run_engine(
                tracer, report, "trends", analyze_trends, dataset,
                forecast_horizon=forecast_horizon, confidence_level=confidence, default={})
            report.scenarios = self._run_engine(
                tracer, report, "scenarios", generate_scenarios, dataset,
                scenario_type=scenario_type, custom=custom_scenarios, default=[])
            report.formulas = self._run_engine(
                tracer, report, "formulas", self.formula_generator.suggestions_for,
                "comprehensive", dataset, default=[])
            report.recommendations = derive_recommendations(report)

        if report.errors:
            logger.warning(
                f"Partial report for {dataset.address or 'selection'}: "
                f"{len(report.errors)} engine(s) failed"
            )
        return report

    def analyze(
        self,
        dataset: TabularDataset,
        analysis_type: str = "comprehensive",
        forecast_horizon: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run one analysis type and return its serializable result.

        Unknown types fall back to the comprehensive report.
        """
        if analysis_type == "basic":
            return profile_dataset(dataset).to_dict()
        if analysis_type == "statistical":
            return {f"column_{c}": s.to_dict() for c, s in calculate_statistics(dataset).items()}
        if analysis_type == "quality":
            return assess_data_quality(dataset).to_dict()
        if analysis_type == "correlations":
            return {k: r.to_dict() for k, r in calculate_correlations(dataset).items()}
        if analysis_type == "outliers":
            return {f"column_{c}": r.to_dict() for c, r in detect_outliers(dataset).items()}
        if analysis_type == "trends":
            trends = analyze_trends(
                dataset,
                forecast_horizon=forecast_horizon,
                confidence_level=self.config.analysis.confidence_level,
            )
            return {f"column_{c}": t.to_dict() for c, t in trends.items()}
        return self.deep_analysis(dataset, forecast_horizon=forecast_horizon).to_dict()

    # ===================
    # NARRATIVE
    # ===================

    @staticmethod
    def format_for_llm(report: AnalysisReport) -> str:
        """Compact text rendering of the report for the narrative prompt."""
        parts = [f"## Range: {report.address or 'selection'}"]
        if report.profile:
            parts.append(
                f"{report.profile.row_count} rows x {report.profile.column_count} columns, "
                f"headers={'yes' if report.profile.has_headers else 'no'}, "
                f"missing cells={report.profile.missing_values}"
            )
        for col, stats in report.statistics.items():
            parts.append(
                f"- column_{col}: n={stats.count}, mean={stats.mean:.4g}, median={stats.median:.4g}, "
                f"min={stats.minimum:.4g}, max={stats.maximum:.4g}"
            )
        for col, trend in report.trends.items():
            line = f"- column_{col} trend: {trend.linear.description} (slope {trend.linear.slope:.4g})"
            if trend.forecast:
                line += f", next period forecast {trend.forecast.values[0]:.4g} ({trend.forecast.reliability} reliability)"
            parts.append(line)
        for key, corr in report.correlations.items():
            parts.append(f"- {key}: r={corr.coefficient:.3f} ({corr.strength})")
        for col, outlier in report.outliers.items():
            if outlier.flagged_count:
                parts.append(f"- column_{col}: {outlier.flagged_count} outlier(s), {outlier.percentage:.1f}%")
        if report.quality:
            parts.append(f"Data quality grade {report.quality.grade} ({report.quality.overall:.2f})")
        if report.recommendations:
            parts.append("Recommendations: " + json.dumps([r.message for r in report.recommendations]))
        return "\n".join(parts)

    def generate_narrative(self, report: AnalysisReport, context: Optional[str] = None) -> Optional[str]:
        """
        Ask the model for a prose summary of a finished report.

        Returns None, and records a classified error on the report, if the
        model call fails. The numeric report is never modified otherwise.
        """
        prompt = self.format_for_llm(report)
        if context:
            prompt = f"{context}\n\n{prompt}"

        tracer = self._new_tracer()
        try:
            with tracer.start_trace("narrative", address=report.address):
                with tracer.start_span("llm_narrative", SpanKind.LLM_CALL) as span:
                    started = time.time()
                    response = self.router.generate_with_system(self.SYSTEM_PROMPT, prompt)
                    tracer.record_llm_usage(
                        span,
                        model=response.model,
                        provider=response.provider.value,
                        input_tokens=response.usage.get("prompt_tokens", 0),
                        output_tokens=response.usage.get("completion_tokens", 0),
                        latency_ms=(time.time() - started) * 1000,
                    )
        except Exception as e:
            logger.error(f"Narrative generation failed: {e}")
            report.errors.append(classify_error(e, analysis_phase="narrative"))
            return None

        report.narrative = response.content
        # Only a whitelisted formula from the prose is offered for insertion
        report.narrative_formula = self.formula_generator.extract_formula(response.content)
        return response.content


def get_spreadsheet_analyst(router: Optional[ModelRouter] = None) -> SpreadsheetAnalyst:
    """Factory for SpreadsheetAnalyst."""
    return SpreadsheetAnalyst(router=router)
