"""
Request Handlers

Transport-independent entry points for the spreadsheet add-in. Each
handler takes the JSON body as a dict and returns a JSON-ready dict:

    {"success": True, ..., "timestamp": "<iso>"}
    {"success": False, "error": {<classified error>}}

Nothing raises out of a handler; every failure is classified first.
"""
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from config.settings import AppConfig, get_config
from sheet_analyst.agents.spreadsheet_analyst import SpreadsheetAnalyst
from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError, classify_error
from sheet_analyst.core.request_schemas import (
    AnalyzeRequest,
    CompareScenariosRequest,
    CorrelationRequest,
    FormulaRequest,
    PredictionRequest,
    ScenarioRequest,
    SensitivityRequest,
    ValidateFormulaRequest,
    _SelectionRequest,
    parse_request,
    require_selection,
)
from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.correlation import calculate_correlations, correlation_matrix, filter_correlations
from sheet_analyst.tools.data_quality import assess_data_quality, profile_dataset
from sheet_analyst.tools.descriptive_statistics import calculate_statistics
from sheet_analyst.tools.formula_generator import get_formula_generator
from sheet_analyst.tools.outliers import detect_outliers
from sheet_analyst.tools.scenarios import (
    CustomScenarioSpec,
    Scenario,
    apply_scenario,
    compare_scenarios,
    generate_scenarios,
    sensitivity_analysis,
    weighted_prediction,
)
from sheet_analyst.tools.trends import analyze_trends, generate_predictions

logger = logging.getLogger(__name__)

Payload = Optional[Dict[str, Any]]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _success(**body) -> Dict[str, Any]:
    return {"success": True, **body, "timestamp": _timestamp()}


def _failure(error: Exception, phase: str) -> Dict[str, Any]:
    classified = classify_error(error, analysis_phase=phase)
    if classified.recoverable:
        logger.warning(f"{phase} rejected: {classified.message}")
    else:
        logger.error(f"{phase} failed: {classified.message}")
    return {"success": False, "error": classified.to_dict()}


def handler(phase: str) -> Callable:
    """Convert anything raised by the wrapped handler into a failure body."""
    def decorate(func: Callable[..., Dict[str, Any]]) -> Callable[..., Dict[str, Any]]:
        @functools.wraps(func)
        def wrapper(payload: Payload, *args, **kwargs) -> Dict[str, Any]:
            try:
                return func(payload, *args, **kwargs)
            except Exception as e:
                return _failure(e, phase)
        return wrapper
    return decorate


def load_dataset(request: _SelectionRequest, config: Optional[AppConfig] = None) -> TabularDataset:
    """
    Selected range of a validated request as a dataset.

    Raises:
        InputShapeError: no selection, or more cells than MAX_CELLS allows
    """
    config = config or get_config()
    selection = require_selection(request)
    limit = config.analysis.max_cells
    if selection.cell_count > limit:
        raise InputShapeError(
            f"Selection has {selection.cell_count} cells, limit is {limit}",
            category=ErrorCategory.DATASET_TOO_LARGE,
            context={"cells": selection.cell_count, "max_cells": limit},
        )
    return selection.to_dataset()


def _by_column(results: Dict[int, Any]) -> Dict[str, Any]:
    return {f"column_{col}": record.to_dict() for col, record in results.items()}


# ===================
# ANALYSIS
# ===================

@handler("analyze")
def handle_analyze(payload: Payload, analyst: Optional[SpreadsheetAnalyst] = None) -> Dict[str, Any]:
    request = parse_request(AnalyzeRequest, payload)
    dataset = load_dataset(request)
    analyst = analyst or SpreadsheetAnalyst()

    if request.analysis_type == "comprehensive":
        report = analyst.deep_analysis(dataset, forecast_horizon=request.forecast_horizon)
        if request.include_narrative:
            analyst.generate_narrative(report)
        analysis = report.to_dict()
    else:
        analysis = analyst.analyze(dataset, request.analysis_type, request.forecast_horizon)

    logger.info(f"Completed {request.analysis_type} analysis of {dataset.address or 'selection'}")
    return _success(analysis=analysis, analysisType=request.analysis_type)


@handler("statistics")
def handle_statistics(payload: Payload) -> Dict[str, Any]:
    dataset = load_dataset(parse_request(_SelectionRequest, payload))
    return _success(statistics=_by_column(calculate_statistics(dataset)))


@handler("quality")
def handle_quality(payload: Payload) -> Dict[str, Any]:
    dataset = load_dataset(parse_request(_SelectionRequest, payload))
    return _success(
        quality=assess_data_quality(dataset).to_dict(),
        profile=profile_dataset(dataset).to_dict(),
    )


@handler("correlations")
def handle_correlations(payload: Payload) -> Dict[str, Any]:
    request = parse_request(CorrelationRequest, payload)
    dataset = load_dataset(request)
    threshold = request.threshold
    if threshold is None:
        threshold = get_config().analysis.correlation_threshold

    records = calculate_correlations(dataset)
    significant = filter_correlations(records, threshold)
    body = dict(
        correlations={key: r.to_dict() for key, r in significant.items()},
        threshold=threshold,
        pairsTested=len(records),
    )
    if request.include_matrix:
        columns, matrix = correlation_matrix(dataset)
        body["matrix"] = {"columns": columns, "values": matrix}
    return _success(**body)


@handler("outliers")
def handle_outliers(payload: Payload) -> Dict[str, Any]:
    dataset = load_dataset(parse_request(_SelectionRequest, payload))
    return _success(outliers=_by_column(detect_outliers(dataset)))


@handler("trends")
def handle_trends(payload: Payload) -> Dict[str, Any]:
    """Trend records; a forecast is attached only when a horizon is sent."""
    request = parse_request(PredictionRequest, payload)
    dataset = load_dataset(request)
    confidence = request.confidence_level or get_config().analysis.confidence_level
    trends = analyze_trends(dataset, forecast_horizon=request.horizon, confidence_level=confidence)
    return _success(trends=_by_column(trends))


@handler("predictions")
def handle_predictions(payload: Payload) -> Dict[str, Any]:
    request = parse_request(PredictionRequest, payload)
    dataset = load_dataset(request)
    settings = get_config().analysis
    horizon = request.horizon or settings.forecast_horizon
    confidence = request.confidence_level or settings.confidence_level

    forecasts = generate_predictions(dataset, horizon=horizon, confidence_level=confidence)
    return _success(predictions=_by_column(forecasts), horizon=horizon, confidenceLevel=confidence)


# ===================
# SCENARIOS
# ===================

@handler("scenarios")
def handle_whatif_scenarios(payload: Payload) -> Dict[str, Any]:
    request = parse_request(ScenarioRequest, payload)
    dataset = load_dataset(request)
    custom = [
        CustomScenarioSpec(
            name=model.name,
            changes=dict(model.changes),
            probability=model.probability,
            description=model.description,
            assumptions=list(model.assumptions),
            risk_level=model.risk_level,
        )
        for model in request.custom_scenarios
    ]
    scenarios = generate_scenarios(dataset, scenario_type=request.scenario_type, custom=custom)

    comparison = None
    weighted = None
    comparable = [s for s in scenarios if s.expected_value is not None]
    if request.compare and len(comparable) >= 2:
        comparison = compare_scenarios(comparable).to_dict()
        weighted = weighted_prediction(comparable).to_dict()

    body = dict(
        scenarios=[s.to_dict() for s in scenarios],
        comparison=comparison,
        weightedPrediction=weighted,
    )
    if request.include_projections:
        body["projections"] = [
            {"name": s.name, "values": apply_scenario(dataset, s).to_values()}
            for s in scenarios
        ]
    return _success(**body)


@handler("sensitivity")
def handle_sensitivity(payload: Payload) -> Dict[str, Any]:
    request = parse_request(SensitivityRequest, payload)
    dataset = None
    if request.column_index is not None:
        dataset = load_dataset(request)
        if request.column_index >= dataset.column_count:
            raise InputShapeError(
                f"columnIndex {request.column_index} is outside the selection",
                category=ErrorCategory.INVALID_PARAMETER,
            )
    analysis = sensitivity_analysis(
        request.variable,
        change_range=request.change_range,
        dataset=dataset,
        column_index=request.column_index,
    )
    return _success(sensitivity=analysis.to_dict())


@handler("compare_scenarios")
def handle_compare_scenarios(payload: Payload) -> Dict[str, Any]:
    """Compare caller-computed outcomes; no dataset involved."""
    request = parse_request(CompareScenariosRequest, payload)
    scenarios = [
        Scenario(
            name=outcome.name,
            scenario_type="custom",
            description="",
            assumptions=[],
            modifications=[],
            expected_outcome="",
            risk_level="",
            probability=outcome.probability,
            expected_value=outcome.expected_value,
        )
        for outcome in request.scenarios
    ]
    return _success(
        comparison=compare_scenarios(scenarios).to_dict(),
        weightedPrediction=weighted_prediction(scenarios).to_dict(),
    )


# ===================
# FORMULAS
# ===================

FORMULA_FIX_HINTS = [
    "Check function syntax",
    "Verify range references",
    "Ensure parentheses are balanced",
    "Check for circular references",
]


@handler("formulas")
def handle_generate_formula(payload: Payload) -> Dict[str, Any]:
    """Formula for an intent over the given address, else the selection's address."""
    request = parse_request(FormulaRequest, payload)
    address = request.address
    if address is None:
        address = request.selected_data.address if request.selected_data else ""

    generator = get_formula_generator()
    suggestion = generator.generate_formula(request.intent, address, request.parameters)
    return _success(
        formula=suggestion.to_dict(),
        intent=request.intent,
        valid=generator.validate_formula(suggestion.formula),
    )


@handler("formulas")
def handle_validate_formula(payload: Payload) -> Dict[str, Any]:
    """Screen a formula against the function whitelist and dangerous patterns."""
    request = parse_request(ValidateFormulaRequest, payload)
    generator = get_formula_generator()
    valid = generator.validate_formula(request.formula)
    if not valid:
        logger.warning(f"Formula failed validation: {request.formula}")
    return _success(
        valid=valid,
        extracted=generator.extract_formula(request.formula),
        suggestions=[] if valid else list(FORMULA_FIX_HINTS),
    )
