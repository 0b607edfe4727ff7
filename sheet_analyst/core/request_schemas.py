"""
Request Schemas

Pydantic models for the JSON payloads accepted by the request handlers.
Validation failures surface as InputShapeError so every entry point
reports bad input the same way.
"""
import logging
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, FiniteFloat, Field, ValidationError, field_validator, model_validator

from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError
from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.scenarios import MAX_SENSITIVITY_STEPS, SENSITIVITY_STEP

logger = logging.getLogger(__name__)

AnalysisType = Literal[
    "basic", "statistical", "quality", "correlations", "outliers", "trends", "comprehensive",
]
ScenarioType = Literal["all", "optimistic", "realistic", "pessimistic", "custom"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class SelectedRange(BaseModel):
    """The selected spreadsheet range as sent by the host application."""
    model_config = ConfigDict(populate_by_name=True)

    address: str
    values: List[List[Any]]
    row_count: int = Field(..., alias="rowCount", ge=0)
    column_count: int = Field(..., alias="columnCount", ge=0)

    @field_validator("values")
    @classmethod
    def validate_grid(cls, v):
        if not v or not v[0]:
            raise ValueError("values must contain at least one non-empty row")
        width = len(v[0])
        for index, row in enumerate(v):
            if len(row) != width:
                raise ValueError(f"row {index} has {len(row)} cells, expected {width}")
        return v

    @model_validator(mode="after")
    def validate_counts(self):
        if self.row_count != len(self.values):
            raise ValueError(f"rowCount {self.row_count} does not match {len(self.values)} rows")
        if self.column_count != len(self.values[0]):
            raise ValueError(f"columnCount {self.column_count} does not match {len(self.values[0])} columns")
        return self

    @property
    def cell_count(self) -> int:
        return self.row_count * self.column_count

    def to_dataset(self) -> TabularDataset:
        return TabularDataset.from_values(
            self.values,
            address=self.address,
            row_count=self.row_count,
            column_count=self.column_count,
        )


class _SelectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_data: Optional[SelectedRange] = Field(None, alias="selectedData")


class AnalyzeRequest(_SelectionRequest):
    analysis_type: AnalysisType = Field("comprehensive", alias="analysisType")
    forecast_horizon: Optional[int] = Field(None, alias="forecastHorizon", ge=1, le=120)
    include_narrative: bool = Field(False, alias="includeNarrative")


class CorrelationRequest(_SelectionRequest):
    threshold: Optional[float] = Field(None, ge=0, le=1)
    include_matrix: bool = Field(False, alias="includeMatrix")


class PredictionRequest(_SelectionRequest):
    horizon: Optional[int] = Field(None, ge=1, le=120)
    confidence_level: Optional[float] = Field(None, alias="confidenceLevel", gt=0, lt=1)


class CustomScenarioModel(BaseModel):
    """Caller-defined scenario: column index -> percentage change."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    changes: Dict[int, float]
    probability: float = Field(..., ge=0)
    description: str = "Custom scenario"
    assumptions: List[str] = Field(default_factory=list)
    risk_level: str = Field("Medium", alias="riskLevel")

    @field_validator("changes")
    @classmethod
    def validate_changes(cls, v):
        if not v:
            raise ValueError("custom scenario needs at least one column change")
        for column, change in v.items():
            if column < 0:
                raise ValueError(f"column index {column} is negative")
            if change <= -100:
                raise ValueError(f"change {change}% for column {column} would remove the value entirely")
        return v


class ScenarioRequest(_SelectionRequest):
    scenario_type: ScenarioType = Field("all", alias="scenarioType")
    custom_scenarios: List[CustomScenarioModel] = Field(default_factory=list, alias="customScenarios")
    compare: bool = True
    include_projections: bool = Field(False, alias="includeProjections")


class SensitivityRequest(_SelectionRequest):
    variable: str = Field(..., min_length=1)
    change_range: Tuple[FiniteFloat, FiniteFloat] = Field((-50, 50), alias="changeRange")
    column_index: Optional[int] = Field(None, alias="columnIndex", ge=0)

    @field_validator("change_range")
    @classmethod
    def validate_range(cls, v):
        if v[0] > v[1]:
            raise ValueError(f"changeRange minimum {v[0]} exceeds maximum {v[1]}")
        if (v[1] - v[0]) / SENSITIVITY_STEP > MAX_SENSITIVITY_STEPS:
            raise ValueError(
                f"changeRange spans more than {MAX_SENSITIVITY_STEPS} steps of {SENSITIVITY_STEP}"
            )
        return v


class FormulaRequest(_SelectionRequest):
    """Formula for an intent; the range comes from address or the selection."""
    intent: str = Field(..., min_length=1)
    address: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ValidateFormulaRequest(BaseModel):
    formula: str = Field(..., min_length=1)


class ScenarioOutcomeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    expected_value: float = Field(..., alias="expectedValue")
    probability: float = Field(..., ge=0)


class CompareScenariosRequest(BaseModel):
    scenarios: List[ScenarioOutcomeModel] = Field(..., min_length=2)


def _format_errors(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else item.get("msg", "invalid"))
    return messages


def parse_request(schema: Type[ModelT], payload: Optional[Dict[str, Any]]) -> ModelT:
    """
    Validate a payload against a schema.

    Raises:
        InputShapeError: payload missing or invalid
    """
    if payload is None:
        raise InputShapeError("Request body is required", category=ErrorCategory.MISSING_DATASET)
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        errors = _format_errors(e)
        logger.warning(f"Invalid {schema.__name__}: {errors}")
        raise InputShapeError(
            f"Invalid request: {'; '.join(errors)}",
            category=ErrorCategory.INVALID_PARAMETER,
            context={"errors": errors},
        ) from e


def require_selection(request: _SelectionRequest) -> SelectedRange:
    if request.selected_data is None:
        raise InputShapeError("Selected data is required", category=ErrorCategory.MISSING_DATASET)
    return request.selected_data
