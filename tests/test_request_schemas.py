"""
Tests for request payload validation.
"""
import pytest

from sheet_analyst.core.error_taxonomy import ErrorCategory, InputShapeError
from sheet_analyst.core.request_schemas import (
    AnalyzeRequest,
    CompareScenariosRequest,
    ScenarioRequest,
    SelectedRange,
    SensitivityRequest,
    parse_request,
    require_selection,
)


def selection(values, address="Sheet1!A1:B3"):
    return {
        "address": address,
        "values": values,
        "rowCount": len(values),
        "columnCount": len(values[0]) if values else 0,
    }


GRID = [["Month", "Sales"], ["Jan", 100], ["Feb", 110]]


class TestSelectedRange:
    """The selected range contract."""

    def test_camel_case_payload(self):
        request = parse_request(AnalyzeRequest, {"selectedData": selection(GRID)})
        selected = require_selection(request)
        assert selected.row_count == 3
        assert selected.cell_count == 6
        assert request.analysis_type == "comprehensive"

    def test_snake_case_accepted(self):
        selected = SelectedRange.model_validate(
            {"address": "A1:B3", "values": GRID, "row_count": 3, "column_count": 2}
        )
        assert selected.column_count == 2

    def test_to_dataset(self):
        dataset = SelectedRange.model_validate(selection(GRID)).to_dataset()
        assert dataset.address == "Sheet1!A1:B3"
        assert dataset.numeric_columns() == [1]

    def test_ragged_values_rejected(self):
        payload = {"selectedData": {"address": "A1", "values": [[1, 2], [3]], "rowCount": 2, "columnCount": 2}}
        with pytest.raises(InputShapeError) as exc:
            parse_request(AnalyzeRequest, payload)
        assert exc.value.category == ErrorCategory.INVALID_PARAMETER
        assert exc.value.context["errors"]

    def test_count_mismatch_rejected(self):
        payload = {"selectedData": {"address": "A1", "values": GRID, "rowCount": 5, "columnCount": 2}}
        with pytest.raises(InputShapeError):
            parse_request(AnalyzeRequest, payload)

    def test_missing_selection(self):
        request = parse_request(AnalyzeRequest, {})
        with pytest.raises(InputShapeError) as exc:
            require_selection(request)
        assert str(exc.value) == "Selected data is required"

    def test_missing_body(self):
        with pytest.raises(InputShapeError) as exc:
            parse_request(AnalyzeRequest, None)
        assert exc.value.category == ErrorCategory.MISSING_DATASET


class TestParameters:
    """Per-request parameter validation."""

    def test_unknown_analysis_type(self):
        with pytest.raises(InputShapeError):
            parse_request(AnalyzeRequest, {"selectedData": selection(GRID), "analysisType": "astrology"})

    def test_horizon_bounds(self):
        with pytest.raises(InputShapeError):
            parse_request(AnalyzeRequest, {"selectedData": selection(GRID), "forecastHorizon": 0})

    def test_custom_scenarios(self):
        request = parse_request(ScenarioRequest, {
            "selectedData": selection(GRID),
            "scenarioType": "custom",
            "customScenarios": [{"name": "Hike", "changes": {"1": 10}, "probability": 0.4}],
        })
        assert request.custom_scenarios[0].changes == {1: 10.0}

    def test_custom_change_cannot_remove_value(self):
        with pytest.raises(InputShapeError):
            parse_request(ScenarioRequest, {
                "customScenarios": [{"name": "Wipe", "changes": {"1": -100}, "probability": 0.1}],
            })

    def test_sensitivity_range_order(self):
        with pytest.raises(InputShapeError):
            parse_request(SensitivityRequest, {"variable": "price", "changeRange": [20, -20]})
        request = parse_request(SensitivityRequest, {"variable": "price"})
        assert request.change_range == (-50, 50)

    @pytest.mark.parametrize("bounds", [["-inf", "inf"], ["-inf", 0], [0, "Infinity"], ["nan", 10]])
    def test_sensitivity_range_must_be_finite(self, bounds):
        with pytest.raises(InputShapeError) as exc:
            parse_request(SensitivityRequest, {"variable": "x", "changeRange": bounds})
        assert exc.value.category == ErrorCategory.INVALID_PARAMETER

    def test_sensitivity_range_step_limit(self):
        with pytest.raises(InputShapeError):
            parse_request(SensitivityRequest, {"variable": "x", "changeRange": [-1e6, 1e6]})
        request = parse_request(SensitivityRequest, {"variable": "x", "changeRange": [0, 10000]})
        assert request.change_range == (0, 10000)

    def test_compare_needs_two(self):
        with pytest.raises(InputShapeError):
            parse_request(CompareScenariosRequest, {"scenarios": [{"name": "a", "expectedValue": 1, "probability": 1}]})
