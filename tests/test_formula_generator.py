"""
Tests for formula suggestions and model-output screening.
"""
import pytest

from sheet_analyst.data import TabularDataset
from sheet_analyst.tools.formula_generator import FormulaGenerator, column_range, get_formula_generator


@pytest.fixture
def generator():
    return FormulaGenerator()


class TestColumnRange:
    """Per-column A1 references inside the selected range."""

    def test_skip_header(self):
        assert column_range("Sheet1!A1:C10", 1, skip_header=True) == "Sheet1!B2:B10"

    def test_offset_start(self):
        assert column_range("C3:E8", 2) == "E3:E8"

    def test_absolute_refs(self):
        assert column_range("Data!$A$1:$B$4", 0) == "Data!A1:A4"

    def test_unparseable_returned_unchanged(self):
        assert column_range("Named Range", 0) == "Named Range"


class TestGenerateFormula:
    """Intent templates."""

    def test_sum(self, generator):
        suggestion = generator.generate_formula("sum", "A1:A10")
        assert suggestion.formula == "=SUM(A1:A10)"
        assert suggestion.category == "Basic Math"

    def test_intent_is_case_insensitive(self, generator):
        assert generator.generate_formula("AVERAGE", "B1:B5").formula == "=AVERAGE(B1:B5)"

    def test_forecast(self, generator):
        suggestion = generator.generate_formula("forecast", "", {"x_value": 13, "y_range": "B2:B13", "x_range": "A2:A13"})
        assert suggestion.formula == "=FORECAST.LINEAR(13,B2:B13,A2:A13)"

    def test_count_empty(self, generator):
        assert generator.generate_formula("count", "A1:C3", {"type": "empty"}).formula == "=COUNTBLANK(A1:C3)"

    def test_subtotal_description(self, generator):
        suggestion = generator.generate_formula("subtotal", "A1:A9", {"function_num": 1})
        assert suggestion.formula == "=SUBTOTAL(1,A1:A9)"
        assert suggestion.description.startswith("AVERAGE")

    def test_regression_components(self, generator):
        record = generator.generate_formula("regression", "", {"y_range": "B:B", "x_range": "A:A"}).to_dict()
        assert record["components"]["slope"] == "=INDEX(LINEST(B:B,A:A),1,1)"

    def test_unknown_intent(self, generator):
        suggestion = generator.generate_formula("teleport", "A1")
        assert suggestion.formula == "=CUSTOM_FORMULA_NEEDED"
        assert suggestion.category == "Custom"

    def test_every_template_passes_validation(self, generator):
        for intent in generator.intents:
            suggestion = generator.generate_formula(intent, "A1:A10")
            assert generator.validate_formula(suggestion.formula), intent


class TestSuggestionsFor:
    """Suggestions tied to an analysis type."""

    DATASET = TabularDataset.from_values(
        [["Month", "Sales", "Cost"], ["Jan", 100, 50], ["Feb", 110, 52]],
        address="Sheet1!A1:C3",
    )

    def test_correlations(self, generator):
        suggestions = generator.suggestions_for("correlations", self.DATASET)
        assert [s.formula for s in suggestions] == ["=CORREL(Sheet1!B2:B3,Sheet1!C2:C3)"]

    def test_statistical_per_column(self, generator):
        formulas = [s.formula for s in generator.suggestions_for("statistical", self.DATASET)]
        assert "=AVERAGE(Sheet1!B2:B3)" in formulas
        assert "=STDEV.S(Sheet1!C2:C3)" in formulas

    def test_comprehensive_covers_all_sections(self, generator):
        categories = {s.category for s in generator.suggestions_for("comprehensive", self.DATASET)}
        assert {"Statistics", "Statistical Analysis", "Outlier Detection", "Trend Analysis",
                "Forecasting", "Counting", "Data Quality"} <= categories

    def test_singleton(self):
        assert get_formula_generator() is get_formula_generator()


class TestScreening:
    """Validation and extraction of model-produced formulas."""

    def test_rejects_unknown_function(self):
        assert not FormulaGenerator.validate_formula("=WEBSERVICE(A1)")

    def test_rejects_dangerous_text(self):
        assert not FormulaGenerator.validate_formula("=SUM(A1) EXEC")

    def test_extract_with_description(self, generator):
        text = "Total the revenue column:\n=SUM(B2:B13)\nThat gives the annual figure."
        extracted = generator.extract_formula(text)
        assert extracted["formula"] == "=SUM(B2:B13)"
        assert extracted["description"] == "Total the revenue column:"
        assert extracted["button_text"] == "Insert Formula"

    def test_extract_none(self, generator):
        assert generator.extract_formula("No formula here.") is None
