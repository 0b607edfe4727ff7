"""
Spreadsheet formula suggestions.

Formulas are advisory string templates built from the selected range
address. Nothing here evaluates a formula; validate_formula only screens
text coming back from a language model before it is offered to the user.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Callable

from sheet_analyst.data.dataset import TabularDataset, column_letter, column_index

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(
    r"^(?:(?P<sheet>.+)!)?\$?(?P<c1>[A-Za-z]+)\$?(?P<r1>\d+)(?::\$?(?P<c2>[A-Za-z]+)\$?(?P<r2>\d+))?$"
)
FORMULA_PATTERN = re.compile(r"=([A-Z0-9+\-*/(),.:\t $\"']+)", re.IGNORECASE)
FUNCTION_PATTERN = re.compile(r"[A-Z][A-Z0-9.]*(?=\s*\()")
DANGEROUS_PATTERNS = [
    re.compile(r"\b(DELETE|DROP|EXEC|SHELL|KILL|SYSTEM)\b", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
]

VALID_FUNCTIONS = {
    "SUM", "AVERAGE", "COUNT", "COUNTA", "COUNTBLANK", "MAX", "MIN", "MEDIAN", "MODE.MULT",
    "IF", "IFERROR", "OR", "AND", "VLOOKUP", "HLOOKUP", "INDEX", "MATCH", "CHOOSE",
    "CONCATENATE", "LEFT", "RIGHT", "MID", "LEN", "ROW", "ABS",
    "SUMIF", "COUNTIF", "AVERAGEIF", "SUMIFS", "COUNTIFS", "AVERAGEIFS", "SUMPRODUCT",
    "NPV", "IRR", "PMT", "FV", "PV", "RATE", "NPER",
    "CORREL", "RSQ", "SLOPE", "INTERCEPT", "STEYX", "LINEST", "FORECAST", "FORECAST.LINEAR",
    "TREND", "GROWTH", "STDEV", "STDEV.S", "VAR.S", "QUARTILE", "QUARTILE.INC",
    "PERCENTILE", "PERCENTILE.INC", "SKEW", "KURT", "TRIMMEAN", "COVARIANCE.S",
    "SUBTOTAL", "AGGREGATE", "GETPIVOTDATA", "TRANSPOSE", "SORT", "FILTER",
}

SUBTOTAL_FUNCTIONS = {
    "1": "AVERAGE", "2": "COUNT", "3": "COUNTA", "4": "MAX", "5": "MIN", "6": "PRODUCT",
    "7": "STDEV", "8": "STDEVP", "9": "SUM", "10": "VAR", "11": "VARP",
}


@dataclass
class FormulaSuggestion:
    formula: str
    description: str
    category: str
    alternatives: List[str] = field(default_factory=list)
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "formula": self.formula,
            "description": self.description,
            "category": self.category,
            "alternatives": self.alternatives,
        }
        result.update(self.extras)
        return result


def column_range(address: str, col: int, skip_header: bool = False) -> str:
    """
    A1 reference for one column of the selected range.

    column_range("Sheet1!A1:C10", 1, skip_header=True) -> "Sheet1!B2:B10".
    Unparseable addresses are returned unchanged.
    """
    match = ADDRESS_PATTERN.match(address or "")
    if not match:
        return address
    start_col = column_index(match.group("c1"))
    first_row = int(match.group("r1"))
    last_row = int(match.group("r2") or first_row)
    if skip_header and last_row > first_row:
        first_row += 1
    letter = column_letter(start_col + col)
    prefix = f"{match.group('sheet')}!" if match.group("sheet") else ""
    return f"{prefix}{letter}{first_row}:{letter}{last_row}"


class FormulaGenerator:
    """Builds formula suggestions for an intent over a range."""

    def __init__(self):
        self._generators: Dict[str, Callable[[str, Dict[str, Any]], FormulaSuggestion]] = {
            "sum": self._sum,
            "average": self._average,
            "count": self._count,
            "max": self._max,
            "min": self._min,
            "sumif": self._sumif,
            "countif": self._countif,
            "correlation": self._correlation,
            "regression": self._regression,
            "forecast": self._forecast,
            "trend": self._trend,
            "npv": self._npv,
            "irr": self._irr,
            "sensitivity": self._sensitivity,
            "subtotal": self._subtotal,
            "percentile": self._percentile,
        }

    @property
    def intents(self) -> List[str]:
        return list(self._generators)

    def generate_formula(self, intent: str, address: str, parameters: Optional[Dict[str, Any]] = None) -> FormulaSuggestion:
        parameters = parameters or {}
        generator = self._generators.get(intent.lower())
        if generator is None:
            return FormulaSuggestion(
                formula="=CUSTOM_FORMULA_NEEDED",
                description=f"Custom formula for: {intent}",
                category="Custom",
                extras={"recommendation": "Provide more specific requirements for formula generation"},
            )
        return generator(address, parameters)

    # Basic

    def _sum(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        return FormulaSuggestion(
            formula=f"=SUM({rng})",
            description=f"Sum all values in range {rng}",
            category="Basic Math",
            alternatives=[f"=SUMPRODUCT({rng})", f"=AGGREGATE(9,5,{rng})"],
        )

    def _average(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        return FormulaSuggestion(
            formula=f"=AVERAGE({rng})",
            description=f"Calculate the mean of values in {rng}",
            category="Statistics",
            alternatives=[f"=AGGREGATE(1,5,{rng})", f"=TRIMMEAN({rng},0.1)", f"=MEDIAN({rng})"],
        )

    def _count(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        count_type = p.get("type", "numbers")
        formulas = {
            "numbers": f"=COUNT({rng})",
            "nonEmpty": f"=COUNTA({rng})",
            "empty": f"=COUNTBLANK({rng})",
            "unique": f"=SUMPRODUCT(1/COUNTIF({rng},{rng}))",
        }
        if count_type not in formulas:
            count_type = "numbers"
        return FormulaSuggestion(
            formula=formulas[count_type],
            description=f"Count {count_type} in range {rng}",
            category="Counting",
            alternatives=[f"{f} ({k})" for k, f in formulas.items() if k != count_type],
        )

    def _max(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        return FormulaSuggestion(f"=MAX({rng})", f"Largest value in {rng}", "Statistics", [f"=AGGREGATE(4,5,{rng})"])

    def _min(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        return FormulaSuggestion(f"=MIN({rng})", f"Smallest value in {rng}", "Statistics", [f"=AGGREGATE(5,5,{rng})"])

    # Conditional

    def _sumif(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        criteria = p.get("criteria", ">0")
        return FormulaSuggestion(
            formula=f'=SUMIF({rng},"{criteria}")',
            description=f"Sum values in {rng} that meet criteria: {criteria}",
            category="Conditional",
            alternatives=[f'=SUMIFS({rng},{rng},"{criteria}")'],
        )

    def _countif(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        criteria = p.get("criteria", ">0")
        return FormulaSuggestion(
            formula=f'=COUNTIF({rng},"{criteria}")',
            description=f"Count cells in {rng} that meet criteria: {criteria}",
            category="Conditional Counting",
            alternatives=[f'=COUNTIFS({rng},"{criteria}")'],
        )

    # Statistical

    def _correlation(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        range1 = p.get("range1", "A:A")
        range2 = p.get("range2", "B:B")
        return FormulaSuggestion(
            formula=f"=CORREL({range1},{range2})",
            description=f"Calculate correlation coefficient between {range1} and {range2}",
            category="Statistical Analysis",
            alternatives=[f"=RSQ({range1},{range2})", f"=COVARIANCE.S({range1},{range2})"],
        )

    def _regression(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        y_range = p.get("y_range", "A:A")
        x_range = p.get("x_range", "B:B")
        return FormulaSuggestion(
            formula=f"=LINEST({y_range},{x_range},TRUE,TRUE)",
            description=f"Linear regression analysis for {y_range} vs {x_range}",
            category="Predictive Analysis",
            extras={
                "components": {
                    "slope": f"=INDEX(LINEST({y_range},{x_range}),1,1)",
                    "intercept": f"=INDEX(LINEST({y_range},{x_range}),1,2)",
                    "r_squared": f"=INDEX(LINEST({y_range},{x_range},TRUE,TRUE),3,1)",
                },
            },
        )

    def _forecast(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        x_value = p.get("x_value", "NEW_X")
        y_range = p.get("y_range", "A:A")
        x_range = p.get("x_range", "B:B")
        return FormulaSuggestion(
            formula=f"=FORECAST.LINEAR({x_value},{y_range},{x_range})",
            description=f"Forecast Y value for X={x_value} based on historical data",
            category="Forecasting",
            alternatives=[
                f"=FORECAST({x_value},{y_range},{x_range})",
                f"=TREND({y_range},{x_range},{x_value})",
                f"=GROWTH({y_range},{x_range},{x_value})",
            ],
        )

    def _trend(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        periods = f"ROW({rng})-MIN(ROW({rng}))"
        return FormulaSuggestion(
            formula=f"=SLOPE({rng},{periods})",
            description=f"Per-period linear trend of {rng}",
            category="Trend Analysis",
            alternatives=[f"=TREND({rng},{periods})", f"=RSQ({rng},{periods})"],
        )

    # Financial

    def _npv(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rate = p.get("rate", "10%")
        cash_flows = p.get("cash_flows") or address
        return FormulaSuggestion(
            formula=f"=NPV({rate},{cash_flows})",
            description=f"Net Present Value at {rate} discount rate",
            category="Financial Analysis",
            alternatives=[f"=IRR({cash_flows})"],
        )

    def _irr(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        cash_flows = p.get("cash_flows") or address
        guess = p.get("guess", "10%")
        return FormulaSuggestion(
            formula=f"=IRR({cash_flows},{guess})",
            description="Internal Rate of Return for cash flow series",
            category="Financial Analysis",
        )

    # What-if and data analysis

    def _sensitivity(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        input_cell = p.get("input_cell", "A1")
        output_cell = p.get("output_cell", "B1")
        change = p.get("change_percent", "10%")
        return FormulaSuggestion(
            formula=f"={output_cell}*(1+{change})",
            description=f"Sensitivity analysis: {change} change in {input_cell}",
            category="Sensitivity Analysis",
        )

    def _subtotal(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        function_num = str(p.get("function_num", "9"))
        rng = p.get("range") or address
        return FormulaSuggestion(
            formula=f"=SUBTOTAL({function_num},{rng})",
            description=f"{SUBTOTAL_FUNCTIONS.get(function_num, 'SUM')} ignoring hidden rows in {rng}",
            category="Data Analysis",
        )

    def _percentile(self, address: str, p: Dict[str, Any]) -> FormulaSuggestion:
        rng = p.get("range") or address
        k = p.get("k", 0.9)
        return FormulaSuggestion(
            formula=f"=PERCENTILE.INC({rng},{k})",
            description=f"{k} percentile of {rng} with linear interpolation",
            category="Statistics",
            alternatives=[f"=QUARTILE.INC({rng},1)", f"=QUARTILE.INC({rng},3)"],
        )

    # ===================
    # PER-ANALYSIS SUGGESTIONS
    # ===================

    def suggestions_for(self, analysis_type: str, dataset: TabularDataset) -> List[FormulaSuggestion]:
        """Formula suggestions matching an analysis type, one set per numeric column."""
        address = dataset.address
        header = dataset.has_headers()
        columns = dataset.numeric_columns()
        ranges = {c: column_range(address, c, skip_header=header) for c in columns}
        suggestions: List[FormulaSuggestion] = []

        if analysis_type in ("statistical", "comprehensive"):
            for c in columns:
                rng = ranges[c]
                suggestions.append(self._average(address, {"range": rng}))
                suggestions.append(FormulaSuggestion(
                    formula=f"=STDEV.S({rng})",
                    description=f"Sample standard deviation of {rng}",
                    category="Statistics",
                    alternatives=[f"=VAR.S({rng})", f"=SKEW({rng})", f"=KURT({rng})"],
                ))

        if analysis_type in ("correlations", "comprehensive"):
            for i, a in enumerate(columns):
                for b in columns[i + 1:]:
                    suggestions.append(self._correlation(address, {"range1": ranges[a], "range2": ranges[b]}))

        if analysis_type in ("outliers", "comprehensive"):
            for c in columns:
                rng = ranges[c]
                iqr = f"(QUARTILE.INC({rng},3)-QUARTILE.INC({rng},1))"
                suggestions.append(FormulaSuggestion(
                    formula=(
                        f'=IF(OR(CELL<QUARTILE.INC({rng},1)-1.5*{iqr},'
                        f'CELL>QUARTILE.INC({rng},3)+1.5*{iqr}),"Outlier","Normal")'
                    ),
                    description=f"Flag values outside the 1.5*IQR fences of {rng}",
                    category="Outlier Detection",
                    alternatives=[f"=(CELL-AVERAGE({rng}))/STDEV.S({rng})"],
                ))

        if analysis_type in ("trends", "predictions", "comprehensive"):
            for c in columns:
                rng = ranges[c]
                suggestions.append(self._trend(address, {"range": rng}))
                suggestions.append(self._forecast(address, {
                    "x_value": f"COUNT({rng})+1",
                    "y_range": rng,
                    "x_range": f"ROW({rng})-MIN(ROW({rng}))+1",
                }))

        if analysis_type in ("quality", "comprehensive"):
            suggestions.append(self._count(address, {"range": address, "type": "empty"}))
            suggestions.append(FormulaSuggestion(
                formula='=IFERROR(original_formula, "N/A")',
                description="Handle missing or invalid inputs",
                category="Data Quality",
            ))

        if analysis_type == "scenarios":
            suggestions.append(FormulaSuggestion(
                formula="=CHOOSE(scenario_number,optimistic_value,realistic_value,pessimistic_value)",
                description="Switch between scenario projections with a selector cell",
                category="What-If Analysis",
                alternatives=['=IF(scenario_flag="Optimistic",optimistic_value,realistic_value)'],
            ))

        return suggestions

    # ===================
    # MODEL OUTPUT SCREENING
    # ===================

    @staticmethod
    def validate_formula(formula: str) -> bool:
        """Reject dangerous text and any function outside the whitelist."""
        for pattern in DANGEROUS_PATTERNS:
            if pattern.search(formula):
                return False
        functions = FUNCTION_PATTERN.findall(formula)
        return all(func.upper() in VALID_FUNCTIONS for func in functions)

    def extract_formula(self, text: str) -> Optional[Dict[str, str]]:
        """First valid formula found in free text, with a nearby description line."""
        match = FORMULA_PATTERN.search(text or "")
        if not match:
            return None
        formula = match.group(0).strip()
        if not self.validate_formula(formula):
            logger.warning(f"Rejected formula from model output: {formula}")
            return None
        return {
            "type": "formula",
            "formula": formula,
            "button_text": "Insert Formula",
            "description": self._describe(text, formula),
        }

    @staticmethod
    def _describe(text: str, formula: str) -> str:
        lines = text.split("\n")
        for index, line in enumerate(lines):
            if formula in line:
                for candidate in lines[max(0, index - 2):min(len(lines), index + 3)]:
                    candidate = candidate.strip()
                    if candidate and formula not in candidate and not candidate.startswith("="):
                        return candidate
                break
        return "AI-generated formula"


# Singleton pattern
_generator_instance = None

def get_formula_generator() -> FormulaGenerator:
    """Get singleton FormulaGenerator instance."""
    global _generator_instance
    if _generator_instance is None:
        _generator_instance = FormulaGenerator()
    return _generator_instance
