"""
Excel Report Writer

Writes an analysis report to a styled workbook: the source data plus one
sheet per analysis section, and a line chart of each forecast.
"""
import logging
import math
from pathlib import Path
from typing import List, Dict, Any, Optional, TYPE_CHECKING
from dataclasses import dataclass
from datetime import datetime

import openpyxl
import pandas as pd
from openpyxl.chart import LineChart, Reference
from openpyxl.styles import Font, PatternFill, Border, Side, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from sheet_analyst.data.dataset import TabularDataset

if TYPE_CHECKING:
    from sheet_analyst.agents.spreadsheet_analyst import AnalysisReport

logger = logging.getLogger(__name__)

HEADER_BG = "1F3864"
SECTION_BG = "F4B183"
ALT_ROW_BG = "F2F2F2"
FONT_FAMILY = "Calibri"


@dataclass
class ExcelOutput:
    """Container for Excel output."""
    file_path: str
    sheet_count: int
    chart_count: int


class ExcelReportWriter:
    """
    Render AnalysisReport objects as .xlsx workbooks.
    """

    def __init__(self, output_dir: str = "reports"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._setup_styles()

    def _setup_styles(self):
        """Create reusable styles for consistent formatting."""
        self.header_fill = PatternFill(start_color=HEADER_BG, end_color=HEADER_BG, fill_type="solid")
        self.title_font = Font(name=FONT_FAMILY, size=14, bold=True, color="FFFFFF")
        self.subtitle_font = Font(name=FONT_FAMILY, size=9, color="FFFFFF")
        self.section_fill = PatternFill(start_color=SECTION_BG, end_color=SECTION_BG, fill_type="solid")
        self.data_font = Font(name=FONT_FAMILY, size=10)
        self.data_font_bold = Font(name=FONT_FAMILY, size=10, bold=True)
        self.alt_row_fill = PatternFill(start_color=ALT_ROW_BG, end_color=ALT_ROW_BG, fill_type="solid")
        thin_border = Side(style='thin', color='808080')
        self.cell_border = Border(bottom=thin_border)

    # ===================
    # SHEET HELPERS
    # ===================

    def _title(self, ws, title: str, width: int, subtitle: Optional[str] = None) -> int:
        """Title block; returns the first free row."""
        width = max(width, 1)
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=width)
        cell = ws.cell(row=1, column=1, value=title)
        cell.font = self.title_font
        cell.fill = self.header_fill
        cell.alignment = Alignment(horizontal='center', vertical='center')
        ws.row_dimensions[1].height = 24

        ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=width)
        sub = ws.cell(row=2, column=1, value=subtitle or f"Generated: {datetime.now().strftime('%B %d, %Y')}")
        sub.font = self.subtitle_font
        sub.fill = self.header_fill
        sub.alignment = Alignment(horizontal='center')
        return 4

    def _write_frame(self, ws, frame: pd.DataFrame, start_row: int) -> int:
        """Header row plus body of a DataFrame; returns the last row written."""
        row_idx = start_row
        for row_idx, row in enumerate(dataframe_to_rows(frame, index=False, header=True), start_row):
            for col_idx, value in enumerate(row, 1):
                if isinstance(value, float) and math.isnan(value):
                    value = None
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                # Selection text like "=A1" stays text, never a live formula
                if isinstance(value, str):
                    cell.data_type = 's'
                if row_idx == start_row:
                    cell.font = self.data_font_bold
                    cell.border = self.cell_border
                    cell.alignment = Alignment(horizontal='center')
                else:
                    cell.font = self.data_font
                    if isinstance(value, float):
                        cell.number_format = '#,##0.0000'
                    if (row_idx - start_row) % 2 == 0:
                        cell.fill = self.alt_row_fill
        return row_idx

    def _autofit(self, ws):
        for column_cells in ws.columns:
            length = max((len(str(c.value)) for c in column_cells if c.value is not None), default=0)
            letter = get_column_letter(column_cells[0].column)
            ws.column_dimensions[letter].width = min(length + 2, 60)

    def _table_sheet(self, wb, name: str, title: str, frame: pd.DataFrame) -> None:
        ws = wb.create_sheet(name)
        start = self._title(ws, title, len(frame.columns))
        if frame.empty:
            ws.cell(row=start, column=1, value="No results").font = self.data_font
        else:
            self._write_frame(ws, frame, start)
        self._autofit(ws)

    # ===================
    # SECTIONS
    # ===================

    @staticmethod
    def _statistics_frame(report: "AnalysisReport", labels: List[str]) -> pd.DataFrame:
        rows = []
        for col, stats in report.statistics.items():
            row = {"column": labels[col] if col < len(labels) else col}
            record = stats.to_dict()
            for key in ("count", "sum", "mean", "median", "min", "max", "range",
                        "variance", "standard_deviation", "skewness", "kurtosis"):
                row[key] = record[key]
            row["mode"] = ", ".join(str(m) for m in record["mode"])
            row.update(record["percentiles"])
            rows.append(row)
        return pd.DataFrame(rows)

    @staticmethod
    def _correlation_frame(report: "AnalysisReport", labels: List[str]) -> pd.DataFrame:
        rows = [
            {
                "pair": key,
                "column_a": labels[rec.column_a],
                "column_b": labels[rec.column_b],
                "coefficient": rec.coefficient,
                "strength": rec.strength,
                "interpretation": rec.interpretation,
                "p_value": rec.p_value,
            }
            for key, rec in report.correlations.items()
        ]
        return pd.DataFrame(rows)

    @staticmethod
    def _outlier_frame(report: "AnalysisReport", labels: List[str]) -> pd.DataFrame:
        rows = [
            {
                "column": labels[col],
                "q1": rec.q1,
                "q3": rec.q3,
                "iqr": rec.iqr,
                "lower_fence": rec.lower_fence,
                "upper_fence": rec.upper_fence,
                "mild": ", ".join(str(v) for v in rec.mild),
                "extreme": ", ".join(str(v) for v in rec.extreme),
                "percentage": rec.percentage,
                "impact": rec.impact,
            }
            for col, rec in report.outliers.items()
        ]
        return pd.DataFrame(rows)

    @staticmethod
    def _trend_frame(report: "AnalysisReport", labels: List[str]) -> pd.DataFrame:
        rows = []
        for col, trend in report.trends.items():
            rows.append({
                "column": labels[col],
                "slope": trend.linear.slope,
                "intercept": trend.linear.intercept,
                "direction": trend.linear.direction,
                "description": trend.linear.description,
                "volatility": trend.volatility,
                "momentum": trend.momentum,
                "r_squared": trend.diagnostics.r_squared if trend.diagnostics else None,
            })
        return pd.DataFrame(rows)

    @staticmethod
    def _quality_frame(report: "AnalysisReport") -> pd.DataFrame:
        quality = report.quality
        if quality is None:
            return pd.DataFrame()
        return pd.DataFrame([
            {"dimension": "completeness", "score": quality.completeness.score},
            {"dimension": "uniqueness", "score": quality.uniqueness.score},
            {"dimension": "consistency", "score": quality.consistency.score},
            {"dimension": "accuracy", "score": quality.accuracy.score},
            {"dimension": f"overall (grade {quality.grade})", "score": quality.overall},
        ])

    @staticmethod
    def _recommendation_frame(report: "AnalysisReport") -> pd.DataFrame:
        return pd.DataFrame([
            {
                "category": r.category,
                "priority": r.priority,
                "message": r.message,
                "actions": "; ".join(r.actions),
            }
            for r in report.recommendations
        ])

    def _forecast_sheet(self, wb, report: "AnalysisReport", labels: List[str]) -> int:
        """Forecast points per column with a line chart each; returns chart count."""
        forecasts = {c: t.forecast for c, t in report.trends.items() if t.forecast}
        if not forecasts:
            return 0
        ws = wb.create_sheet("Forecast")
        row = self._title(ws, "Linear Forecast", 4)
        charts = 0
        for col, fc in forecasts.items():
            header = ws.cell(row=row, column=1, value=f"{labels[col]} (reliability {fc.reliability})")
            header.font = self.data_font_bold
            header.fill = self.section_fill
            frame = pd.DataFrame([p.to_dict() for p in fc.points])
            first = row + 1
            last = self._write_frame(ws, frame, first)

            chart = LineChart()
            chart.title = f"{labels[col]} forecast"
            chart.y_axis.title = "Value"
            chart.x_axis.title = "Period"
            data = Reference(ws, min_col=2, max_col=4, min_row=first, max_row=last)
            cats = Reference(ws, min_col=1, min_row=first + 1, max_row=last)
            chart.add_data(data, titles_from_data=True)
            chart.set_categories(cats)
            chart.height = 7
            chart.width = 14
            ws.add_chart(chart, f"G{row}")
            charts += 1
            row = max(last + 2, row + 16)
        self._autofit(ws)
        return charts

    # ===================
    # ENTRY POINT
    # ===================

    def write(self, report: "AnalysisReport", dataset: TabularDataset, title: str = "Spreadsheet Analysis") -> ExcelOutput:
        """
        Create the report workbook.

        Returns:
            ExcelOutput with file path and metadata
        """
        labels = dataset.header_labels()
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Data"
        start = self._title(ws, title, dataset.column_count, subtitle=dataset.address or None)
        self._write_frame(ws, dataset.to_frame(), start)
        self._autofit(ws)

        self._table_sheet(wb, "Statistics", "Descriptive Statistics", self._statistics_frame(report, labels))
        self._table_sheet(wb, "Correlations", "Correlations", self._correlation_frame(report, labels))
        self._table_sheet(wb, "Outliers", "Outliers (IQR fences)", self._outlier_frame(report, labels))
        self._table_sheet(wb, "Trends", "Linear Trends", self._trend_frame(report, labels))
        self._table_sheet(wb, "Quality", "Data Quality", self._quality_frame(report))
        self._table_sheet(wb, "Recommendations", "Recommendations", self._recommendation_frame(report))
        chart_count = self._forecast_sheet(wb, report, labels)

        safe_title = "".join(c if c.isalnum() else "_" for c in title)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_path = self.output_dir / f"{safe_title}_{timestamp}.xlsx"
        wb.save(file_path)
        logger.info(f"Wrote analysis workbook {file_path}")

        return ExcelOutput(
            file_path=str(file_path),
            sheet_count=len(wb.sheetnames),
            chart_count=chart_count,
        )


def get_report_writer(output_dir: str = "reports") -> ExcelReportWriter:
    return ExcelReportWriter(output_dir=output_dir)
