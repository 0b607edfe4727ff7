"""
Tests for the Excel report writer.
"""
import openpyxl
import pytest

from config.settings import AnalysisConfig, AppConfig
from sheet_analyst.agents.spreadsheet_analyst import SpreadsheetAnalyst
from sheet_analyst.data import TabularDataset
from sheet_analyst.tools.excel_output import ExcelReportWriter, get_report_writer


@pytest.fixture
def dataset():
    return TabularDataset.from_values(
        [
            ["Month", "Sales", "Cost"],
            ["Jan", 100, 50],
            ["Feb", 110, 56],
            ["Mar", 120, 59],
            ["Apr", 130, 66],
        ],
        address="Sheet1!A1:C5",
    )


@pytest.fixture
def report(dataset):
    analyst = SpreadsheetAnalyst(config=AppConfig(analysis=AnalysisConfig(trace_export_dir=None)))
    return analyst.deep_analysis(dataset, forecast_horizon=3)


class TestExcelReportWriter:
    """Workbook layout."""

    def test_sheets_and_charts(self, tmp_path, report, dataset):
        output = ExcelReportWriter(output_dir=str(tmp_path)).write(report, dataset, title="Q1 Sales")
        wb = openpyxl.load_workbook(output.file_path)
        assert wb.sheetnames == [
            "Data", "Statistics", "Correlations", "Outliers", "Trends",
            "Quality", "Recommendations", "Forecast",
        ]
        assert output.sheet_count == 8
        assert output.chart_count == 2
        assert output.file_path.endswith(".xlsx")

    def test_data_sheet_has_headers_and_values(self, tmp_path, report, dataset):
        output = get_report_writer(str(tmp_path)).write(report, dataset)
        ws = openpyxl.load_workbook(output.file_path)["Data"]
        assert ws.cell(row=1, column=1).value == "Spreadsheet Analysis"
        assert ws.cell(row=2, column=1).value == "Sheet1!A1:C5"
        assert [ws.cell(row=4, column=c).value for c in range(1, 4)] == ["Month", "Sales", "Cost"]
        assert ws.cell(row=5, column=2).value == 100

    def test_statistics_rows_use_labels(self, tmp_path, report, dataset):
        output = get_report_writer(str(tmp_path)).write(report, dataset)
        ws = openpyxl.load_workbook(output.file_path)["Statistics"]
        labels = [ws.cell(row=r, column=1).value for r in (5, 6)]
        assert labels == ["Sales", "Cost"]

    def test_empty_sections(self, tmp_path):
        """Text-only data still produces every table sheet."""
        dataset = TabularDataset.from_values([["Name"], ["Ann"], ["Bo"]], address="A1:A3")
        analyst = SpreadsheetAnalyst(config=AppConfig(analysis=AnalysisConfig(trace_export_dir=None)))
        report = analyst.deep_analysis(dataset)
        output = ExcelReportWriter(output_dir=str(tmp_path)).write(report, dataset)
        wb = openpyxl.load_workbook(output.file_path)
        assert "Forecast" not in wb.sheetnames
        assert wb["Outliers"].cell(row=4, column=1).value == "No results"
        assert output.chart_count == 0

    def test_formula_text_stays_text(self, tmp_path):
        """Selection text starting with '=' is stored as a string, not a live formula."""
        dataset = TabularDataset.from_values(
            [["Note", "Amount"], ['=HYPERLINK("http://x","y")', 1], ["=1+1", 2]],
            address="A1:B3",
        )
        analyst = SpreadsheetAnalyst(config=AppConfig(analysis=AnalysisConfig(trace_export_dir=None)))
        report = analyst.deep_analysis(dataset)
        output = ExcelReportWriter(output_dir=str(tmp_path)).write(report, dataset)
        ws = openpyxl.load_workbook(output.file_path)["Data"]
        for row, text in ((5, '=HYPERLINK("http://x","y")'), (6, "=1+1")):
            cell = ws.cell(row=row, column=1)
            assert cell.value == text
            assert cell.data_type == "s"
