"""
Tests for the trend and forecast engine.
"""
import pytest

from sheet_analyst.core.error_taxonomy import InsufficientSampleError
from sheet_analyst.data import TabularDataset
from sheet_analyst.tools.trends import (
    analyze_trends,
    forecast,
    forecast_accuracy,
    forecast_reliability,
    generate_predictions,
    linear_trend,
    momentum,
    moving_average,
    regression_diagnostics,
    trend_direction,
    volatility,
)


MONTHLY_SALES = [
    ["Month", "Sales"],
    ["Jan", 100],
    ["Feb", 110],
    ["Mar", 120],
    ["Apr", 130],
]


class TestLinearTrend:
    """Index-based OLS trend."""

    def test_increasing(self):
        trend = linear_trend([100, 110, 120, 130])
        assert trend.slope == pytest.approx(10)
        assert trend.intercept == pytest.approx(100)
        assert trend.direction == "increasing"
        assert trend.description == "increasing trend with strong strength"

    def test_constant_series_is_stable(self):
        trend = linear_trend([7, 7, 7, 7])
        assert trend.slope == 0
        assert trend.direction == "stable"
        assert trend.description == "stable trend with weak strength"

    def test_deadband(self):
        assert trend_direction(0.01) == "stable"
        assert trend_direction(-0.01) == "stable"
        assert trend_direction(0.011) == "increasing"
        assert trend_direction(-0.02) == "decreasing"

    def test_needs_two_values(self):
        with pytest.raises(InsufficientSampleError):
            linear_trend([1])


class TestSeriesMeasures:
    """Moving average, volatility, momentum."""

    def test_moving_average_length(self):
        averages = moving_average([1, 2, 3, 4, 5], window=3)
        assert averages == [2, 3, 4]

    def test_volatility_skips_zero_previous(self):
        """Returns after a zero period are left out."""
        assert volatility([0, 10, 20]) == 0
        assert volatility([10, 20, 30]) == pytest.approx(0.3535533905932738)

    def test_momentum_requires_two_windows_plus_one(self):
        assert momentum([1, 2, 3, 4, 5, 6], window=3) == 0
        assert momentum([1, 2, 3, 4, 5, 6, 7], window=3) == pytest.approx(3)

    def test_diagnostics(self):
        """Exact fit: R² of 1, significant slope."""
        diagnostics = regression_diagnostics([1, 3, 5, 7, 9.1])
        assert diagnostics.r_squared == pytest.approx(1.0, abs=1e-3)
        assert diagnostics.is_significant
        assert regression_diagnostics([1, 2]) is None


class TestForecast:
    """Linear forecast over period numbers 1..n."""

    def test_exact_line_has_zero_band(self):
        result = forecast([100, 110, 120, 130], horizon=2)
        assert result.values == pytest.approx([140, 150])
        assert result.margin == 0
        assert result.points[0].period == 5
        assert result.points[0].lower == result.points[0].upper

    def test_band_is_z_times_root_mse(self):
        values = [1, 3, 2, 5, 4]
        result = forecast(values, horizon=1)
        residual_squares = [
            (y - (result.slope * x + result.intercept)) ** 2
            for x, y in zip(range(1, 6), values)
        ]
        mse = sum(residual_squares) / 5
        assert result.mse == pytest.approx(mse)
        assert result.margin == pytest.approx(1.96 * mse ** 0.5)

    def test_confidence_level_is_echoed_only(self):
        narrow = forecast([1, 3, 2, 5, 4], horizon=1, confidence_level=0.5)
        wide = forecast([1, 3, 2, 5, 4], horizon=1, confidence_level=0.99)
        assert narrow.margin == wide.margin
        assert wide.to_dict()["confidence_level"] == 0.99

    def test_reliability(self):
        assert forecast_reliability(12, 6) == "High"
        assert forecast_reliability(12, 7) == "Medium"
        assert forecast_reliability(12, 13) == "Low"

    def test_accuracy(self):
        assert forecast_accuracy([1, 2, 3]) == "Low"
        assert forecast_accuracy([100, 101, 99, 100, 102, 98, 100, 101, 99, 100]) == "High"

    def test_invalid_horizon(self):
        with pytest.raises(ValueError):
            forecast([1, 2, 3], horizon=0)


class TestDatasetTrends:
    """Trends and predictions over a selected range."""

    def test_month_sales(self):
        """Mean 115, slope 10, increasing, next period 140."""
        ds = TabularDataset.from_values(MONTHLY_SALES, address="Sheet1!A1:B5")
        trends = analyze_trends(ds, forecast_horizon=1)
        trend = trends[1]
        assert trend.linear.slope == pytest.approx(10)
        assert trend.linear.direction == "increasing"
        assert trend.forecast.values[0] == pytest.approx(140)
        assert trend.forecast.margin == pytest.approx(0)

    def test_no_forecast_without_horizon(self):
        trends = analyze_trends(TabularDataset.from_values(MONTHLY_SALES))
        assert trends[1].forecast is None

    def test_predictions(self):
        forecasts = generate_predictions(TabularDataset.from_values(MONTHLY_SALES), horizon=3)
        assert forecasts[1].values == pytest.approx([140, 150, 160])
        assert forecasts[1].reliability == "Medium"

    def test_predictions_need_data(self):
        ds = TabularDataset.from_values([["a"], [1]])
        with pytest.raises(InsufficientSampleError) as exc:
            generate_predictions(ds)
        assert str(exc.value) == "Insufficient data for trend prediction"
