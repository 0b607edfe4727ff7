"""
Trend/Forecast Engine

Ordinary-least-squares linear trend, moving average, volatility, momentum
and a multi-period linear forecast with a symmetric confidence band.

Key Features:
- Trend fit over index positions 0..n-1 with a +/-0.01 slope deadband
- Forecast fit over period numbers 1..n, so prediction[i] = slope*(n+i) + intercept
- Band half-width 1.96 * sqrt(MSE), MSE being the mean squared residual
- statsmodels OLS diagnostics (R-squared, slope p-value) when n >= 3

The band multiplier is the fixed two-tailed 95% constant; the requested
confidence level is echoed back but does not change the band.
"""
import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Sequence, Tuple

import numpy as np
import statsmodels.api as sm

from sheet_analyst.core.error_taxonomy import InsufficientSampleError
from sheet_analyst.data.dataset import TabularDataset
from sheet_analyst.tools.descriptive_statistics import accumulate, mean, standard_deviation

logger = logging.getLogger(__name__)

Z_95 = 1.96
DIRECTION_DEADBAND = 0.01
DEFAULT_WINDOW = 3
DEFAULT_HORIZON = 12


@dataclass
class LinearTrend:
    slope: float
    intercept: float
    direction: str  # increasing, decreasing, stable
    strength: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "direction": self.direction,
            "strength": self.strength,
            "description": self.description,
        }


@dataclass
class RegressionDiagnostics:
    """OLS fit quality of the index trend."""
    r_squared: Optional[float]
    slope_std_error: Optional[float]
    slope_p_value: Optional[float]
    observations: int
    is_significant: bool
    interpretation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "r_squared": self.r_squared,
            "slope_std_error": self.slope_std_error,
            "slope_p_value": self.slope_p_value,
            "observations": self.observations,
            "is_significant": self.is_significant,
            "interpretation": self.interpretation,
        }


@dataclass
class ForecastPoint:
    period: int
    value: float
    lower: float
    upper: float

    def to_dict(self) -> Dict[str, Any]:
        return {"period": self.period, "value": self.value, "lower": self.lower, "upper": self.upper}


@dataclass
class Forecast:
    """Linear forecast for one column."""
    column_index: int
    horizon: int
    slope: float
    intercept: float
    mse: float
    margin: float
    confidence_level: float
    points: List[ForecastPoint]
    reliability: str  # High, Medium, Low
    accuracy: str  # High, Medium, Low

    @property
    def values(self) -> List[float]:
        return [p.value for p in self.points]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_index": self.column_index,
            "horizon": self.horizon,
            "values": self.values,
            "confidence_band": [{"lower": p.lower, "upper": p.upper} for p in self.points],
            "points": [p.to_dict() for p in self.points],
            "slope": self.slope,
            "intercept": self.intercept,
            "mse": self.mse,
            "margin": self.margin,
            "confidence_level": self.confidence_level,
            "z": Z_95,
            "reliability": self.reliability,
            "accuracy": self.accuracy,
        }


@dataclass
class TrendAnalysis:
    """Trend record for one column."""
    column_index: int
    sample_size: int
    linear: LinearTrend
    moving_average: List[float]
    volatility: float
    momentum: float
    diagnostics: Optional[RegressionDiagnostics] = None
    forecast: Optional[Forecast] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_index": self.column_index,
            "sample_size": self.sample_size,
            "linear": self.linear.to_dict(),
            "moving_average": self.moving_average,
            "volatility": self.volatility,
            "momentum": self.momentum,
            "diagnostics": self.diagnostics.to_dict() if self.diagnostics else None,
            "forecast": self.forecast.to_dict() if self.forecast else None,
        }


# ===================
# LEAST SQUARES
# ===================

def _least_squares(x: Sequence[float], y: Sequence[float]) -> Tuple[float, float, float, float]:
    """Slope plus the raw sums the intercept formulas need."""
    n = len(y)
    sum_x = accumulate(x)
    sum_y = accumulate(y)
    sum_xy = accumulate([xi * yi for xi, yi in zip(x, y)])
    sum_x2 = accumulate([xi * xi for xi in x])
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    return slope, sum_x, sum_y, n


def trend_direction(slope: float) -> str:
    if slope > DIRECTION_DEADBAND:
        return "increasing"
    if slope < -DIRECTION_DEADBAND:
        return "decreasing"
    return "stable"


def _strength_label(strength: float) -> str:
    if strength > 0.1:
        return "strong"
    if strength > 0.05:
        return "moderate"
    return "weak"


def linear_trend(values: Sequence[float]) -> LinearTrend:
    """OLS fit of value against index position 0..n-1."""
    if len(values) < 2:
        raise InsufficientSampleError(
            f"Trend needs at least 2 values, got {len(values)}",
            required=2,
            available=len(values),
            context={"component": "trend"},
        )
    x = list(range(len(values)))
    slope, sum_x, sum_y, n = _least_squares(x, values)
    intercept = (sum_y - slope * sum_x) / n
    direction = trend_direction(slope)
    strength = abs(slope)
    return LinearTrend(
        slope=slope,
        intercept=intercept,
        direction=direction,
        strength=strength,
        description=f"{direction} trend with {_strength_label(strength)} strength",
    )


def moving_average(values: Sequence[float], window: int = DEFAULT_WINDOW) -> List[float]:
    """Trailing means; n - window + 1 points."""
    return [mean(values[i - window + 1:i + 1]) for i in range(window - 1, len(values))]


def period_returns(values: Sequence[float]) -> List[float]:
    """Period-over-period fractional change, skipping periods that follow a zero."""
    returns = []
    for previous, current in zip(values, values[1:]):
        if previous != 0:
            returns.append((current - previous) / previous)
    return returns


def volatility(values: Sequence[float]) -> float:
    """Standard deviation of period returns; 0 when fewer than two returns exist."""
    returns = period_returns(values)
    if len(returns) < 2:
        return 0
    return standard_deviation(returns)


def momentum(values: Sequence[float], window: int = DEFAULT_WINDOW) -> float:
    """Mean of the last window minus mean of the window before it."""
    if len(values) < 2 * window + 1:
        return 0
    recent = values[-window:]
    earlier = values[-2 * window:-window]
    return mean(recent) - mean(earlier)


def _finite_or_none(value: Any) -> Optional[float]:
    value = float(value)
    return value if math.isfinite(value) else None


def regression_diagnostics(values: Sequence[float]) -> Optional[RegressionDiagnostics]:
    """statsmodels OLS on the index trend; None below 3 observations."""
    if len(values) < 3:
        return None

    y = np.asarray(values, dtype=float)
    X = sm.add_constant(np.arange(len(values), dtype=float))

    # Perfect or flat fits divide by zero inside the summary statistics
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        model = sm.OLS(y, X).fit()
        r_squared = _finite_or_none(model.rsquared)
        std_error = _finite_or_none(model.bse[1])
        p_value = _finite_or_none(model.pvalues[1])

    is_significant = p_value is not None and p_value < 0.05
    if p_value is None:
        interp = "Trend significance undefined (no residual variance)."
    else:
        sig_text = "statistically significant" if is_significant else "not statistically significant"
        interp = f"Trend is {sig_text} (p={p_value:.4f})."
    if r_squared is not None:
        interp += f" R²={r_squared:.3f} indicates {r_squared*100:.1f}% of variance explained."

    return RegressionDiagnostics(
        r_squared=r_squared,
        slope_std_error=std_error,
        slope_p_value=p_value,
        observations=len(values),
        is_significant=is_significant,
        interpretation=interp,
    )


# ===================
# FORECAST
# ===================

def forecast_reliability(sample_size: int, horizon: int) -> str:
    if horizon > sample_size:
        return "Low"
    if horizon > sample_size / 2:
        return "Medium"
    return "High"


def forecast_accuracy(values: Sequence[float]) -> str:
    """Low below 10 points, otherwise by coefficient of variation (population spread)."""
    if len(values) < 10:
        return "Low"
    center = mean(values)
    if center == 0:
        return "Low"
    deviations = [(v - center) * (v - center) for v in values]
    spread = math.sqrt(accumulate(deviations) / len(values))
    coefficient = abs(spread / center)
    if coefficient < 0.1:
        return "High"
    if coefficient < 0.3:
        return "Medium"
    return "Low"


def forecast(
    values: Sequence[float],
    horizon: int = DEFAULT_HORIZON,
    confidence_level: float = 0.95,
    column_index: int = 0,
) -> Forecast:
    """
    Project the linear fit horizon periods ahead.

    Raises:
        InsufficientSampleError: fewer than 2 values
    """
    n = len(values)
    if n < 2:
        raise InsufficientSampleError(
            f"Forecast needs at least 2 values, got {n}",
            required=2,
            available=n,
            context={"component": "forecast", "column": column_index},
        )
    if horizon < 1:
        raise ValueError(f"Forecast horizon must be positive, got {horizon}")

    x = list(range(1, n + 1))
    slope, sum_x, sum_y, _ = _least_squares(x, values)
    intercept = sum_y / n - slope * (sum_x / n)

    residuals = []
    for xi, yi in zip(x, values):
        error = yi - (slope * xi + intercept)
        residuals.append(error * error)
    mse = accumulate(residuals) / n
    margin = Z_95 * math.sqrt(mse)

    points = []
    for i in range(1, horizon + 1):
        prediction = slope * (n + i) + intercept
        points.append(ForecastPoint(
            period=n + i,
            value=prediction,
            lower=prediction - margin,
            upper=prediction + margin,
        ))

    return Forecast(
        column_index=column_index,
        horizon=horizon,
        slope=slope,
        intercept=intercept,
        mse=mse,
        margin=margin,
        confidence_level=confidence_level,
        points=points,
        reliability=forecast_reliability(n, horizon),
        accuracy=forecast_accuracy(values),
    )


def analyze_series(
    values: Sequence[float],
    column_index: int = 0,
    window: int = DEFAULT_WINDOW,
    forecast_horizon: Optional[int] = None,
    confidence_level: float = 0.95,
) -> TrendAnalysis:
    return TrendAnalysis(
        column_index=column_index,
        sample_size=len(values),
        linear=linear_trend(values),
        moving_average=moving_average(values, window),
        volatility=volatility(values),
        momentum=momentum(values, window),
        diagnostics=regression_diagnostics(values),
        forecast=forecast(values, forecast_horizon, confidence_level, column_index) if forecast_horizon else None,
    )


def analyze_trends(
    dataset: TabularDataset,
    skip_header: bool = True,
    window: int = DEFAULT_WINDOW,
    forecast_horizon: Optional[int] = None,
    confidence_level: float = 0.95,
) -> Dict[int, TrendAnalysis]:
    """Trend records for numeric columns with at least 2 values."""
    trends: Dict[int, TrendAnalysis] = {}
    for column in dataset.numeric_columns():
        values = dataset.numeric_column_values(column, skip_header=skip_header)
        if len(values) < 2:
            logger.debug(f"Column {column}: insufficient data for trend")
            continue
        trends[column] = analyze_series(
            values,
            column_index=column,
            window=window,
            forecast_horizon=forecast_horizon,
            confidence_level=confidence_level,
        )
    return trends


def generate_predictions(
    dataset: TabularDataset,
    horizon: int = DEFAULT_HORIZON,
    confidence_level: float = 0.95,
    skip_header: bool = True,
) -> Dict[int, Forecast]:
    """
    Forecasts for every numeric column that has enough data.

    Raises:
        InsufficientSampleError: when no column can be forecast
    """
    forecasts: Dict[int, Forecast] = {}
    for column in dataset.numeric_columns():
        values = dataset.numeric_column_values(column, skip_header=skip_header)
        if len(values) < 2:
            continue
        forecasts[column] = forecast(values, horizon, confidence_level, column_index=column)

    if not forecasts:
        raise InsufficientSampleError(
            "Insufficient data for trend prediction",
            required=2,
            available=0,
            context={"component": "predictions"},
        )
    logger.info(f"Generated {horizon}-period forecasts for {len(forecasts)} column(s)")
    return forecasts
