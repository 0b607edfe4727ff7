"""
Tests for error classification.
"""
from sheet_analyst.core.error_taxonomy import (
    ErrorCategory,
    ErrorSeverity,
    InputShapeError,
    InsufficientSampleError,
    classify_error,
)


class TestAnalysisErrors:
    """Domain exceptions classify themselves."""

    def test_input_shape_error(self):
        classified = classify_error(InputShapeError("Selected data is required"), analysis_phase="analyze")
        assert classified.category == ErrorCategory.MISSING_DATASET
        assert classified.severity == ErrorSeverity.HIGH
        assert not classified.recoverable
        assert classified.analysis_phase == "analyze"
        assert classified.user_message == "Selected data is required"

    def test_insufficient_sample_is_recoverable(self):
        error = InsufficientSampleError("too few", required=4, available=2, context={"component": "outliers"})
        classified = classify_error(error, context={"column": 3})
        assert classified.category == ErrorCategory.INSUFFICIENT_DATA_POINTS
        assert classified.recoverable
        assert classified.context == {"component": "outliers", "required": 4, "available": 2, "column": 3}
        assert classified.recovery_actions[0].action_type == "skip"


class TestGenericErrors:
    """Classification of library and runtime exceptions by type and message."""

    def test_rate_limit(self):
        assert classify_error(Exception("Error 429: rate limit")).category == ErrorCategory.LLM_RATE_LIMITED

    def test_quota(self):
        classified = classify_error(Exception("rate limit: quota exhausted"))
        assert classified.category == ErrorCategory.LLM_QUOTA_EXHAUSTED
        assert classified.severity == ErrorSeverity.CRITICAL

    def test_missing_api_key(self):
        classified = classify_error(ValueError("Missing API key: OPENAI_API_KEY"))
        assert classified.category == ErrorCategory.CONFIGURATION_ERROR

    def test_timeout(self):
        assert classify_error(TimeoutError("read")).category == ErrorCategory.LLM_TIMEOUT

    def test_file_system(self):
        assert classify_error(PermissionError("denied")).category == ErrorCategory.FILE_SYSTEM_ERROR

    def test_arithmetic(self):
        assert classify_error(ZeroDivisionError("division by zero")).category == ErrorCategory.CALCULATION_ERROR

    def test_unknown(self):
        classified = classify_error(RuntimeError("something odd"))
        assert classified.category == ErrorCategory.UNKNOWN_ERROR
        assert classified.user_message == "An error occurred: something odd"

    def test_to_dict(self):
        record = classify_error(InputShapeError("bad")).to_dict()
        assert record["category"] == "MISSING_DATASET"
        assert record["severity"] == "high"
        assert set(record) == {
            "category", "severity", "message", "user_message", "recoverable",
            "recovery_actions", "analysis_phase", "context",
        }
