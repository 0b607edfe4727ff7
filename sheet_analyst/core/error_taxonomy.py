"""
Error Taxonomy for Spreadsheet Analysis

Provides systematic classification of failure modes with:
- Error categories aligned to analysis phases
- Recoverability indicators
- Suggested recovery actions
- Structured error context for debugging

Only structural input problems fail a request. Per-column problems are
soft: the affected sub-result is omitted and siblings keep running.
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging
import traceback

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Systematic classification of failure modes."""
    # Phase 0: Input validation
    MISSING_DATASET = auto()
    EMPTY_DATASET = auto()
    RAGGED_ROWS = auto()
    UNSUPPORTED_CELL_TYPE = auto()
    DATASET_TOO_LARGE = auto()
    INVALID_PARAMETER = auto()

    # Phase 1: Calculation
    INSUFFICIENT_DATA_POINTS = auto()
    DEGENERATE_COMPUTATION = auto()
    CALCULATION_ERROR = auto()

    # Phase 2: Narrative generation
    LLM_QUOTA_EXHAUSTED = auto()
    LLM_RATE_LIMITED = auto()
    LLM_TIMEOUT = auto()
    AUTHENTICATION_FAILED = auto()

    # Phase 3: Export
    FILE_SYSTEM_ERROR = auto()

    # System Errors
    CONFIGURATION_ERROR = auto()
    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class RecoveryAction:
    """Suggested action to recover from an error."""
    action_type: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def retry(delay_seconds: float = 1.0, max_attempts: int = 3) -> "RecoveryAction":
        return RecoveryAction(
            action_type="retry",
            description=f"Retry after {delay_seconds}s (max {max_attempts} attempts)",
            parameters={"delay": delay_seconds, "max_attempts": max_attempts}
        )

    @staticmethod
    def skip(component: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="skip",
            description=f"Omit {component} from the report",
            parameters={"component": component}
        )

    @staticmethod
    def clarify(message: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="clarify",
            description="Request corrected input from caller",
            parameters={"message": message}
        )

    @staticmethod
    def abort(reason: str) -> "RecoveryAction":
        return RecoveryAction(
            action_type="abort",
            description=f"Abort operation: {reason}",
            parameters={"reason": reason}
        )


@dataclass
class ClassifiedError:
    """A classified error with full context."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recoverable: bool
    recovery_actions: List[RecoveryAction]

    original_exception: Optional[Exception] = None
    analysis_phase: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    user_message: Optional[str] = None

    def __post_init__(self):
        if self.original_exception and not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.original_exception),
                self.original_exception,
                self.original_exception.__traceback__
            ))

        if not self.user_message:
            self.user_message = self._generate_user_message()

    def _generate_user_message(self) -> str:
        """Generate a user-friendly error message."""
        messages = {
            ErrorCategory.MISSING_DATASET: "Selected data is required",
            ErrorCategory.EMPTY_DATASET: "The selected range contains no values.",
            ErrorCategory.RAGGED_ROWS: "Every row in the selected range must have the same number of columns.",
            ErrorCategory.DATASET_TOO_LARGE: "The selected range is too large to analyze in one request.",
            ErrorCategory.INSUFFICIENT_DATA_POINTS: "Not enough numeric values to compute this result.",
            ErrorCategory.LLM_QUOTA_EXHAUSTED: "API quota exceeded. Please try again later.",
            ErrorCategory.LLM_RATE_LIMITED: "I'm being rate limited. Please try again in a moment.",
        }
        return messages.get(self.category, f"An error occurred: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "recovery_actions": [
                {"type": a.action_type, "description": a.description}
                for a in self.recovery_actions
            ],
            "analysis_phase": self.analysis_phase,
            "context": self.context,
        }


class AnalysisError(Exception):
    """Base exception for analysis errors with classification."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        recoverable: bool = False,
        recovery_actions: List[RecoveryAction] = None,
        context: Dict[str, Any] = None,
    ):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.recoverable = recoverable
        self.recovery_actions = recovery_actions or []
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            recoverable=self.recoverable,
            recovery_actions=list(self.recovery_actions),
            original_exception=self,
            context=dict(self.context),
        )


class InputShapeError(AnalysisError):
    """Missing dataset, empty grid, ragged rows or an unusable parameter."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.MISSING_DATASET,
        context: Dict[str, Any] = None,
    ):
        super().__init__(
            message,
            category=category,
            severity=ErrorSeverity.HIGH,
            recoverable=False,
            recovery_actions=[RecoveryAction.clarify(message)],
            context=context,
        )


class InsufficientSampleError(AnalysisError):
    """A column or statistic has too few numeric values to be computed."""

    def __init__(self, message: str, required: int = 0, available: int = 0, context: Dict[str, Any] = None):
        context = dict(context or {})
        context.update({"required": required, "available": available})
        super().__init__(
            message,
            category=ErrorCategory.INSUFFICIENT_DATA_POINTS,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.skip(context.get("component", "result"))],
            context=context,
        )
        self.required = required
        self.available = available


class DegenerateComputationError(AnalysisError):
    """
    Zero denominator in a ratio-based statistic.

    The engines resolve these cases to 0 rather than raising; the class
    exists so callers that opt into strict handling have something to catch.
    """

    def __init__(self, message: str, context: Dict[str, Any] = None):
        super().__init__(
            message,
            category=ErrorCategory.DEGENERATE_COMPUTATION,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.skip("degenerate statistic")],
            context=context,
        )


def classify_error(
    exception: Exception,
    analysis_phase: str = None,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify an exception into a structured error."""
    context = context or {}

    if isinstance(exception, AnalysisError):
        classified = exception.classify()
        classified.analysis_phase = analysis_phase
        classified.context.update(context)
        return classified

    error_str = str(exception).lower()

    # Rate limiting
    if "rate limit" in error_str or "429" in error_str:
        if "quota" in error_str or "exhausted" in error_str:
            return ClassifiedError(
                category=ErrorCategory.LLM_QUOTA_EXHAUSTED,
                severity=ErrorSeverity.CRITICAL,
                message=str(exception),
                recoverable=False,
                recovery_actions=[RecoveryAction.abort("API quota exhausted")],
                original_exception=exception,
                analysis_phase=analysis_phase,
                context=context,
            )
        return ClassifiedError(
            category=ErrorCategory.LLM_RATE_LIMITED,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=True,
            recovery_actions=[RecoveryAction.retry(delay_seconds=60)],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    # Missing API key raised by ModelConfig.api_key
    if isinstance(exception, ValueError) and "missing api key" in error_str:
        return ClassifiedError(
            category=ErrorCategory.CONFIGURATION_ERROR,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            recoverable=False,
            recovery_actions=[RecoveryAction.abort("Model credentials not configured")],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    # Authentication
    if "auth" in error_str or "401" in error_str or "403" in error_str:
        return ClassifiedError(
            category=ErrorCategory.AUTHENTICATION_FAILED,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            recoverable=False,
            recovery_actions=[],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    # Timeout
    if "timeout" in error_str or isinstance(exception, TimeoutError):
        return ClassifiedError(
            category=ErrorCategory.LLM_TIMEOUT,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=True,
            recovery_actions=[RecoveryAction.retry(delay_seconds=5.0)],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    if isinstance(exception, OSError):
        return ClassifiedError(
            category=ErrorCategory.FILE_SYSTEM_ERROR,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=False,
            recovery_actions=[],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    if isinstance(exception, (ZeroDivisionError, ArithmeticError, TypeError)):
        return ClassifiedError(
            category=ErrorCategory.CALCULATION_ERROR,
            severity=ErrorSeverity.MEDIUM,
            message=str(exception),
            recoverable=True,
            recovery_actions=[RecoveryAction.skip(analysis_phase or "calculation")],
            original_exception=exception,
            analysis_phase=analysis_phase,
            context=context,
        )

    # Default
    return ClassifiedError(
        category=ErrorCategory.UNKNOWN_ERROR,
        severity=ErrorSeverity.HIGH,
        message=str(exception),
        recoverable=False,
        recovery_actions=[],
        original_exception=exception,
        analysis_phase=analysis_phase,
        context=context,
    )
