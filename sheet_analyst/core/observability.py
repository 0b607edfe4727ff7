"""
Tracing for analysis requests.

One Tracer per request: the engines share no state between requests, so
neither does the tracing. Each engine runs inside a span; narrative
generation spans also carry token usage and an estimated cost.

Key Capabilities:
- Trace: Complete execution path for a single analysis request
- Span: Individual engine run, LLM call or export
- Optional JSON export of finished traces
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from contextlib import contextmanager
from enum import Enum
import time
import json
import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SpanKind(Enum):
    """Types of spans for categorization."""
    VALIDATION = "validation"
    ANALYSIS_ENGINE = "analysis_engine"
    LLM_CALL = "llm_call"
    EXPORT = "export"


class SpanStatus(Enum):
    """Outcome status of a span."""
    OK = "ok"
    ERROR = "error"


@dataclass
class LLMUsage:
    """Token usage tracking for a single LLM call."""
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class Span:
    """Individual operation in a trace."""
    span_id: str
    name: str
    kind: SpanKind
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SpanStatus = SpanStatus.OK
    parent_span_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)
    llm_usage: Optional[LLMUsage] = None
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return 0

    def add_event(self, name: str, attributes: Dict[str, Any] = None):
        self.events.append({
            "name": name,
            "timestamp": _now().isoformat(),
            "attributes": attributes or {}
        })

    def set_error(self, error: Exception):
        self.status = SpanStatus.ERROR
        self.error_message = f"{type(error).__name__}: {str(error)}"
        self.add_event("exception", {"type": type(error).__name__, "message": str(error)})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "span_id": self.span_id,
            "name": self.name,
            "kind": self.kind.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "parent_span_id": self.parent_span_id,
            "attributes": self.attributes,
            "events": self.events,
            "error_message": self.error_message,
            "llm_usage": {
                "model": self.llm_usage.model,
                "provider": self.llm_usage.provider,
                "input_tokens": self.llm_usage.input_tokens,
                "output_tokens": self.llm_usage.output_tokens,
                "total_tokens": self.llm_usage.total_tokens,
                "estimated_cost_usd": self.llm_usage.estimated_cost_usd,
                "latency_ms": self.llm_usage.latency_ms,
            } if self.llm_usage else None,
        }


@dataclass
class Trace:
    """Complete execution trace for one request."""
    trace_id: str
    operation: str
    address: str
    start_time: datetime
    end_time: Optional[datetime] = None
    spans: List[Span] = field(default_factory=list)

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost_usd: float = 0.0

    status: SpanStatus = SpanStatus.OK
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return 0

    @property
    def failed_spans(self) -> List[Span]:
        return [s for s in self.spans if s.status == SpanStatus.ERROR]

    def add_llm_usage(self, usage: LLMUsage):
        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        self.estimated_cost_usd += usage.estimated_cost_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "operation": self.operation,
            "address": self.address,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "error_message": self.error_message,
            "metrics": {
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
                "estimated_cost_usd": self.estimated_cost_usd,
                "failed_spans": len(self.failed_spans),
            },
            "spans": [s.to_dict() for s in self.spans],
        }


# Cost estimation per 1M tokens (update as pricing changes)
LLM_COST_PER_1M_TOKENS = {
    "claude-sonnet-4": {"input": 3.00, "output": 15.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate cost in USD for token usage."""
    model_key = model.lower()
    for key, rates in LLM_COST_PER_1M_TOKENS.items():
        if key in model_key:
            return (
                (input_tokens / 1_000_000) * rates["input"] +
                (output_tokens / 1_000_000) * rates["output"]
            )
    return (input_tokens + output_tokens) / 1_000_000 * 1.0


class Tracer:
    """
    Request-scoped tracer.

    Usage:
        tracer = Tracer(export_dir=None)

        with tracer.start_trace("deep_analysis", address="Sheet1!A1:B5") as trace:
            with tracer.start_span("statistics", SpanKind.ANALYSIS_ENGINE) as span:
                span.attributes["columns"] = 2
    """

    def __init__(self, export_dir: Optional[Path] = None):
        self.export_dir = Path(export_dir) if export_dir else None
        self._current_trace: Optional[Trace] = None
        self._span_stack: List[Span] = []
        self._span_counter: int = 0

    def _generate_span_id(self) -> str:
        self._span_counter += 1
        return f"span_{int(time.time() * 1000)}_{self._span_counter}"

    @contextmanager
    def start_trace(self, operation: str, address: str = ""):
        """Start the trace for this request."""
        self._current_trace = Trace(
            trace_id=f"trace_{uuid.uuid4().hex[:12]}",
            operation=operation,
            address=address,
            start_time=_now(),
        )
        self._span_stack = []
        self._span_counter = 0
        logger.info(f"Started trace {self._current_trace.trace_id} for {operation} on {address or 'selection'}")

        try:
            yield self._current_trace
            self._current_trace.status = SpanStatus.OK
        except Exception as e:
            self._current_trace.status = SpanStatus.ERROR
            self._current_trace.error_message = f"{type(e).__name__}: {str(e)}"
            raise
        finally:
            self._current_trace.end_time = _now()
            if self.export_dir:
                self._export_trace(self._current_trace)
            logger.info(
                f"Completed trace {self._current_trace.trace_id} "
                f"in {self._current_trace.duration_ms:.0f}ms, "
                f"failed_spans={len(self._current_trace.failed_spans)}"
            )
            self._current_trace = None

    @contextmanager
    def start_span(self, name: str, kind: SpanKind, attributes: Dict[str, Any] = None):
        """Start a new span within the current trace."""
        if not self._current_trace:
            yield None
            return

        span = Span(
            span_id=self._generate_span_id(),
            name=name,
            kind=kind,
            start_time=_now(),
            parent_span_id=self._span_stack[-1].span_id if self._span_stack else None,
            attributes=attributes or {},
        )
        self._span_stack.append(span)
        self._current_trace.spans.append(span)

        try:
            yield span
            span.status = SpanStatus.OK
        except Exception as e:
            span.set_error(e)
            raise
        finally:
            span.end_time = _now()
            self._span_stack.pop()
            logger.debug(
                f"Span {name} completed in {span.duration_ms:.0f}ms"
                + (f" (error: {span.error_message})" if span.error_message else "")
            )

    def record_llm_usage(
        self,
        span: Optional[Span],
        model: str,
        provider: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
    ):
        """Record LLM usage on a span and aggregate to trace."""
        if not span:
            return
        usage = LLMUsage(
            model=model,
            provider=provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=estimate_cost(model, input_tokens, output_tokens),
            latency_ms=latency_ms,
        )
        span.llm_usage = usage
        if self._current_trace:
            self._current_trace.add_llm_usage(usage)

    @property
    def current_trace(self) -> Optional[Trace]:
        return self._current_trace

    def _export_trace(self, trace: Trace):
        """Export trace to JSON file."""
        filepath = self.export_dir / f"{trace.trace_id}.json"
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            with open(filepath, 'w') as f:
                json.dump(trace.to_dict(), f, indent=2, default=str)
            logger.debug(f"Exported trace to {filepath}")
        except OSError as e:
            logger.error(f"Failed to export trace: {e}")
