"""
Tests for request-scoped tracing.
"""
import json

import pytest

from sheet_analyst.core.observability import SpanKind, SpanStatus, Tracer, estimate_cost


class TestTracer:
    """Traces, spans and export."""

    def test_spans_recorded(self):
        tracer = Tracer()
        with tracer.start_trace("deep_analysis", address="Sheet1!A1:B5") as trace:
            with tracer.start_span("statistics", SpanKind.ANALYSIS_ENGINE) as span:
                span.attributes["columns"] = 2
        assert trace.trace_id.startswith("trace_")
        assert [s.name for s in trace.spans] == ["statistics"]
        assert trace.spans[0].status == SpanStatus.OK
        assert trace.end_time is not None
        assert tracer.current_trace is None

    def test_failed_span_reraises(self):
        """A span records the error and lets it propagate."""
        tracer = Tracer()
        with tracer.start_trace("deep_analysis") as trace:
            with pytest.raises(ZeroDivisionError):
                with tracer.start_span("trends", SpanKind.ANALYSIS_ENGINE):
                    raise ZeroDivisionError("boom")
        assert len(trace.failed_spans) == 1
        assert trace.failed_spans[0].error_message == "ZeroDivisionError: boom"
        assert trace.status == SpanStatus.OK

    def test_nested_span_parent(self):
        tracer = Tracer()
        with tracer.start_trace("narrative") as trace:
            with tracer.start_span("outer", SpanKind.VALIDATION) as outer:
                with tracer.start_span("inner", SpanKind.LLM_CALL):
                    pass
        assert trace.spans[1].parent_span_id == outer.span_id

    def test_span_without_trace_yields_none(self):
        tracer = Tracer()
        with tracer.start_span("orphan", SpanKind.EXPORT) as span:
            assert span is None

    def test_llm_usage_aggregated(self):
        tracer = Tracer()
        with tracer.start_trace("narrative") as trace:
            with tracer.start_span("llm", SpanKind.LLM_CALL) as span:
                tracer.record_llm_usage(span, "gpt-4o", "openai", 1000, 500, 120.0)
        assert trace.total_input_tokens == 1000
        assert trace.total_output_tokens == 500
        assert trace.estimated_cost_usd == pytest.approx(estimate_cost("gpt-4o", 1000, 500))

    def test_export(self, tmp_path):
        tracer = Tracer(export_dir=tmp_path)
        with tracer.start_trace("deep_analysis") as trace:
            pass
        exported = json.loads((tmp_path / f"{trace.trace_id}.json").read_text())
        assert exported["operation"] == "deep_analysis"
        assert exported["status"] == "ok"


class TestCostEstimate:
    def test_known_model(self):
        assert estimate_cost("gpt-4o-mini", 1_000_000, 0) == pytest.approx(0.15)

    def test_unknown_model_default_rate(self):
        assert estimate_cost("mystery", 500_000, 500_000) == pytest.approx(1.0)
