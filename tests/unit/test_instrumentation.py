"""Tracing helpers, with the OpenTelemetry tracer replaced by mocks."""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import bubblestream.instrumentation as inst
from bubblestream.instrumentation import (
    completion_span,
    is_instrumented,
    record_error,
    record_outcome,
    record_regeneration,
    record_usage,
    regeneration_span,
    turn_span,
    uninstrument,
)


@pytest.fixture(autouse=True)
def _reset_tracer():
    inst._tracer = None
    yield
    inst._tracer = None


@pytest.fixture
def tracer():
    span = MagicMock(name="span")
    mock = MagicMock(name="tracer")
    mock.start_as_current_span.return_value.__enter__ = MagicMock(return_value=span)
    mock.start_as_current_span.return_value.__exit__ = MagicMock(return_value=False)
    mock.span = span
    inst._tracer = mock
    return mock


def _fake_otel(tracer_obj, noop_type=None):
    trace = MagicMock()
    trace.get_tracer.return_value = tracer_obj
    trace.NoOpTracer = noop_type or type("NoOpTracer", (), {})
    return trace, (
        patch("importlib.util.find_spec", return_value=MagicMock()),
        patch.dict(
            "sys.modules",
            {"opentelemetry": MagicMock(trace=trace), "opentelemetry.trace": trace},
        ),
    )


# ---------------------------------------------------------------------------
# instrument() / uninstrument()
# ---------------------------------------------------------------------------

class TestInstrument:
    def test_missing_otel_raises_with_install_hint(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match=r"bubblestream\[otel\]"):
                inst.instrument()
        assert not is_instrumented()

    @pytest.mark.parametrize("kwargs,expected", [
        ({}, "bubblestream"),
        ({"tracer_name": "survey-bot"}, "survey-bot"),
    ])
    def test_installs_named_tracer(self, kwargs, expected):
        real = MagicMock()
        trace, (p1, p2) = _fake_otel(real)
        with p1, p2:
            inst.instrument(**kwargs)

        trace.get_tracer.assert_called_once_with(expected)
        assert inst._tracer is real
        assert is_instrumented()

    def test_noop_tracer_is_reported(self, caplog):
        NoOpTracer = type("NoOpTracer", (), {})
        _, (p1, p2) = _fake_otel(NoOpTracer(), NoOpTracer)
        with p1, p2, caplog.at_level(logging.INFO, logger="bubblestream.instrumentation"):
            inst.instrument()

        assert "without a TracerProvider" in caplog.text

    def test_uninstrument_is_idempotent(self):
        inst._tracer = MagicMock()
        uninstrument()
        uninstrument()
        assert not is_instrumented()


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------

SPANS = [
    (turn_span, ("s1", "m")),
    (completion_span, ("openai", "m")),
    (regeneration_span, ("survey",)),
]


class TestSpans:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("span_fn,args", SPANS, ids=["turn", "completion", "regeneration"])
    async def test_yield_none_while_disabled(self, span_fn, args):
        async with span_fn(*args) as span:
            assert span is None

    @pytest.mark.asyncio
    async def test_turn_span(self, tracer):
        async with turn_span("session-1", "gpt-4o") as span:
            assert span is tracer.span

        tracer.start_as_current_span.assert_called_once_with(
            "invoke_agent bubblestream",
            attributes={
                "gen_ai.operation.name": "invoke_agent",
                "gen_ai.conversation.id": "session-1",
                "gen_ai.request.model": "gpt-4o",
            },
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stream", [True, False])
    async def test_completion_span_is_a_client_span(self, tracer, stream):
        async with completion_span("openrouter", "gpt-4o", stream=stream):
            pass

        tracer.start_as_current_span.assert_called_once_with(
            "chat gpt-4o",
            kind=SpanKind.CLIENT,
            attributes={
                "gen_ai.operation.name": "chat",
                "gen_ai.provider.name": "openrouter",
                "gen_ai.request.model": "gpt-4o",
                "gen_ai.request.stream": stream,
            },
        )

    @pytest.mark.asyncio
    async def test_regeneration_span_names_the_validator(self, tracer):
        async with regeneration_span("dynamic"):
            pass

        name = tracer.start_as_current_span.call_args.args[0]
        attributes = tracer.start_as_current_span.call_args.kwargs["attributes"]
        assert name == "regenerate dynamic"
        assert attributes["bubblestream.validator"] == "dynamic"
        assert "kind" not in tracer.start_as_current_span.call_args.kwargs


# ---------------------------------------------------------------------------
# record_* helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("call", [
    lambda: record_outcome(None, "validated", 1),
    lambda: record_regeneration(None, True),
    lambda: record_usage(None, MagicMock(prompt_tokens=1, completion_tokens=1)),
    lambda: record_error(None, RuntimeError("boom")),
])
def test_record_helpers_accept_missing_span(call):
    call()


def test_record_outcome():
    span = MagicMock()
    record_outcome(span, "salvaged", 2)
    span.set_attribute.assert_any_call("bubblestream.outcome", "salvaged")
    span.set_attribute.assert_any_call("bubblestream.bubble_count", 2)


def test_record_regeneration():
    span = MagicMock()
    record_regeneration(span, False)
    span.set_attribute.assert_called_once_with("bubblestream.regeneration.accepted", False)


class TestRecordUsage:
    def test_copies_counts_and_model(self):
        span = MagicMock()
        record_usage(span, MagicMock(prompt_tokens=100, completion_tokens=50), "gpt-4o-2024-08-06")

        assert {c.args for c in span.set_attribute.call_args_list} == {
            ("gen_ai.usage.input_tokens", 100),
            ("gen_ai.usage.output_tokens", 50),
            ("gen_ai.response.model", "gpt-4o-2024-08-06"),
        }

    def test_skips_absent_counts(self):
        span = MagicMock()
        record_usage(span, MagicMock(spec=[]))
        span.set_attribute.assert_not_called()

    def test_skips_none_counts(self):
        span = MagicMock()
        record_usage(span, MagicMock(prompt_tokens=None, completion_tokens=7))
        span.set_attribute.assert_called_once_with("gen_ai.usage.output_tokens", 7)


class TestRecordError:
    def test_marks_span_failed(self):
        span = MagicMock()
        exc = ConnectionError("refused")
        record_error(span, exc)

        span.set_status.assert_called_once_with(StatusCode.ERROR, "refused")
        span.record_exception.assert_called_once_with(exc)
        span.set_attribute.assert_called_once_with("error.type", "ConnectionError")

    def test_error_type_is_qualified(self):
        class Backend:
            class Timeout(Exception):
                pass

        span = MagicMock()
        record_error(span, Backend.Timeout())

        error_type = span.set_attribute.call_args.args[1]
        assert error_type.endswith("Backend.Timeout")
