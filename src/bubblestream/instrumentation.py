"""Optional OpenTelemetry tracing for streamed turns.

Nothing is traced until :func:`instrument` is called, and the package
does not need ``opentelemetry-api`` unless it is.  Every span helper
yields ``None`` while tracing is off, and every ``record_*`` helper
accepts that ``None``.

Span layout for one turn::

    invoke_agent bubblestream          (turn_span)
    ├── chat <model>                   (completion_span, stream=True)
    └── regenerate <validator>         (regeneration_span, optional)
        └── chat <model>               (completion_span, stream=False)
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None

_USAGE_ATTRIBUTES = (
    ("prompt_tokens", "gen_ai.usage.input_tokens"),
    ("completion_tokens", "gen_ai.usage.output_tokens"),
)


def instrument(*, tracer_name: str = "bubblestream") -> None:
    """Start emitting spans for every turn.

    Configure a TracerProvider first, then call this once::

        trace.set_tracer_provider(provider)
        bubblestream.instrument()

    Attribute names follow the OpenTelemetry GenAI semantic conventions
    where one exists; streaming-specific attributes use the
    ``bubblestream.`` prefix.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed
            (``pip install bubblestream[otel]``).
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install bubblestream[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "Tracing enabled without a TracerProvider; spans are dropped "
            "until one is set"
        )
    else:
        logger.info(f"Tracing enabled with tracer '{tracer_name}'")


def uninstrument() -> None:
    """Stop emitting spans."""
    global _tracer
    _tracer = None


def is_instrumented() -> bool:
    return _tracer is not None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    kwargs = {"attributes": attributes}
    if client:
        from opentelemetry.trace import SpanKind
        kwargs["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **kwargs) as span:
        yield span


def turn_span(session_id: str, model: str):
    """Root span around one ``ResponseStreamer.generate()`` call."""
    return _span(
        "invoke_agent bubblestream",
        {
            "gen_ai.operation.name": "invoke_agent",
            "gen_ai.conversation.id": session_id,
            "gen_ai.request.model": model,
        },
    )


def completion_span(system: str, model: str, stream: bool = False):
    """Client span around one backend request, streamed or not."""
    return _span(
        f"chat {model}",
        {
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
            "gen_ai.request.stream": stream,
        },
        client=True,
    )


def regeneration_span(validator: str):
    return _span(
        f"regenerate {validator}",
        {
            "gen_ai.operation.name": "regenerate",
            "bubblestream.validator": validator,
        },
    )


def record_outcome(span, outcome: str, bubble_count: int) -> None:
    """Tag a turn span with how the turn ended and how many bubbles left."""
    if span is None:
        return
    span.set_attribute("bubblestream.outcome", outcome)
    span.set_attribute("bubblestream.bubble_count", bubble_count)


def record_regeneration(span, accepted: bool) -> None:
    if span is None:
        return
    span.set_attribute("bubblestream.regeneration.accepted", accepted)


def record_usage(span, usage, response_model: str | None = None) -> None:
    """Copy token counts from an OpenAI ``usage`` object onto a span.

    Missing or ``None`` counts are skipped.
    """
    if span is None or usage is None:
        return
    for source, attribute in _USAGE_ATTRIBUTES:
        value = getattr(usage, source, None)
        if value is not None:
            span.set_attribute(attribute, value)
    if response_model:
        span.set_attribute("gen_ai.response.model", response_model)


def record_error(span, exception: BaseException) -> None:
    """Mark a span as failed and attach the exception.

    ``error.type`` carries the exception's qualified class name.
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
