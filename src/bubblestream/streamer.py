import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from bubblestream.bubbles import BUBBLE_ADAPTER, CHOICE_TYPES, ResponseDocument
from bubblestream.completeness import is_bubble_complete
from bubblestream.dynamic import DynamicContentValidator
from bubblestream.events import BubbleEvent, CompleteEvent, ErrorEvent, StreamEvent
from bubblestream.fallback import fallback_response, recover_response
from bubblestream.instrumentation import (
    completion_span,
    record_error,
    record_outcome,
    turn_span,
)
from bubblestream.message import Message, build_messages
from bubblestream.pacing import Pacer
from bubblestream.parser import (
    ResponseParseError,
    parse_response,
    parse_streaming_bubbles,
)
from bubblestream.prompts import build_system_prompt
from bubblestream.provider import ModelProvider
from bubblestream.regeneration import Regenerator
from bubblestream.schema import MULTI_BUBBLE_RESPONSE_FORMAT
from bubblestream.store import BubbleStore
from bubblestream.streaming import DeltaAccumulator, detect_json_boundary
from bubblestream.survey import (
    SurveyContextProvider,
    SurveyMenuValidator,
    SurveyQuestionContext,
)

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Failed to generate a response. Please try again."


class ResponseConfig(BaseModel):
    """Per-request generation settings."""

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000


@dataclass
class StreamResult:
    """The result of a single ResponseStreamer.run() invocation.

    ``outcome`` is one of ``"validated"``, ``"regenerated"``,
    ``"salvaged"``, ``"fallback"`` or, when the backend could not be
    reached at all, ``"error"``.  ``regenerated`` records whether a
    regeneration request was made, whether or not its result was used.
    """

    bubbles: list = field(default_factory=list)
    outcome: str = "validated"
    regenerated: bool = False
    error: str | None = None


@dataclass
class _Turn:
    """Mutable bookkeeping for one request."""

    session_id: str
    pacer: Pacer
    is_disconnected: Callable[[], Awaitable[bool]] | None = None
    emitted: list = field(default_factory=list)
    outcome: str = "validated"
    regeneration_attempted: bool = False
    gone: bool = False

    async def disconnected(self) -> bool:
        if not self.gone and self.is_disconnected is not None:
            self.gone = bool(await self.is_disconnected())
        return self.gone

    def result(self) -> StreamResult:
        return StreamResult(
            bubbles=list(self.emitted),
            outcome=self.outcome,
            regenerated=self.regeneration_attempted,
        )


class ResponseStreamer:
    """Turns one streamed model response into paced, validated bubbles.

    Bubbles are emitted as soon as they are complete, in document order,
    at least ``min_interval`` seconds apart.  Choice menus are held back
    until the whole response has been validated.  When the finished
    response breaks the active survey question's contract, or promises
    interactive content it does not deliver, one corrective regeneration
    is attempted.  Every turn that reaches the backend ends with at least
    one bubble and a :class:`CompleteEvent`.

    ``run()`` drains ``generate()``.  ``generate()`` is the streaming
    entry point.

    Args:
        provider: Backend shared by the stream and the regeneration call.
        system_prompt: Base instruction prompt for every turn.
        survey_provider: Supplies the active survey question per session.
        store: Receives every emitted bubble, fire-and-forget.
        min_interval: Minimum seconds between two emitted bubbles.
        retry_backoff: Seconds to wait before retrying a failed stream
            creation.
    """

    def __init__(
        self,
        provider: ModelProvider,
        system_prompt: str,
        survey_provider: SurveyContextProvider | None = None,
        store: BubbleStore | None = None,
        min_interval: float = 1.0,
        retry_backoff: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        survey_validator: SurveyMenuValidator | None = None,
        dynamic_validator: DynamicContentValidator | None = None,
    ):
        self.provider = provider
        self.system_prompt = system_prompt
        self.survey_provider = survey_provider
        self.store = store
        self.min_interval = min_interval
        self.retry_backoff = retry_backoff
        self.survey_validator = survey_validator or SurveyMenuValidator()
        self.dynamic_validator = dynamic_validator or DynamicContentValidator()
        self.regenerator = Regenerator(provider)
        self._clock = clock
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    async def run(
        self,
        user_message: str,
        session_id: str,
        history: list[Message] | None = None,
        config: ResponseConfig | None = None,
    ) -> StreamResult:
        """Stream one turn to completion and return what was emitted."""
        result: StreamResult | None = None
        async for event in self.generate(user_message, session_id, history, config):
            if isinstance(event, CompleteEvent):
                result = event.result
            elif isinstance(event, ErrorEvent):
                result = StreamResult(outcome="error", error=event.message)
        if result is None:
            raise RuntimeError("generate() ended without a complete or error event")
        return result

    async def generate(
        self,
        user_message: str,
        session_id: str,
        history: list[Message] | None = None,
        config: ResponseConfig | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one turn, yielding events as bubbles become ready.

        Yields :class:`BubbleEvent` per bubble, then :class:`CompleteEvent`.
        When the backend stream cannot be opened, yields a single
        :class:`ErrorEvent` instead.  Stops quietly once
        ``is_disconnected`` reports the consumer is gone.
        """
        config = config or ResponseConfig()
        history = list(history or [])
        turn = _Turn(
            session_id=session_id,
            pacer=Pacer(self.min_interval, clock=self._clock, sleep=self._sleep),
            is_disconnected=is_disconnected,
        )

        async with turn_span(session_id, config.model) as span:
            try:
                async with aclosing(
                    self._stream_turn(turn, user_message, history, config)
                ) as events:
                    async for event in events:
                        yield event
            except Exception as e:
                record_error(span, e)
                logger.exception(f"Unexpected error in session {session_id}: {e}")
                if await turn.disconnected():
                    return
                turn.outcome = "fallback"
                async for event in self._deliver(turn, fallback_response().bubbles):
                    yield event
                yield CompleteEvent(result=turn.result())
            record_outcome(span, turn.outcome, len(turn.emitted))

    async def drain(self) -> None:
        """Wait for outstanding persistence writes and regenerations."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Turn phases
    # ------------------------------------------------------------------

    async def _stream_turn(
        self, turn: _Turn, user_message: str, history: list[Message],
        config: ResponseConfig,
    ) -> AsyncIterator[StreamEvent]:
        survey = await self._survey_context(turn.session_id)
        system_prompt = build_system_prompt(self.system_prompt, survey)
        messages = build_messages(system_prompt, history, user_message)

        acc = DeltaAccumulator()
        async with completion_span(self.provider.name, config.model, stream=True) as span:
            stream = await self._open_stream(config, messages, span)
            if stream is None:
                turn.outcome = "error"
                yield ErrorEvent(message=STREAM_ERROR_MESSAGE)
                return

            async with aclosing(stream):
                try:
                    async for delta in stream:
                        acc.append(delta)
                        if not detect_json_boundary(delta, acc.snapshot()):
                            continue
                        candidates = parse_streaming_bubbles(acc.snapshot())
                        ready = self._streamable(candidates or [], len(turn.emitted))
                        async for event in self._deliver(turn, ready):
                            yield event
                        if turn.gone:
                            logger.info(f"Session {turn.session_id} disconnected mid-stream")
                            return
                except ResponseStreamInterrupted as e:
                    record_error(span, e.cause)
                    logger.error(
                        f"Stream interrupted after {len(acc)} characters: {e.cause}"
                    )

        logger.info(f"Stream finished with {len(acc)} characters")
        document = await self._finalize(turn, acc.snapshot(), survey, user_message, history, config)
        if document is None:
            return

        async for event in self._deliver(turn, _unsent(document, turn.emitted)):
            yield event
        if turn.gone:
            return
        logger.info(
            f"Turn complete for session {turn.session_id}: "
            f"{len(turn.emitted)} bubbles, outcome={turn.outcome}"
        )
        yield CompleteEvent(result=turn.result())

    async def _open_stream(self, config: ResponseConfig, messages: list[dict], span):
        attempts = 2
        for attempt in range(1, attempts + 1):
            try:
                stream = await self.provider.open_stream(
                    model=config.model,
                    messages=messages,
                    temperature=config.temperature,
                    max_tokens=config.max_tokens,
                    response_format=MULTI_BUBBLE_RESPONSE_FORMAT,
                )
                return _interruptible(stream)
            except Exception as e:
                if attempt == attempts:
                    record_error(span, e)
                    logger.exception(f"Could not open response stream: {e}")
                    return None
                logger.warning(
                    f"Opening response stream failed ({e}), "
                    f"retrying in {self.retry_backoff}s"
                )
                await self._sleep(self.retry_backoff)

    async def _finalize(
        self, turn: _Turn, buffer: str, survey: SurveyQuestionContext | None,
        user_message: str, history: list[Message], config: ResponseConfig,
    ) -> ResponseDocument | None:
        try:
            document = parse_response(buffer)
        except ResponseParseError as e:
            logger.warning(f"Final response did not parse, salvaging: {e}")
            document, salvaged = recover_response(buffer)
            turn.outcome = "salvaged" if salvaged else "fallback"
            return document

        failed, revalidate = self._validate(document, survey)
        if failed is None:
            return document
        if await turn.disconnected():
            return None

        turn.regeneration_attempted = True
        task = asyncio.ensure_future(self.regenerator.regenerate(
            user_message=user_message,
            history=history,
            system_prompt=build_system_prompt(self.system_prompt, survey),
            config=config,
            failed=failed,
            revalidate=revalidate,
        ))
        self._track(task)
        regenerated = await asyncio.shield(task)
        if await turn.disconnected():
            return None
        if regenerated is None:
            return document
        turn.outcome = "regenerated"
        return regenerated

    def _validate(self, document: ResponseDocument, survey: SurveyQuestionContext | None):
        """Return the first result that needs regeneration and its re-check."""
        if survey is not None:
            survey_result = self.survey_validator.validate(document, survey)
            if survey_result.needs_regeneration:
                return survey_result, lambda doc: self.survey_validator.validate(doc, survey)

        dynamic_result = self.dynamic_validator.validate(document)
        if dynamic_result.needs_regeneration:
            return dynamic_result, self.dynamic_validator.validate
        return None, None

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _streamable(self, candidates: list, start: int) -> list:
        ready = []
        for candidate in candidates[start:]:
            if not is_bubble_complete(candidate):
                break
            if candidate["messageType"] in CHOICE_TYPES:
                break
            try:
                ready.append(BUBBLE_ADAPTER.validate_python(candidate))
            except ValidationError:
                break
        return ready

    async def _deliver(self, turn: _Turn, bubbles) -> AsyncIterator[BubbleEvent]:
        for bubble in bubbles:
            if await turn.disconnected():
                return
            await turn.pacer.wait()
            index = len(turn.emitted)
            turn.emitted.append(bubble)
            self._persist(turn.session_id, bubble)
            yield BubbleEvent(bubble=bubble, index=index)
            turn.pacer.mark()

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _survey_context(self, session_id: str) -> SurveyQuestionContext | None:
        if self.survey_provider is None:
            return None
        try:
            return await self.survey_provider.get_active_survey_context(session_id)
        except Exception as e:
            logger.error(f"Survey context lookup failed for {session_id}: {e}")
            return None

    def _persist(self, session_id: str, bubble) -> None:
        if self.store is None:
            return
        task = asyncio.ensure_future(self.store.save_bubble(session_id, bubble))
        task.add_done_callback(_log_persist_failure)
        self._track(task)

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)


class ResponseStreamInterrupted(Exception):
    """The backend stream failed after it was opened."""

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


async def _interruptible(stream: AsyncIterator[str]) -> AsyncIterator[str]:
    # Backend failures after the stream opened.
    async with aclosing(stream):
        try:
            async for delta in stream:
                yield delta
        except Exception as e:
            raise ResponseStreamInterrupted(e) from e


def _log_persist_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Failed to persist bubble: {exc}")


def _unsent(document: ResponseDocument, emitted: list) -> list:
    """Bubbles of *document* from the first one that differs from *emitted*.

    A regenerated document may not start with what was already streamed;
    everything from the point of divergence is sent after it.
    """
    start = 0
    for sent, bubble in zip(emitted, document.bubbles):
        if sent.to_wire() != bubble.to_wire():
            break
        start += 1
    return document.bubbles[start:]
