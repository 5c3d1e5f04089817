import asyncio
import json

import pytest

from bubblestream.events import BubbleEvent
from bubblestream.provider import CompletionResult, ModelProvider
from bubblestream.streamer import ResponseStreamer
from bubblestream.survey import SurveyOption, SurveyQuestion, SurveyQuestionContext


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued streams and completions.

    Each entry of ``streams`` is a list of text deltas, or an exception to
    raise when the stream is opened.  A delta list may itself contain an
    exception, raised when iteration reaches it.  Each entry of
    ``completions`` is the content string of a non-streaming completion,
    or an exception to raise.  No network calls.
    """

    name = "mock"

    def __init__(self):
        self.streams: list = []
        self.completions: list = []
        self.call_log: list[dict] = []
        self.closed_streams = 0

    async def open_stream(
        self, model, messages, temperature=None, max_tokens=None,
        response_format=None,
    ):
        self.call_log.append({
            "kind": "stream", "model": model, "messages": messages,
            "temperature": temperature, "max_tokens": max_tokens,
            "response_format": response_format,
        })
        item = self.streams.pop(0)
        if isinstance(item, BaseException):
            raise item
        return self._deltas(item)

    async def _deltas(self, deltas):
        try:
            for delta in deltas:
                if isinstance(delta, BaseException):
                    raise delta
                await asyncio.sleep(0)
                yield delta
        finally:
            self.closed_streams += 1

    async def complete(
        self, model, messages, temperature=None, max_tokens=None,
        response_format=None,
    ):
        self.call_log.append({
            "kind": "complete", "model": model, "messages": messages,
            "temperature": temperature, "max_tokens": max_tokens,
            "response_format": response_format,
        })
        item = self.completions.pop(0)
        if isinstance(item, BaseException):
            raise item
        return CompletionResult(content=item, model=model)

    def calls(self, kind: str) -> list[dict]:
        return [c for c in self.call_log if c["kind"] == kind]


# ---------------------------------------------------------------------------
# Fake time
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


# ---------------------------------------------------------------------------
# Document builders
# ---------------------------------------------------------------------------

def text(content: str, **metadata) -> dict:
    bubble = {"messageType": "text", "content": content}
    if metadata:
        bubble["metadata"] = metadata
    return bubble


def options(*texts: str) -> list[dict]:
    return [
        {"id": f"opt{i}", "text": t, "action": "send_message"}
        for i, t in enumerate(texts, start=1)
    ]


def menu(content: str, *texts: str) -> dict:
    return {
        "messageType": "menu",
        "content": content,
        "metadata": {"options": options(*texts)},
    }


def multiselect(content: str, *texts: str, min_sel: int = 1, max_sel: int | None = None) -> dict:
    return {
        "messageType": "multiselect_menu",
        "content": content,
        "metadata": {
            "options": options(*texts),
            "allowMultiple": True,
            "minSelections": min_sel,
            "maxSelections": max_sel or len(texts),
        },
    }


def rating(content: str, min_value=1, max_value=5, rating_type="stars") -> dict:
    return {
        "messageType": "rating",
        "content": content,
        "metadata": {
            "minValue": min_value,
            "maxValue": max_value,
            "ratingType": rating_type,
        },
    }


def doc(*bubbles: dict) -> str:
    return json.dumps({"bubbles": list(bubbles)})


def chunked(payload: str, size: int | None) -> list[str]:
    """Split *payload* into deltas of *size* characters (whole when None)."""
    if size is None:
        return [payload]
    return [payload[i:i + size] for i in range(0, len(payload), size)]


def survey_context(*texts: str, multiple: bool = False, index: int = 0) -> SurveyQuestionContext:
    question = SurveyQuestion(
        question_type="multiple_choice" if multiple else "single_choice",
        text="How did you hear about us?",
        options=[SurveyOption(id=f"o{i}", text=t) for i, t in enumerate(texts, start=1)],
    )
    return SurveyQuestionContext.from_question(question, question_index=index)


def bubble_events(events) -> list:
    return [e for e in events if isinstance(e, BubbleEvent)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_streamer(mock_provider, clock):
    """Factory fixture for streamers wired to the mock provider and fake
    clock.  Keyword arguments override the constructor defaults."""
    def _make(**kwargs):
        kwargs.setdefault("provider", mock_provider)
        kwargs.setdefault("system_prompt", "You are a helpful assistant.")
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", clock.sleep)
        return ResponseStreamer(**kwargs)
    return _make
