from bubblestream.bubbles import Bubble, ResponseDocument
from bubblestream.events import BubbleEvent, CompleteEvent, ErrorEvent, StreamEvent
from bubblestream.instrumentation import instrument, uninstrument
from bubblestream.message import Message, MessageRole
from bubblestream.provider import (
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
    VLLMProvider,
)
from bubblestream.sse import sse_generator
from bubblestream.store import BubbleStore, InMemoryBubbleStore
from bubblestream.streamer import ResponseConfig, ResponseStreamer, StreamResult
from bubblestream.survey import (
    StaticSurveyContextProvider,
    SurveyContextProvider,
    SurveyQuestion,
    SurveyQuestionContext,
)

__all__ = [
    "Bubble",
    "BubbleEvent",
    "BubbleStore",
    "CompleteEvent",
    "ErrorEvent",
    "InMemoryBubbleStore",
    "Message",
    "MessageRole",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouter",
    "ResponseConfig",
    "ResponseDocument",
    "ResponseStreamer",
    "StaticSurveyContextProvider",
    "StreamEvent",
    "StreamResult",
    "SurveyContextProvider",
    "SurveyQuestion",
    "SurveyQuestionContext",
    "VLLMProvider",
    "instrument",
    "sse_generator",
    "uninstrument",
]
