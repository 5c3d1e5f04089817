"""Events yielded by :meth:`ResponseStreamer.generate`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

COMPLETE_CONTENT = "streaming_complete"


@dataclass
class StreamEvent:
    """Base for all streaming events."""

    type = "event"

    def to_wire(self) -> dict:
        raise NotImplementedError


@dataclass
class BubbleEvent(StreamEvent):
    """One fully formed bubble, in document order."""

    bubble: Any = None
    index: int = 0

    type = "bubble"

    def to_wire(self) -> dict:
        return {"type": self.type, "bubble": self.bubble.to_wire()}


@dataclass
class CompleteEvent(StreamEvent):
    """Final event of a turn that produced bubbles.

    ``result`` carries the :class:`StreamResult`; it is not part of the
    wire shape.
    """

    content: str = COMPLETE_CONTENT
    result: Any = None

    type = "complete"

    def to_wire(self) -> dict:
        return {"type": self.type, "content": self.content}


@dataclass
class ErrorEvent(StreamEvent):
    """The backend could not be reached; nothing else follows."""

    message: str = ""

    type = "error"

    def to_wire(self) -> dict:
        return {"type": self.type, "message": self.message}
