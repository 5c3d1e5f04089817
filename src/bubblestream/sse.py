"""Server-Sent Events adapter for streaming events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from bubblestream.events import StreamEvent


def format_sse(event: StreamEvent) -> str:
    return f"event: {event.type}\ndata: {json.dumps(event.to_wire())}\n\n"


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings.

    The ``complete`` or ``error`` event is the last frame; no extra
    sentinel is sent.
    """
    async for event in event_stream:
        yield format_sse(event)
