"""Where emitted bubbles are persisted.

The streamer calls :meth:`BubbleStore.save_bubble` once per emitted bubble
without waiting for it, so a slow store never delays the stream.
"""

from __future__ import annotations

from collections import defaultdict

from bubblestream.bubbles import BaseBubble


class BubbleStore:
    """No-op store.  Subclass and override ``save_bubble``."""

    async def save_bubble(self, session_id: str, bubble: BaseBubble) -> None:
        return None


class InMemoryBubbleStore(BubbleStore):
    """Keeps bubbles per session in a dict.  Useful for tests and demos."""

    def __init__(self):
        self.sessions: dict[str, list[BaseBubble]] = defaultdict(list)

    async def save_bubble(self, session_id: str, bubble: BaseBubble) -> None:
        self.sessions[session_id].append(bubble)

    def bubbles(self, session_id: str) -> list[BaseBubble]:
        return list(self.sessions.get(session_id, []))
