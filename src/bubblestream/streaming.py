"""Streaming primitives for the model's text deltas.

The :class:`DeltaAccumulator` owns the growing response buffer for one
request.  :func:`detect_json_boundary` is a cheap check that decides
whether a new delta is worth a best-effort parse of that buffer.
"""

from __future__ import annotations

import re

_SEPARATOR = re.compile(r"\}\s*,\s*\{")
_FIELD_END = re.compile(r"[\"\]}]\s*[}\]]")
_MESSAGE_TYPE_KEY = re.compile(r'"messageType"\s*:')
_CONTENT_KEY = re.compile(r'"content"\s*:')

# Characters of already-buffered text looked at together with the delta,
# so a pattern split across tiny deltas is still seen.
_LOOKBEHIND = 8


class DeltaAccumulator:
    """Concatenates streamed text fragments into one buffer."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0

    def append(self, delta: str) -> None:
        self._parts.append(delta)
        self._length += len(delta)

    def snapshot(self) -> str:
        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    def __len__(self) -> int:
        return self._length


def detect_json_boundary(delta: str, buffer: str) -> bool:
    """Return True when the latest delta may have completed a bubble.

    *buffer* is the full accumulated text, already including *delta*.
    A false negative only delays emission; the end-of-stream parse
    re-checks everything.
    """
    if not delta:
        return False
    recent = buffer[-(len(delta) + _LOOKBEHIND):]
    if _SEPARATOR.search(recent):
        return True
    return bool(
        _FIELD_END.search(recent)
        and _MESSAGE_TYPE_KEY.search(buffer)
        and _CONTENT_KEY.search(buffer)
    )
