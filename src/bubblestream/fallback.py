"""Last-resort recovery when the finished response does not parse.

:func:`recover_response` never raises and always returns a document with
at least one bubble: whatever :func:`salvage_response` can rescue from the
raw buffer, otherwise the fixed apology from :func:`fallback_response`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from json_repair import repair_json
from pydantic import ValidationError

from bubblestream.bubbles import BUBBLE_ADAPTER, ResponseDocument, TextBubble
from bubblestream.parser import normalize_bubble, strip_code_fence

logger = logging.getLogger(__name__)

APOLOGY_TEXT = (
    "I apologize, but I'm having trouble generating a response right now. "
    "Please try again."
)


def fallback_response() -> ResponseDocument:
    return ResponseDocument(bubbles=[TextBubble(content=APOLOGY_TEXT)])


def _load_lenient(buffer: str) -> Any:
    text = strip_code_fence(buffer)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    repaired = repair_json(text)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return None


def _valid_bubbles(candidates: list[Any]) -> list:
    bubbles = []
    for candidate in candidates:
        candidate = normalize_bubble(candidate)
        if not isinstance(candidate, dict) or "messageType" not in candidate:
            continue
        try:
            bubbles.append(BUBBLE_ADAPTER.validate_python(candidate))
        except ValidationError as e:
            logger.info(f"Dropping unsalvageable bubble: {e.error_count()} errors")
    return bubbles


def salvage_response(buffer: str) -> ResponseDocument | None:
    """Try to rescue bubbles from a buffer the strict parser rejected.

    Interpretations, in order: a (possibly truncated) bubbles document, a
    single bubble object, a bare JSON string, any object with a
    ``content`` string.  Returns ``None`` when nothing usable is found.
    """
    if not buffer or not buffer.strip():
        return None

    data = _load_lenient(buffer)

    if isinstance(data, dict) and isinstance(data.get("bubbles"), list):
        bubbles = _valid_bubbles(data["bubbles"])
        if bubbles:
            logger.info(f"Salvaged {len(bubbles)} bubbles from a malformed document")
            return ResponseDocument(bubbles=bubbles)

    if isinstance(data, dict) and "messageType" in data and "content" in data:
        bubbles = _valid_bubbles([data])
        if bubbles:
            logger.info("Salvaged single message response")
            return ResponseDocument(bubbles=bubbles)

    if isinstance(data, str) and data.strip():
        logger.info("Salvaged bare string response as text")
        return ResponseDocument(bubbles=[TextBubble(content=data)])

    if isinstance(data, dict) and isinstance(data.get("content"), str) and data["content"].strip():
        logger.info("Salvaged content field as text")
        return ResponseDocument(bubbles=[TextBubble(content=data["content"])])

    logger.info("Could not salvage response")
    return None


def recover_response(buffer: str) -> tuple[ResponseDocument, bool]:
    """Return ``(document, salvaged)``; ``salvaged`` is False for the apology."""
    try:
        salvaged = salvage_response(buffer)
    except Exception as e:
        logger.error(f"Salvage raised unexpectedly: {e}")
        salvaged = None
    if salvaged is not None:
        return salvaged, True
    return fallback_response(), False
