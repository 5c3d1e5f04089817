"""Parsing of model output into bubbles.

Two entry points share the same normalisation:

* :func:`parse_streaming_bubbles` runs repeatedly while the response is
  still arriving.  It only returns array elements that are already
  complete JSON values, so half-written strings, arrays and keys are
  simply "not there yet".
* :func:`parse_response` runs once on the finished buffer and enforces
  the full document schema, raising :class:`ResponseParseError`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from bubblestream.bubbles import ResponseDocument

logger = logging.getLogger(__name__)

_BUBBLES_ARRAY = re.compile(r'"bubbles"\s*:\s*\[')
_CODE_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_DECODER = json.JSONDecoder()

_TYPE_ALIASES = {
    "multiSelect_menu": "multiselect_menu",
    "multiselectMenu": "multiselect_menu",
    "multi_select_menu": "multiselect_menu",
    "MultiSelect_Menu": "multiselect_menu",
    "quickreplies": "quickReplies",
    "quick_replies": "quickReplies",
    "QuickReplies": "quickReplies",
}


class ResponseParseError(ValueError):
    """The finished response is not a valid bubble document."""


def normalize_message_type(value: Any) -> Any:
    """Map the spellings models tend to invent onto canonical types."""
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if stripped in _TYPE_ALIASES:
        return _TYPE_ALIASES[stripped]
    lower = stripped.lower()
    if lower in ("multiselect_menu", "multiselectmenu", "multi_select_menu"):
        return "multiselect_menu"
    if lower in ("quickreplies", "quick_replies", "quick-replies"):
        return "quickReplies"
    return stripped


def normalize_bubble(candidate: Any) -> Any:
    if not isinstance(candidate, dict) or "messageType" not in candidate:
        return candidate
    return {**candidate, "messageType": normalize_message_type(candidate["messageType"])}


def parse_streaming_bubbles(buffer: str) -> list[Any] | None:
    """Best-effort extraction of the completed elements of ``bubbles``.

    Returns ``None`` until the ``bubbles`` array has opened.  Decoding
    stops at the first element that does not decode yet; anything after
    it (including trailing commas or garbage) is ignored.
    """
    match = _BUBBLES_ARRAY.search(buffer)
    if match is None:
        return None

    bubbles: list[Any] = []
    idx = match.end()
    end = len(buffer)
    while idx < end:
        while idx < end and (buffer[idx].isspace() or buffer[idx] == ","):
            idx += 1
        if idx >= end or buffer[idx] == "]":
            break
        try:
            element, idx = _DECODER.raw_decode(buffer, idx)
        except json.JSONDecodeError:
            break
        bubbles.append(normalize_bubble(element))
    return bubbles


def strip_code_fence(text: str) -> str:
    match = _CODE_FENCE.match(text)
    return match.group(1) if match else text


def parse_response(text: str) -> ResponseDocument:
    """Strictly parse a finished response into a :class:`ResponseDocument`."""
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("bubbles"), list):
        raise ResponseParseError("Response is not an object with a 'bubbles' array")

    normalized = {**data, "bubbles": [normalize_bubble(b) for b in data["bubbles"]]}
    try:
        document = ResponseDocument.model_validate(normalized)
    except ValidationError as e:
        raise ResponseParseError(f"Response does not match the bubble schema: {e}") from e

    logger.info(f"Parsed response with {len(document.bubbles)} bubbles")
    return document
