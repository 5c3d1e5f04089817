"""Decide whether a candidate bubble has everything needed to render it."""

from typing import Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None and value != ""


def _all_have(items: Any, *keys: str) -> bool:
    return all(
        isinstance(item, dict) and all(_non_empty(item.get(k)) for k in keys)
        for item in items
    )


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def is_bubble_complete(candidate: Any) -> bool:
    """Return True when *candidate* is safe to emit.

    *candidate* is a raw dict as produced by the streaming parser.  The
    check is pure: calling it twice on the same object gives the same
    answer.
    """
    if not isinstance(candidate, dict):
        return False
    if "messageType" not in candidate or "content" not in candidate:
        return False

    metadata = candidate.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    message_type = candidate["messageType"]
    if message_type == "text":
        content = candidate["content"]
        return isinstance(content, str) and bool(content.strip())

    if message_type in ("menu", "multiselect_menu"):
        options = metadata.get("options")
        if not (_non_empty_list(options) and _all_have(options, "id", "text", "action")):
            return False
        if message_type == "menu":
            return True
        return (
            metadata.get("allowMultiple") is True
            and _is_number(metadata.get("minSelections"))
            and _is_number(metadata.get("maxSelections"))
        )

    if message_type == "form":
        fields = metadata.get("formFields")
        return _non_empty_list(fields) and _all_have(fields, "id", "label", "type")

    if message_type == "card":
        # A card without buttons is complete as soon as it has content.
        buttons = metadata.get("buttons")
        if buttons is None:
            return True
        return isinstance(buttons, list) and _all_have(buttons, "id", "text", "action")

    if message_type == "rating":
        return _is_number(metadata.get("minValue")) and _is_number(metadata.get("maxValue"))

    return True
