"""JSON schema sent to the model as ``response_format``.

The model is asked for a single object ``{"bubbles": [...]}``.  Keep the
message types and metadata keys in step with :mod:`bubblestream.bubbles`.
"""

_ACTION = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "text": {"type": "string"},
        "icon": {"type": "string"},
        "action": {"type": "string"},
        "payload": {},
    },
    "required": ["id", "text", "action"],
}

MULTI_BUBBLE_RESPONSE_SCHEMA = {
    "name": "multi_bubble_response",
    "schema": {
        "type": "object",
        "properties": {
            "bubbles": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "messageType": {
                            "type": "string",
                            "enum": [
                                "text",
                                "card",
                                "menu",
                                "multiselect_menu",
                                "rating",
                                "image",
                                "quickReplies",
                                "form",
                                "table",
                                "system",
                            ],
                        },
                        "content": {"type": "string"},
                        "metadata": {
                            "type": "object",
                            "properties": {
                                "title": {"type": "string"},
                                "description": {"type": "string"},
                                "imageUrl": {"type": "string"},
                                "buttons": {"type": "array", "items": _ACTION},
                                "options": {"type": "array", "items": _ACTION},
                                "allowMultiple": {"type": "boolean"},
                                "minSelections": {"type": "number"},
                                "maxSelections": {"type": "number"},
                                "quickReplies": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                },
                                "formFields": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "id": {"type": "string"},
                                            "label": {"type": "string"},
                                            "type": {
                                                "type": "string",
                                                "enum": ["text", "email", "textarea"],
                                            },
                                            "placeholder": {"type": "string"},
                                            "required": {"type": "boolean"},
                                            "value": {"type": "string"},
                                        },
                                        "required": ["id", "label", "type"],
                                    },
                                },
                                "submitButton": _ACTION,
                                "minValue": {"type": "number"},
                                "maxValue": {"type": "number"},
                                "step": {"type": "number"},
                                "ratingType": {
                                    "type": "string",
                                    "enum": ["stars", "numbers", "scale"],
                                },
                                "expectedMenuOptions": {"type": "number"},
                                "expectedQuickReplies": {"type": "number"},
                                "expectedInteractiveElements": {"type": "number"},
                                "contentIntent": {"type": "string"},
                            },
                        },
                    },
                    "required": ["messageType", "content"],
                },
            },
        },
        "required": ["bubbles"],
    },
}

MULTI_BUBBLE_RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": MULTI_BUBBLE_RESPONSE_SCHEMA,
}
