"""Typed message bubbles.

A response is a :class:`ResponseDocument` holding an ordered list of
bubbles.  Each bubble is one variant of a tagged union keyed on
``messageType``; every variant carries only the metadata its type needs.
Unknown message types validate into :class:`OtherBubble` so new types
coming from the model do not break parsing.

Python attributes are snake_case; the JSON (wire) names are camelCase
aliases.  Dump with ``by_alias=True`` to get the wire shape.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel

CHOICE_TYPES = ("menu", "multiselect_menu")
INTERACTIVE_TYPES = ("menu", "multiselect_menu", "quickReplies", "card", "form")


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class Action(_WireModel):
    """A menu option or a button."""

    id: str = ""
    text: str = ""
    action: str = ""
    icon: str | None = None
    payload: Any = None


class FormField(_WireModel):
    id: str = ""
    label: str = ""
    type: str = ""
    placeholder: str | None = None
    required: bool | None = None
    value: str | None = None


class Metadata(_WireModel):
    """Fields any bubble may declare about what the turn should contain."""

    expected_menu_options: int | None = None
    expected_quick_replies: int | None = None
    expected_interactive_elements: int | None = None
    content_intent: str | None = None
    completion_required: bool | None = None

    def declares_expectation(self) -> bool:
        return bool(
            self.expected_menu_options
            or self.expected_quick_replies
            or self.expected_interactive_elements
            or self.content_intent
        )


class CardMetadata(Metadata):
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    buttons: list[Action] | None = None


class MenuMetadata(Metadata):
    options: list[Action] | None = None


class MultiselectMenuMetadata(MenuMetadata):
    allow_multiple: bool | None = None
    min_selections: int | None = None
    max_selections: int | None = None


class ImageMetadata(Metadata):
    image_url: str | None = None
    title: str | None = None
    alt: str | None = None


class QuickRepliesMetadata(Metadata):
    quick_replies: list[Any] | None = None


class FormMetadata(Metadata):
    form_fields: list[FormField] | None = None
    submit_button: Action | None = None


class TableMetadata(Metadata):
    columns: list[Any] | None = None
    rows: list[Any] | None = None


class RatingMetadata(Metadata):
    min_value: float | None = None
    max_value: float | None = None
    step: float | None = None
    rating_type: str | None = None


# ---------------------------------------------------------------------------
# Bubbles
# ---------------------------------------------------------------------------

class BaseBubble(_WireModel):
    message_type: str
    content: str
    metadata: Metadata = Field(default_factory=Metadata)

    @field_validator("metadata", mode="before")
    @classmethod
    def _missing_metadata(cls, value):
        return {} if value is None else value

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextBubble(BaseBubble):
    message_type: Literal["text"] = "text"


class CardBubble(BaseBubble):
    message_type: Literal["card"] = "card"
    metadata: CardMetadata = Field(default_factory=CardMetadata)


class MenuBubble(BaseBubble):
    message_type: Literal["menu"] = "menu"
    metadata: MenuMetadata = Field(default_factory=MenuMetadata)


class MultiselectMenuBubble(BaseBubble):
    message_type: Literal["multiselect_menu"] = "multiselect_menu"
    metadata: MultiselectMenuMetadata = Field(
        default_factory=MultiselectMenuMetadata
    )


class ImageBubble(BaseBubble):
    message_type: Literal["image"] = "image"
    metadata: ImageMetadata = Field(default_factory=ImageMetadata)


class QuickRepliesBubble(BaseBubble):
    message_type: Literal["quickReplies"] = "quickReplies"
    metadata: QuickRepliesMetadata = Field(default_factory=QuickRepliesMetadata)


class FormBubble(BaseBubble):
    message_type: Literal["form"] = "form"
    metadata: FormMetadata = Field(default_factory=FormMetadata)


class TableBubble(BaseBubble):
    message_type: Literal["table"] = "table"
    metadata: TableMetadata = Field(default_factory=TableMetadata)


class SystemBubble(BaseBubble):
    message_type: Literal["system"] = "system"


class RatingBubble(BaseBubble):
    message_type: Literal["rating"] = "rating"
    metadata: RatingMetadata = Field(default_factory=RatingMetadata)


class OtherBubble(BaseBubble):
    """Any ``messageType`` this package does not know about."""


_VARIANTS: dict[str, type[BaseBubble]] = {
    "text": TextBubble,
    "card": CardBubble,
    "menu": MenuBubble,
    "multiselect_menu": MultiselectMenuBubble,
    "image": ImageBubble,
    "quickReplies": QuickRepliesBubble,
    "form": FormBubble,
    "table": TableBubble,
    "system": SystemBubble,
    "rating": RatingBubble,
}

MESSAGE_TYPES = tuple(_VARIANTS)


def _bubble_tag(value: Any) -> str:
    if isinstance(value, dict):
        message_type = value.get("messageType", value.get("message_type"))
    else:
        message_type = getattr(value, "message_type", None)
    return message_type if message_type in _VARIANTS else "other"


Bubble = Annotated[
    Union[
        Annotated[TextBubble, Tag("text")],
        Annotated[CardBubble, Tag("card")],
        Annotated[MenuBubble, Tag("menu")],
        Annotated[MultiselectMenuBubble, Tag("multiselect_menu")],
        Annotated[ImageBubble, Tag("image")],
        Annotated[QuickRepliesBubble, Tag("quickReplies")],
        Annotated[FormBubble, Tag("form")],
        Annotated[TableBubble, Tag("table")],
        Annotated[SystemBubble, Tag("system")],
        Annotated[RatingBubble, Tag("rating")],
        Annotated[OtherBubble, Tag("other")],
    ],
    Discriminator(_bubble_tag),
]

BUBBLE_ADAPTER: TypeAdapter[Bubble] = TypeAdapter(Bubble)


class ResponseDocument(_WireModel):
    bubbles: list[Bubble] = Field(min_length=1)

    def to_wire(self) -> dict:
        return {"bubbles": [b.to_wire() for b in self.bubbles]}


def text_bubble(content: str) -> TextBubble:
    return TextBubble(content=content)
