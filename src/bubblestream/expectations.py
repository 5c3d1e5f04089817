"""What interactive content a response should contain.

A response can declare its own expectation through bubble metadata
(``expectedMenuOptions`` and friends).  When it does not, an
:class:`ExpectationPolicy` infers a conservative one from the wording of
the text bubbles.  The policy is a plain list of regex rules, so callers can
swap in their own phrases without touching the validator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Literal

from bubblestream.bubbles import BaseBubble, ResponseDocument


@dataclass(frozen=True)
class Expectation:
    expected_menu_options: int | None = None
    expected_quick_replies: int | None = None
    expected_interactive_elements: int | None = None
    content_intent: str | None = None
    completion_required: bool | None = None
    source: Literal["declared", "inferred"] = "inferred"

    @property
    def is_empty(self) -> bool:
        return not (
            self.expected_menu_options
            or self.expected_quick_replies
            or self.expected_interactive_elements
        )


@dataclass(frozen=True)
class ExpectationRule:
    """One phrase family that implies the model owes the user choices."""

    name: str
    pattern: re.Pattern
    intent: str
    expected_interactive_elements: int

    @classmethod
    def compile(
        cls, name: str, pattern: str, intent: str, expected_interactive_elements: int,
    ) -> ExpectationRule:
        return cls(
            name=name,
            pattern=re.compile(pattern, re.IGNORECASE | re.DOTALL),
            intent=intent,
            expected_interactive_elements=expected_interactive_elements,
        )

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


DEFAULT_RULES = (
    ExpectationRule.compile(
        "help_menu",
        r"here(?:'s| is) what i can help(?: you)? with\s*:\s*\Z",
        "help_menu",
        2,
    ),
    ExpectationRule.compile(
        "yes_no",
        r"\b(?:yes or no|yes/no)\b",
        "confirmation",
        2,
    ),
    # A question that ends by introducing its answers.
    ExpectationRule.compile(
        "enumerated_choice",
        r"\?.*:\s*\Z|would you like to\s*:\s*\Z",
        "menu_selection",
        3,
    ),
)


def declared_expectation(document: ResponseDocument) -> Expectation | None:
    """Return the first expectation a bubble declares in its metadata."""
    for bubble in document.bubbles:
        meta = bubble.metadata
        if meta.declares_expectation():
            return Expectation(
                expected_menu_options=meta.expected_menu_options,
                expected_quick_replies=meta.expected_quick_replies,
                expected_interactive_elements=meta.expected_interactive_elements,
                content_intent=meta.content_intent,
                completion_required=meta.completion_required,
                source="declared",
            )
    return None


@dataclass
class ExpectationPolicy:
    rules: tuple[ExpectationRule, ...] = field(default=DEFAULT_RULES)

    def matching_rule(self, text: str) -> ExpectationRule | None:
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def promises_choices(self, text: str) -> bool:
        return self.matching_rule(text) is not None

    def infer(self, bubbles: Iterable[BaseBubble]) -> Expectation:
        """Infer an expectation from the text bubbles of a response.

        Each text bubble is checked on its own; the first bubble with a
        matching rule wins.  An empty :class:`Expectation` means nothing is
        expected.
        """
        for bubble in bubbles:
            if bubble.message_type != "text":
                continue
            rule = self.matching_rule(bubble.content)
            if rule is not None:
                return Expectation(
                    expected_interactive_elements=rule.expected_interactive_elements,
                    content_intent=rule.intent,
                    source="inferred",
                )
        return Expectation()

    def resolve(self, document: ResponseDocument) -> Expectation:
        return declared_expectation(document) or self.infer(document.bubbles)
