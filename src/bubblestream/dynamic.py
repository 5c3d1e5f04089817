"""Checks that a response delivers the interactive content it promises.

A text bubble that says "would you like to:" and then stops is the typical
failure: the model ran out of tokens, or forgot to emit the menu.  The
validator compares what the response declares (or what the
:class:`ExpectationPolicy` infers) against what it actually contains, and
looks for signs of truncation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from bubblestream.bubbles import (
    CHOICE_TYPES,
    INTERACTIVE_TYPES,
    CardBubble,
    FormBubble,
    QuickRepliesBubble,
    ResponseDocument,
)
from bubblestream.expectations import Expectation, ExpectationPolicy
from bubblestream.validation import ValidationResult

logger = logging.getLogger(__name__)

OVER_COUNT_RATIO = 1.5
TRUNCATION_SUFFIXES = ("...", "…", ",")


@dataclass(frozen=True)
class InteractiveCounts:
    menu_options: int = 0
    quick_replies: int = 0
    interactive_elements: int = 0

    @classmethod
    def of(cls, document: ResponseDocument) -> InteractiveCounts:
        menu_options = quick_replies = buttons = form_fields = 0
        for bubble in document.bubbles:
            if bubble.message_type in CHOICE_TYPES:
                menu_options += len(bubble.metadata.options or [])
            elif isinstance(bubble, QuickRepliesBubble):
                quick_replies += len(bubble.metadata.quick_replies or [])
            elif isinstance(bubble, CardBubble):
                buttons += len(bubble.metadata.buttons or [])
            elif isinstance(bubble, FormBubble):
                form_fields += len(bubble.metadata.form_fields or [])
        return cls(
            menu_options=menu_options,
            quick_replies=quick_replies,
            interactive_elements=menu_options + quick_replies + buttons + form_fields,
        )


@dataclass
class DynamicValidationResult(ValidationResult):
    expectation: Expectation = field(default_factory=Expectation)
    counts: InteractiveCounts = field(default_factory=InteractiveCounts)
    truncated: bool = False

    validator_name = "dynamic"

    def describe(self) -> str:
        exp = self.expectation
        text = "\n\nDYNAMIC CONTENT VALIDATION FAILED - REGENERATION REQUIRED:\n"
        if exp.content_intent:
            text += f"- CONTENT INTENT: {exp.content_intent}\n"
        if exp.expected_menu_options:
            text += (
                f"- REQUIRED: a menu bubble with exactly {exp.expected_menu_options} "
                f"options in metadata.options\n"
            )
        if exp.expected_quick_replies:
            text += (
                f"- REQUIRED: a quickReplies bubble with {exp.expected_quick_replies} "
                f"replies in metadata.quickReplies\n"
            )
        if exp.expected_interactive_elements and not (
            exp.expected_menu_options or exp.expected_quick_replies
        ):
            text += (
                f"- REQUIRED: at least {exp.expected_interactive_elements} interactive "
                f"elements (menu options, quick replies, buttons or form fields)\n"
            )
        text += (
            '- EACH MENU OPTION MUST HAVE: {id: "unique_id", text: "option text", '
            'action: "send_message"}\n'
        )
        if self.truncated:
            text += (
                "- The previous response was cut off. Keep the text short and "
                "finish every bubble.\n"
            )
        text += self._errors_block("ISSUES FOUND:")
        return text


class DynamicContentValidator:
    """Validates interactive content against declared or inferred expectations."""

    def __init__(self, policy: ExpectationPolicy | None = None):
        self.policy = policy or ExpectationPolicy()

    def validate(self, document: ResponseDocument) -> DynamicValidationResult:
        expectation = self.policy.resolve(document)
        counts = InteractiveCounts.of(document)
        result = DynamicValidationResult(expectation=expectation, counts=counts)

        self._check_counts(result)
        self._check_truncation(document, result)

        result.needs_regeneration = bool(result.errors)
        result.is_valid = not result.errors
        if result.errors:
            logger.warning(f"Dynamic content validation failed: {result.errors}")
        elif result.warnings:
            logger.info(f"Dynamic content warnings: {result.warnings}")
        return result

    def _check_counts(self, result: DynamicValidationResult) -> None:
        exp, counts = result.expectation, result.counts
        pairs = (
            ("menu options", exp.expected_menu_options, counts.menu_options),
            ("quick replies", exp.expected_quick_replies, counts.quick_replies),
            (
                "interactive elements",
                exp.expected_interactive_elements,
                counts.interactive_elements,
            ),
        )
        for label, expected, actual in pairs:
            if not expected:
                continue
            if actual == 0:
                result.errors.append(f"Expected {expected} {label} but none were found")
            elif actual < expected:
                result.errors.append(f"Expected {expected} {label} but got {actual}")
            elif actual > expected * OVER_COUNT_RATIO:
                result.warnings.append(
                    f"Expected {expected} {label} but got {actual}, more than expected"
                )

    def _check_truncation(
        self, document: ResponseDocument, result: DynamicValidationResult,
    ) -> None:
        bubbles = document.bubbles
        if not bubbles:
            result.errors.append("No bubbles in response")
            result.truncated = True
            return

        last = bubbles[-1].content.rstrip()
        if last.endswith(TRUNCATION_SUFFIXES):
            result.warnings.append("Last bubble appears to be cut off")
            result.truncated = True

        for i, bubble in enumerate(bubbles):
            if bubble.message_type in CHOICE_TYPES and not bubble.metadata.options:
                result.errors.append(
                    f"Bubble {i + 1} is a {bubble.message_type} with no options"
                )
                result.truncated = True
            elif isinstance(bubble, QuickRepliesBubble) and not bubble.metadata.quick_replies:
                result.errors.append(f"Bubble {i + 1} is quickReplies with no replies")
                result.truncated = True

        for i, bubble in enumerate(bubbles):
            if bubble.message_type != "text" or not self.policy.promises_choices(bubble.content):
                continue
            if not any(b.message_type in INTERACTIVE_TYPES for b in bubbles[i + 1:]):
                result.warnings.append(
                    f"Bubble {i + 1} promises choices but no interactive bubble follows"
                )
