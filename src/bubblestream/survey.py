"""Survey question contracts and the validator that enforces them.

When a session has an active survey whose current question offers fixed
choices, the turn must contain a choice bubble that matches the question:
the right menu type, the same number of options, and option texts that
still resemble the configured ones.  Rating questions must produce a
``rating`` bubble with the configured range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from bubblestream.bubbles import (
    CHOICE_TYPES,
    MultiselectMenuBubble,
    RatingBubble,
    ResponseDocument,
)
from bubblestream.validation import ValidationResult

logger = logging.getLogger(__name__)

VALID_RATING_TYPES = ("stars", "numbers", "scale")

QuestionType = Literal["single_choice", "multiple_choice", "rating"]
ExpectedType = Literal["menu", "multiselect_menu", "rating"]


class SurveyOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str


class SurveyQuestion(BaseModel):
    """A survey question as configured by the survey owner."""

    question_type: QuestionType
    text: str = ""
    options: list[SurveyOption] = Field(default_factory=list)
    min_selections: int | None = None
    max_selections: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    step: float | None = None
    rating_type: str | None = None


class SurveyQuestionContext(BaseModel):
    """The contract the current turn has to satisfy.

    Supplied once per request by a :class:`SurveyContextProvider` and
    treated as read-only.
    """

    model_config = ConfigDict(frozen=True)

    question_index: int
    question_type: QuestionType
    expected_menu_type: ExpectedType
    expected_option_count: int = 0
    expected_options: list[SurveyOption] = Field(default_factory=list)
    min_selections: int | None = None
    max_selections: int | None = None
    expected_min_value: float | None = None
    expected_max_value: float | None = None
    expected_step: float | None = None
    expected_rating_type: str | None = None
    question_text: str = ""
    active: bool = True

    @classmethod
    def from_question(
        cls, question: SurveyQuestion, question_index: int, active: bool = True,
    ) -> SurveyQuestionContext:
        options = [
            SurveyOption(id=o.id or f"option{i + 1}", text=o.text)
            for i, o in enumerate(question.options)
        ]
        base = dict(
            question_index=question_index,
            question_type=question.question_type,
            question_text=question.text,
            active=active,
        )
        if question.question_type == "rating":
            return cls(
                **base,
                expected_menu_type="rating",
                expected_min_value=question.min_value or 1,
                expected_max_value=question.max_value or 5,
                expected_step=question.step or 1,
                expected_rating_type=question.rating_type or "stars",
            )
        if question.question_type == "multiple_choice":
            return cls(
                **base,
                expected_menu_type="multiselect_menu",
                expected_option_count=len(options),
                expected_options=options,
                min_selections=question.min_selections or 1,
                max_selections=question.max_selections or len(options),
            )
        return cls(
            **base,
            expected_menu_type="menu",
            expected_option_count=len(options),
            expected_options=options,
        )

    @property
    def question_number(self) -> int:
        return self.question_index + 1

    def requires_validation(self) -> bool:
        if not self.active:
            return False
        if self.expected_menu_type == "rating":
            return True
        return self.expected_option_count > 0

    def description(self) -> str:
        if self.expected_menu_type == "rating":
            return (
                f"is a rating question ({self.expected_min_value:g}-"
                f"{self.expected_max_value:g} {self.expected_rating_type})"
            )
        kind = "multiple-choice" if self.expected_menu_type == "multiselect_menu" else "single-choice"
        return f"has {self.expected_option_count} {kind} options"


# ---------------------------------------------------------------------------
# Context providers
# ---------------------------------------------------------------------------

class SurveyContextProvider:
    """Looks up the survey contract for a session.

    The base implementation never has an active survey.  Subclass it to
    read survey state from your own storage.
    """

    async def get_active_survey_context(
        self, session_id: str,
    ) -> SurveyQuestionContext | None:
        return None


class StaticSurveyContextProvider(SurveyContextProvider):
    """Serves fixed contexts keyed by session id."""

    def __init__(self, contexts: dict[str, SurveyQuestionContext] | None = None):
        self.contexts = dict(contexts or {})

    async def get_active_survey_context(
        self, session_id: str,
    ) -> SurveyQuestionContext | None:
        return self.contexts.get(session_id)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass
class SurveyValidationResult(ValidationResult):
    context: SurveyQuestionContext | None = None
    detected_type: str | None = None

    validator_name = "survey"

    def describe(self) -> str:
        ctx = self.context
        if ctx is None:
            return (
                "\n\nIMPORTANT: The previous response had validation issues. "
                "Please ensure your response follows the exact JSON schema format.\n"
            )

        text = "\n\nCRITICAL VALIDATION REQUIREMENTS - MANDATORY COMPLIANCE:\n"
        n = ctx.question_number
        if ctx.expected_menu_type == "menu":
            text += (
                f"- QUESTION {n} REQUIRES SINGLE-CHOICE MENU: You MUST generate a bubble "
                f'with messageType: "menu"\n'
                f"- REQUIRED: {ctx.expected_option_count} menu options in metadata.options array\n"
                '- EACH OPTION MUST HAVE: {id: "unique_id", text: "option text", '
                'action: "send_message"}\n'
            )
        elif ctx.expected_menu_type == "multiselect_menu":
            text += (
                f"- QUESTION {n} REQUIRES MULTIPLE-CHOICE MENU: You MUST generate a bubble "
                f'with messageType: "multiselect_menu"\n'
                f"- REQUIRED: {ctx.expected_option_count} menu options in metadata.options array\n"
                "- REQUIRED: metadata.allowMultiple: true\n"
                f"- REQUIRED: metadata.minSelections ({ctx.min_selections}) and "
                f"metadata.maxSelections ({ctx.max_selections}) as numbers\n"
                '- EACH OPTION MUST HAVE: {id: "unique_id", text: "option text", '
                'action: "send_message"}\n'
            )
        else:
            text += (
                f"- QUESTION {n} REQUIRES RATING: You MUST generate a bubble with "
                f'messageType: "rating"\n'
                f"- REQUIRED: metadata.minValue: {ctx.expected_min_value:g}\n"
                f"- REQUIRED: metadata.maxValue: {ctx.expected_max_value:g}\n"
                f'- REQUIRED: metadata.ratingType: "{ctx.expected_rating_type}"\n'
            )
            if ctx.expected_step:
                text += f"- REQUIRED: metadata.step: {ctx.expected_step:g}\n"

        if ctx.expected_options:
            texts = ", ".join(f'"{o.text}"' for o in ctx.expected_options)
            text += f"- EXPECTED OPTION TEXTS: {texts}\n"

        text += self._errors_block("PREVIOUS ERRORS TO FIX:")
        if self.detected_type and self.detected_type != ctx.expected_menu_type:
            text += (
                f'\nDETECTED BUBBLE HAD: messageType "{self.detected_type}" '
                f'(should be "{ctx.expected_menu_type}")\n'
            )
        return text


def _fuzzy_match(expected: str, actual: str) -> bool:
    return expected in actual or actual in expected


def _selection_errors(bubble) -> list[str]:
    if not isinstance(bubble, MultiselectMenuBubble):
        return [
            "Multiselect menu missing allowMultiple: true",
            "Multiselect menu missing minSelections number",
            "Multiselect menu missing maxSelections number",
        ]
    meta = bubble.metadata
    errors = []
    if meta.allow_multiple is not True:
        errors.append("Multiselect menu missing allowMultiple: true")
    if meta.min_selections is None:
        errors.append("Multiselect menu missing minSelections number")
    if meta.max_selections is None:
        errors.append("Multiselect menu missing maxSelections number")
    return errors


class SurveyMenuValidator:
    """Checks a response against the active survey question."""

    def validate(
        self,
        document: ResponseDocument,
        context: SurveyQuestionContext | None,
    ) -> SurveyValidationResult:
        if context is None or not context.requires_validation():
            return SurveyValidationResult()

        if context.expected_menu_type == "rating":
            return self._validate_rating(document, context)
        return self._validate_choice(document, context)

    def _fail(
        self, context: SurveyQuestionContext, errors: list[str], detected_type: str | None = None,
    ) -> SurveyValidationResult:
        logger.warning(
            f"Survey Q{context.question_number} {context.expected_menu_type} "
            f"validation failed: {errors}"
        )
        return SurveyValidationResult(
            is_valid=False,
            errors=errors,
            needs_regeneration=True,
            context=context,
            detected_type=detected_type,
        )

    def _validate_choice(
        self, document: ResponseDocument, context: SurveyQuestionContext,
    ) -> SurveyValidationResult:
        choices = [b for b in document.bubbles if b.message_type in CHOICE_TYPES]
        if not choices:
            return self._fail(context, [
                f"Missing choice bubble (menu or multiselect_menu) for question "
                f"{context.question_number} with {context.expected_option_count} options"
            ])

        bubble = choices[0]
        errors: list[str] = []
        if bubble.message_type != context.expected_menu_type:
            errors.append(
                f"Expected {context.expected_menu_type} but got {bubble.message_type}"
            )

        options = bubble.metadata.options
        if options is None:
            errors.append("Menu bubble missing options array in metadata")
            return self._fail(context, errors, bubble.message_type)

        if len(options) != context.expected_option_count:
            errors.append(
                f"Expected {context.expected_option_count} options but got {len(options)}"
            )

        for i, option in enumerate(options, start=1):
            for key in ("id", "text", "action"):
                if not getattr(option, key):
                    errors.append(f"Option {i} missing {key} field")

        actual_texts = [o.text.lower().strip() for o in options if o.text.strip()]
        missing = [
            o.text for o in context.expected_options
            if not any(_fuzzy_match(o.text.lower().strip(), a) for a in actual_texts)
        ]
        if missing:
            errors.append(f"Missing or modified option texts: {', '.join(missing)}")

        if context.expected_menu_type == "multiselect_menu":
            errors.extend(_selection_errors(bubble))

        if errors:
            return self._fail(context, errors, bubble.message_type)

        logger.info(
            f"Survey Q{context.question_number} produced a valid "
            f"{context.expected_menu_type} bubble"
        )
        return SurveyValidationResult(context=context, detected_type=bubble.message_type)

    def _validate_rating(
        self, document: ResponseDocument, context: SurveyQuestionContext,
    ) -> SurveyValidationResult:
        ratings = [b for b in document.bubbles if isinstance(b, RatingBubble)]
        if not ratings:
            return self._fail(context, [
                f"Missing rating bubble for question {context.question_number}, "
                f"which {context.description()}"
            ])

        meta = ratings[0].metadata
        errors: list[str] = []
        if meta.min_value is None:
            errors.append("Rating bubble missing minValue number")
        elif meta.min_value != context.expected_min_value:
            errors.append(
                f"Expected minValue {context.expected_min_value:g} but got {meta.min_value:g}"
            )
        if meta.max_value is None:
            errors.append("Rating bubble missing maxValue number")
        elif meta.max_value != context.expected_max_value:
            errors.append(
                f"Expected maxValue {context.expected_max_value:g} but got {meta.max_value:g}"
            )

        if not meta.rating_type:
            errors.append("Rating bubble missing ratingType")
        elif meta.rating_type not in VALID_RATING_TYPES:
            errors.append(
                f"Invalid ratingType '{meta.rating_type}'. "
                f"Expected: {', '.join(VALID_RATING_TYPES)}"
            )
        elif meta.rating_type != context.expected_rating_type:
            errors.append(
                f"Expected ratingType '{context.expected_rating_type}' "
                f"but got '{meta.rating_type}'"
            )

        if meta.step is not None and context.expected_step and meta.step != context.expected_step:
            errors.append(f"Expected step {context.expected_step:g} but got {meta.step:g}")

        if (
            meta.min_value is not None
            and meta.max_value is not None
            and meta.min_value >= meta.max_value
        ):
            errors.append(
                f"Invalid rating range: minValue ({meta.min_value:g}) must be less "
                f"than maxValue ({meta.max_value:g})"
            )

        if errors:
            return self._fail(context, errors, "rating")
        return SurveyValidationResult(context=context, detected_type="rating")
