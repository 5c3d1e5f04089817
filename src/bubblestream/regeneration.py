"""One corrective, non-streaming retry of a response that failed validation."""

from __future__ import annotations

import logging
from collections.abc import Callable

from bubblestream.bubbles import ResponseDocument
from bubblestream.instrumentation import (
    completion_span,
    record_error,
    record_regeneration,
    record_usage,
    regeneration_span,
)
from bubblestream.message import Message, build_messages
from bubblestream.parser import ResponseParseError, parse_response
from bubblestream.provider import ModelProvider
from bubblestream.schema import MULTI_BUBBLE_RESPONSE_FORMAT
from bubblestream.validation import ValidationResult

logger = logging.getLogger(__name__)

CLOSING_NOTICE = (
    "\n\nGenerate a new response that fixes every issue listed above. "
    "Respond only with the JSON object."
)


class Regenerator:
    """Asks the backend once more, with the validation failure spelled out.

    The regenerated document is returned only when ``revalidate`` accepts
    it; every other outcome (backend error, empty content, unparseable or
    still-invalid response) returns ``None`` and the caller keeps the
    original.
    """

    def __init__(self, provider: ModelProvider):
        self.provider = provider

    async def regenerate(
        self,
        *,
        user_message: str,
        history: list[Message],
        system_prompt: str,
        config,
        failed: ValidationResult,
        revalidate: Callable[[ResponseDocument], ValidationResult],
    ) -> ResponseDocument | None:
        prompt = system_prompt + failed.describe() + CLOSING_NOTICE
        messages = build_messages(prompt, history, user_message)
        logger.info(f"Regenerating after {failed.validator_name} validation failure")

        async with regeneration_span(failed.validator_name) as regen:
            document = await self._request(messages, config)
            accepted = document is not None and self._accepts(document, revalidate)
            record_regeneration(regen, accepted)

        if not accepted:
            return None
        logger.info(f"Regeneration succeeded with {len(document.bubbles)} bubbles")
        return document

    async def _request(self, messages: list[dict], config) -> ResponseDocument | None:
        async with completion_span(
            self.provider.name, config.model, stream=False,
        ) as span:
            try:
                result = await self.provider.complete(
                    model=config.model,
                    messages=messages,
                    temperature=config.temperature,
                    max_tokens=config.max_tokens,
                    response_format=MULTI_BUBBLE_RESPONSE_FORMAT,
                )
            except Exception as e:
                record_error(span, e)
                logger.error(f"Regeneration request failed: {e}")
                return None
            record_usage(span, result.usage, result.model)

        if not result.content:
            logger.warning("Regeneration returned no content")
            return None
        try:
            return parse_response(result.content)
        except ResponseParseError as e:
            logger.warning(f"Regenerated response did not parse: {e}")
            return None

    def _accepts(self, document: ResponseDocument, revalidate) -> bool:
        check = revalidate(document)
        if not check.is_valid:
            logger.warning(
                f"Regenerated response still fails {check.validator_name} "
                f"validation: {check.errors}"
            )
        return check.is_valid
