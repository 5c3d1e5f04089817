from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from openai import AsyncOpenAI
import os
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Text of a non-streaming completion plus what the backend reported."""

    content: str | None
    usage: Any = None
    model: str | None = None


class ModelProvider:
    """Generative backend used by the streamer.

    ``open_stream`` is awaited to create the stream (this is where
    connection errors surface) and returns an async iterator of text
    deltas.  ``complete`` issues one non-streaming request.
    """

    name = "unknown"

    async def open_stream(
            self,
            model: str,
            messages: list[dict],
            temperature: float | None = None,
            max_tokens: int | None = None,
            response_format: dict | None = None,
    ) -> AsyncIterator[str]:
        raise NotImplementedError

    async def complete(
            self,
            model: str,
            messages: list[dict],
            temperature: float | None = None,
            max_tokens: int | None = None,
            response_format: dict | None = None,
    ) -> CompletionResult:
        raise NotImplementedError


class OpenAICompatibleProvider(ModelProvider):
    """Any endpoint that speaks the OpenAI chat completions API."""

    name = "openai_compatible"
    max_tokens_param = "max_completion_tokens"

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            timeout: float = 180.0,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        # Retries are owned by the streamer.
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "DUMMY",
            max_retries=0,
            timeout=timeout,
        )

    def _request_kwargs(
            self, model, messages, temperature, max_tokens, response_format,
    ) -> dict:
        kwargs: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs[self.max_tokens_param] = max_tokens
        if response_format is not None:
            kwargs["response_format"] = response_format
        return kwargs

    async def open_stream(
            self,
            model: str,
            messages: list[dict],
            temperature: float | None = None,
            max_tokens: int | None = None,
            response_format: dict | None = None,
    ) -> AsyncIterator[str]:
        kwargs = self._request_kwargs(
            model, messages, temperature, max_tokens, response_format,
        )
        stream = await self.client.chat.completions.create(stream=True, **kwargs)
        return self._deltas(stream)

    async def _deltas(self, stream) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        finally:
            await stream.close()

    async def complete(
            self,
            model: str,
            messages: list[dict],
            temperature: float | None = None,
            max_tokens: int | None = None,
            response_format: dict | None = None,
    ) -> CompletionResult:
        kwargs = self._request_kwargs(
            model, messages, temperature, max_tokens, response_format,
        )
        response = await self.client.chat.completions.create(**kwargs)
        return CompletionResult(
            content=response.choices[0].message.content,
            usage=getattr(response, "usage", None),
            model=getattr(response, "model", None),
        )


class OpenAIProvider(OpenAICompatibleProvider):

    name = "openai"

    def __init__(self, api_key: str | None = None, timeout: float = 600.0):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        super().__init__(api_key=api_key, timeout=timeout)


class OpenRouter(OpenAICompatibleProvider):

    name = "openrouter"

    def __init__(self, api_key: str | None = None, timeout: float = 180.0):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        super().__init__(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
            timeout=timeout,
        )


class VLLMProvider(OpenAICompatibleProvider):

    name = "vllm"
    max_tokens_param = "max_tokens"

    def __init__(self, url: str, port: int):
        super().__init__(base_url=f"http://{url}:{port}/v1")
