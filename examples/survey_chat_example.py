"""Survey chat example: stream a multi-bubble reply to the terminal.

Demonstrates:
- Choosing a model provider from the command line
- Attaching an active survey question to a session
- Streaming BubbleEvents as they are released, one JSON line per event
- Waiting for background persistence with drain()

Usage:
    uv run --env-file=.env examples/survey_chat_example.py --provider openai --model gpt-4o-mini --trace
    uv run examples/survey_chat_example.py --provider vllm --url localhost:8000 --model Qwen/Qwen3-8B
"""

import argparse
import asyncio
import json
import uuid

from bubblestream import (
    InMemoryBubbleStore,
    Message,
    MessageRole,
    ModelProvider,
    OpenAIProvider,
    OpenRouter,
    ResponseConfig,
    ResponseStreamer,
    StaticSurveyContextProvider,
    SurveyQuestion,
    SurveyQuestionContext,
    VLLMProvider,
)
from bubblestream.survey import SurveyOption

PROVIDERS = {
    "openai": lambda url: OpenAIProvider(),
    "openrouter": lambda url: OpenRouter(),
    "vllm": lambda url: VLLMProvider(*url.split(":")),
}

SYSTEM_PROMPT = (
    "You are a friendly onboarding assistant for a coffee subscription. "
    "Answer in short chat bubbles and keep the conversation moving."
)


def make_provider(provider: str, url: str | None) -> ModelProvider:
    if provider == "vllm" and not url:
        raise SystemExit("--url is required for vllm provider")
    return PROVIDERS[provider](url)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from bubblestream import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


def referral_question() -> SurveyQuestionContext:
    question = SurveyQuestion(
        question_type="single_choice",
        text="How did you hear about us?",
        options=[
            SurveyOption(id="friend", text="A friend"),
            SurveyOption(id="search", text="Search engine"),
            SurveyOption(id="social", text="Social media"),
        ],
    )
    return SurveyQuestionContext.from_question(question, question_index=0)


async def main():
    parser = argparse.ArgumentParser(description="Survey chat")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--url", default=None)
    parser.add_argument("--no-survey", action="store_true")
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    if args.trace:
        setup_tracing("survey-chat")

    session_id = str(uuid.uuid4())
    surveys = {} if args.no_survey else {session_id: referral_question()}
    store = InMemoryBubbleStore()
    streamer = ResponseStreamer(
        provider=make_provider(args.provider, args.url),
        system_prompt=SYSTEM_PROMPT,
        survey_provider=StaticSurveyContextProvider(surveys),
        store=store,
    )
    config = ResponseConfig(model=args.model)
    history: list[Message] = []

    print("Survey chat (Ctrl-D to quit)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        reply = []
        async for event in streamer.generate(
            user_input, session_id, history=history, config=config,
        ):
            print(json.dumps(event.to_wire()))
            if event.type == "bubble":
                reply.append(event.bubble.content)

        history.append(Message(role=MessageRole.USER, content=user_input))
        history.append(
            Message(role=MessageRole.ASSISTANT, content="\n".join(reply))
        )
        print()

    await streamer.drain()
    print(f"Stored {len(store.bubbles(session_id))} bubbles.")


if __name__ == "__main__":
    asyncio.run(main())
