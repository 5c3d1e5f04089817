"""Survey and dynamic-content enforcement through ResponseStreamer."""

import pytest

from bubblestream.events import CompleteEvent
from bubblestream.survey import StaticSurveyContextProvider, SurveyContextProvider

from tests.conftest import bubble_events, chunked, doc, menu, survey_context, text

CHANNELS = ("Friend", "Search engine", "Social media")


async def _collect(streamer, *args, **kwargs):
    return [e async for e in streamer.generate(*args, **kwargs)]


@pytest.fixture
def survey_streamer(make_streamer):
    def _make(**kwargs):
        provider = StaticSurveyContextProvider({"s1": survey_context(*CHANNELS)})
        return make_streamer(survey_provider=provider, **kwargs)
    return _make


# ---------------------------------------------------------------------------
# Survey contract
# ---------------------------------------------------------------------------

class TestSurveyContract:
    @pytest.mark.asyncio
    async def test_valid_menu_needs_no_regeneration(self, survey_streamer, mock_provider):
        mock_provider.streams = [chunked(doc(text("Quick question!"), menu("How?", *CHANNELS)), 9)]

        result = await survey_streamer().run("Hi", "s1")

        assert result.outcome == "validated"
        assert result.regenerated is False
        assert mock_provider.calls("complete") == []
        assert [b.message_type for b in result.bubbles] == ["text", "menu"]

    @pytest.mark.asyncio
    async def test_system_prompt_announces_the_survey(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(menu("How?", *CHANNELS))]]

        await survey_streamer().run("Hi", "s1")

        system = mock_provider.calls("stream")[0]["messages"][0]["content"]
        assert system.startswith("You are a helpful assistant.")
        assert "ACTIVE SURVEY" in system
        assert '"Search engine"' in system

    @pytest.mark.asyncio
    async def test_missing_menu_is_regenerated(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("How did you hear about us?"))]]
        mock_provider.completions = [
            doc(text("How did you hear about us?"), menu("Pick one", *CHANNELS)),
        ]

        events = await _collect(survey_streamer(), "Hi", "s1")

        bubbles = [e.bubble for e in bubble_events(events)]
        assert [b.message_type for b in bubbles] == ["text", "menu"]
        assert [o.text for o in bubbles[1].metadata.options] == list(CHANNELS)
        assert [e.index for e in bubble_events(events)] == [0, 1]
        result = events[-1].result
        assert result.outcome == "regenerated"
        assert result.regenerated is True
        assert len(mock_provider.calls("complete")) == 1

    @pytest.mark.asyncio
    async def test_regenerated_menu_alone_follows_streamed_text(self, make_streamer, mock_provider):
        surveys = StaticSurveyContextProvider({"s1": survey_context("Yes", "No")})
        mock_provider.streams = [[doc(text("How did you hear about us?"))]]
        mock_provider.completions = [doc(menu("Pick one", "Yes", "No"))]

        events = await _collect(make_streamer(survey_provider=surveys), "Hi", "s1")

        emitted = bubble_events(events)
        assert [e.bubble.message_type for e in emitted] == ["text", "menu"]
        assert [e.index for e in emitted] == [0, 1]
        assert [o.text for o in emitted[1].bubble.metadata.options] == ["Yes", "No"]
        assert events[-1].result.outcome == "regenerated"

    @pytest.mark.asyncio
    async def test_regenerated_document_resumes_where_it_diverges(
        self, survey_streamer, mock_provider,
    ):
        mock_provider.streams = [[doc(text("Hi there!"), text("One question."))]]
        mock_provider.completions = [
            doc(text("Hi there!"), text("Quick question:"), menu("Pick", *CHANNELS)),
        ]

        result = await survey_streamer().run("Hi", "s1")

        assert [b.content for b in result.bubbles] == [
            "Hi there!", "One question.", "Quick question:", "Pick",
        ]
        assert result.bubbles[-1].message_type == "menu"

    @pytest.mark.asyncio
    async def test_regeneration_prompt_describes_the_failure(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("How did you hear about us?"))]]
        mock_provider.completions = [doc(menu("Pick one", *CHANNELS))]

        await survey_streamer().run("Hi", "s1")

        system = mock_provider.calls("complete")[0]["messages"][0]["content"]
        assert "CRITICAL VALIDATION REQUIREMENTS" in system
        assert "Missing choice bubble (menu or multiselect_menu) for question 1 with 3 options" in system
        assert mock_provider.calls("complete")[0]["messages"][-1] == {
            "role": "user", "content": "Hi",
        }

    @pytest.mark.asyncio
    async def test_still_invalid_keeps_original_with_single_attempt(
        self, survey_streamer, mock_provider,
    ):
        mock_provider.streams = [[doc(text("How did you hear about us?"), text("Tell me."))]]
        mock_provider.completions = [doc(menu("Pick one", "Friend", "Other"))]

        events = await _collect(survey_streamer(), "Hi", "s1")

        assert [e.bubble.content for e in bubble_events(events)] == [
            "How did you hear about us?", "Tell me.",
        ]
        assert isinstance(events[-1], CompleteEvent)
        assert events[-1].result.outcome == "validated"
        assert events[-1].result.regenerated is True
        assert len(mock_provider.calls("complete")) == 1

    @pytest.mark.asyncio
    async def test_regeneration_backend_error_keeps_original(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("How did you hear about us?"))]]
        mock_provider.completions = [ConnectionError("down")]

        result = await survey_streamer().run("Hi", "s1")

        assert [b.content for b in result.bubbles] == ["How did you hear about us?"]
        assert result.outcome == "validated"

    @pytest.mark.asyncio
    async def test_other_sessions_are_not_checked(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("Hello!"))]]
        result = await survey_streamer().run("Hi", "s2")
        assert result.regenerated is False

    @pytest.mark.asyncio
    async def test_context_lookup_failure_means_no_survey(self, make_streamer, mock_provider):
        class BrokenSurveys(SurveyContextProvider):
            async def get_active_survey_context(self, session_id):
                raise RuntimeError("db down")

        mock_provider.streams = [[doc(text("Hello!"))]]
        result = await make_streamer(survey_provider=BrokenSurveys()).run("Hi", "s1")

        assert result.outcome == "validated"
        assert mock_provider.calls("complete") == []

    @pytest.mark.asyncio
    async def test_disconnect_before_regeneration_skips_it(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("How did you hear about us?"))]]
        mock_provider.completions = [doc(menu("Pick one", *CHANNELS))]
        checks = []

        async def is_disconnected():
            checks.append(1)
            return len(checks) >= 2

        events = await _collect(
            survey_streamer(), "Hi", "s1", is_disconnected=is_disconnected,
        )

        assert mock_provider.calls("complete") == []
        assert not any(isinstance(e, CompleteEvent) for e in events)


# ---------------------------------------------------------------------------
# Dynamic content
# ---------------------------------------------------------------------------

class TestDynamicContent:
    @pytest.mark.asyncio
    async def test_promised_menu_is_regenerated(self, make_streamer, mock_provider):
        mock_provider.streams = [[doc(text("Sure! Would you like to:"))]]
        mock_provider.completions = [
            doc(text("Sure! Would you like to:"), menu("Options", "Track", "Return", "Talk")),
        ]

        result = await make_streamer().run("Hi", "s1")

        assert result.outcome == "regenerated"
        assert [b.message_type for b in result.bubbles] == ["text", "menu"]
        system = mock_provider.calls("complete")[0]["messages"][0]["content"]
        assert "DYNAMIC CONTENT VALIDATION FAILED" in system

    @pytest.mark.asyncio
    async def test_survey_failure_takes_priority(self, survey_streamer, mock_provider):
        mock_provider.streams = [[doc(text("Would you like to:"))]]
        mock_provider.completions = [doc(menu("How?", *CHANNELS))]

        result = await survey_streamer().run("Hi", "s1")

        assert len(mock_provider.calls("complete")) == 1
        system = mock_provider.calls("complete")[0]["messages"][0]["content"]
        assert "CRITICAL VALIDATION REQUIREMENTS" in system
        assert "DYNAMIC CONTENT VALIDATION FAILED" not in system
        assert result.outcome == "regenerated"
