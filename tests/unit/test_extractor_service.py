"""Unit tests for the intent extractor.

Covers rule ordering, clarification data, the text-model fallback and
per-session follow-up handling.
"""

import json

import pytest

from mapviz.models import ExtractionResult, IntentType, Location, TravelMode
from mapviz.services.extractor import (
    ConversationContext,
    IntentExtractor,
    add_clarification,
    alternatives_for,
    looks_like_prompt_echo,
)
from mapviz.services.llm import LLMService, MockLLMService

COMPLEX_QUERY = "What are the best places for ancient history around the Mediterranean?"


class FakeLLMService(LLMService):
    """Returns a fixed payload, or raises if given an exception."""

    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self._payload = payload
        self._error = error
        self._timeout = 1.0
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "Fake"

    async def _generate(self, prompt, timeout=None, system=None) -> str:
        self.calls += 1
        if self._error:
            raise self._error
        return json.dumps(self._payload)


class TestRules:
    """Tests for the rule chain."""

    def setup_method(self) -> None:
        self.extractor = IntentExtractor()

    @pytest.mark.asyncio
    async def test_x_to_y(self) -> None:
        result = await self.extractor.extract("Paris to London")
        assert result.intent_type == IntentType.ROUTE
        assert [loc.name for loc in result.locations] == ["Paris", "London"]
        assert result.source == "x_to_y"
        assert result.needs_clarification is False
        assert result.confidence == 0.95

    @pytest.mark.asyncio
    async def test_from_chain_keeps_order(self) -> None:
        result = await self.extractor.extract("From Boston to Hartford to Albany")
        assert result.source == "from_to_chain"
        assert result.suggested_sequence == ["Boston", "Hartford", "Albany"]

    @pytest.mark.asyncio
    async def test_intercontinental_pair(self) -> None:
        result = await self.extractor.extract("New York to Paris")
        assert result.source == "intercontinental_pair"
        assert [loc.name for loc in result.locations] == ["New York", "Paris"]

    @pytest.mark.asyncio
    async def test_route_from_to_with_mode(self) -> None:
        result = await self.extractor.extract("Cycling route from Amsterdam to Utrecht")
        assert result.source == "route_from_to"
        assert result.travel_mode == TravelMode.CYCLING

    @pytest.mark.asyncio
    async def test_show_me_single_is_locations(self) -> None:
        result = await self.extractor.extract("show me Tokyo")
        assert result.intent_type == IntentType.LOCATIONS
        assert result.source == "show_me"
        assert result.needs_clarification is False

    @pytest.mark.asyncio
    async def test_show_me_list_is_route(self) -> None:
        result = await self.extractor.extract("show me Paris, London and Rome")
        assert result.intent_type == IntentType.ROUTE
        assert result.suggested_sequence == ["Paris", "London", "Rome"]

    @pytest.mark.asyncio
    async def test_informational(self) -> None:
        result = await self.extractor.extract("famous sites in Kyoto")
        assert result.intent_type == IntentType.LOCATIONS
        assert [loc.name for loc in result.locations] == ["Kyoto"]
        assert result.source == "informational"

    @pytest.mark.asyncio
    async def test_entity_types_applied(self) -> None:
        result = await self.extractor.extract("Paris to Mount Blanc")
        assert result.locations[0].entity_type.value == "majorCity"
        assert result.locations[1].entity_type.value == "naturalFeature"

    @pytest.mark.asyncio
    async def test_known_places(self) -> None:
        result = await self.extractor.extract("i miss tokyo")
        assert result.source == "known_places"
        assert [loc.name for loc in result.locations] == ["Tokyo"]

    @pytest.mark.asyncio
    async def test_default_locations(self) -> None:
        result = await self.extractor.extract("hello there")
        assert result.source == "default"
        assert [loc.name for loc in result.locations] == ["New York", "Los Angeles", "Chicago"]

    @pytest.mark.asyncio
    async def test_empty_query_raises(self) -> None:
        with pytest.raises(ValueError):
            await self.extractor.extract("   ")


class TestClarification:
    """Tests for ambiguity detection."""

    def test_ambiguous_name(self) -> None:
        result = ExtractionResult(
            intent_type=IntentType.ROUTE,
            locations=[Location(name="Portland"), Location(name="Seattle")],
        )
        flagged = add_clarification(result, "Portland to Seattle")
        assert flagged.needs_clarification is True
        assert flagged.confidence == 0.7
        assert flagged.clarification.type == "ambiguousLocations"
        assert flagged.clarification.alternatives == ["Portland, Oregon, USA", "Portland, Maine, USA"]

    def test_ambiguous_intent(self) -> None:
        result = ExtractionResult(locations=[Location(name="Paris"), Location(name="Rome")])
        flagged = add_clarification(result, "find Paris and Rome")
        assert flagged.clarification.type == "ambiguousIntent"
        assert flagged.clarification.options == ["Show as route", "Show as separate locations"]

    def test_single_location_never_asks_about_intent(self) -> None:
        result = ExtractionResult(locations=[Location(name="Paris")])
        assert add_clarification(result, "Paris").needs_clarification is False

    def test_skip_flag(self) -> None:
        result = ExtractionResult(
            locations=[Location(name="Springfield"), Location(name="York")],
            skip_clarification=True,
        )
        flagged = add_clarification(result, "show me Springfield and York")
        assert flagged.needs_clarification is False
        assert flagged.confidence == 0.95

    def test_short_name_alternatives(self) -> None:
        assert alternatives_for("Ely")[:3] == ["Ely City", "Ely, USA", "Ely, Europe"]
        assert alternatives_for("") == []


class TestModelFallback:
    """Tests for the text-model step of the rule chain."""

    @pytest.mark.asyncio
    async def test_model_result_used_for_complex_query(self) -> None:
        llm = FakeLLMService({
            "intentType": "locations",
            "locations": [{"name": "Rome", "timeContext": "Ancient"}, "Athens"],
            "visualizationType": "historical",
            "message": "Ancient sites",
        })
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert llm.calls == 1
        assert result.source == "llm"
        assert [loc.name for loc in result.locations] == ["Rome", "Athens"]
        assert result.locations[0].time_context == "Ancient"
        assert result.visualization_type.value == "historical"

    @pytest.mark.asyncio
    async def test_model_failure_falls_through(self) -> None:
        llm = FakeLLMService(error=RuntimeError("boom"))
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert llm.calls == 1
        assert result.source == "paragraph"
        assert [loc.name for loc in result.locations] == ["Mediterranean"]

    @pytest.mark.asyncio
    async def test_mock_provider_is_skipped(self) -> None:
        result = await IntentExtractor(llm=MockLLMService()).extract(COMPLEX_QUERY)
        assert result.source == "paragraph"

    @pytest.mark.asyncio
    async def test_simple_query_skips_model(self) -> None:
        llm = FakeLLMService({"locations": ["Nowhere"]})
        await IntentExtractor(llm=llm).extract("Paris to London")
        assert llm.calls == 0

    @pytest.mark.asyncio
    async def test_prompt_echo_is_ignored(self) -> None:
        llm = FakeLLMService({
            "intentType": "route",
            "locations": [{"name": "Boston"}, {"name": "New York"}],
            "message": "Creating a route from Boston to New York",
        })
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert result.source == "paragraph"

    @pytest.mark.asyncio
    async def test_non_list_locations_fall_through(self) -> None:
        for locations in (5, "Rome, Athens", {"name": "Rome"}):
            llm = FakeLLMService({"intentType": "locations", "locations": locations})
            result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
            assert llm.calls == 1
            assert result.source == "paragraph"
            assert [loc.name for loc in result.locations] == ["Mediterranean"]

    @pytest.mark.asyncio
    async def test_non_list_sequence_defaults_to_locations(self) -> None:
        llm = FakeLLMService({
            "intentType": "route",
            "locations": ["Rome", "Athens"],
            "suggestedSequence": "Athens, Rome",
        })
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert result.source == "llm"
        assert result.suggested_sequence == ["Rome", "Athens"]

    @pytest.mark.asyncio
    async def test_non_list_preferences_ignored(self) -> None:
        llm = FakeLLMService({"locations": ["Rome"], "preferences": "scenic"})
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert result.source == "llm"
        assert "scenic" not in result.preferences
        assert all(len(p) > 1 for p in result.preferences)

    @pytest.mark.asyncio
    async def test_non_string_names_dropped(self) -> None:
        llm = FakeLLMService({
            "locations": [{"name": 5}, {"name": None}, 42, {"name": "Carthage"}],
        })
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert result.source == "llm"
        assert [loc.name for loc in result.locations] == ["Carthage"]

    @pytest.mark.asyncio
    async def test_bad_enum_types_use_defaults(self) -> None:
        llm = FakeLLMService({
            "intentType": ["route"],
            "locations": ["Rome"],
            "visualizationType": {"kind": "satellite"},
        })
        result = await IntentExtractor(llm=llm).extract(COMPLEX_QUERY)
        assert result.intent_type == IntentType.LOCATIONS
        assert result.visualization_type.value == "both"

    def test_echo_detection_tolerates_malformed_locations(self) -> None:
        assert not looks_like_prompt_echo({"locations": "Boston, New York"}, "Rome")
        assert not looks_like_prompt_echo({"locations": [{"name": 1}, None]}, "Rome")

    def test_echo_detection(self) -> None:
        data = {"locations": [{"name": "Boston"}, {"name": "New York"}], "message": ""}
        assert looks_like_prompt_echo(data, "ancient places in Greece")
        assert not looks_like_prompt_echo(data, "Boston to New York please")
        assert looks_like_prompt_echo({"message": "route avoiding highways"}, "Rome")


class TestConversationContext:
    """Tests for per-session follow-ups."""

    def setup_method(self) -> None:
        self.extractor = IntentExtractor()

    @pytest.mark.asyncio
    async def test_addition_extends_route(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        result = await self.extractor.extract_with_context("and Rome", "s1")
        assert result.intent_type == IntentType.ROUTE
        assert [loc.name for loc in result.locations] == ["Paris", "Berlin", "Rome"]
        assert result.source == "context"
        assert result.message == "Continuing route with Rome"

    @pytest.mark.asyncio
    async def test_continuation_starts_from_last_stop(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        result = await self.extractor.extract_with_context("then Prague", "s1")
        assert result.suggested_sequence == ["Paris", "Berlin", "Prague"]

    @pytest.mark.asyncio
    async def test_reference_resolves_to_previous_stops(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        result = await self.extractor.extract_with_context("show me there", "s1")
        assert result.intent_type == IntentType.ROUTE
        assert [loc.name for loc in result.locations] == ["Paris", "Berlin"]
        assert self.extractor.get_context("s1").last_query == "show me there"

    def test_reference_rewrite_on_word_boundaries(self) -> None:
        context = ConversationContext(
            last_query="Paris to Berlin",
            last_locations=[Location(name="Paris"), Location(name="Berlin")],
            last_intent=IntentType.ROUTE,
        )
        rewritten = self.extractor._rewrite_follow_up("what about there", context)
        assert rewritten == "what about Paris and Berlin"
        assert self.extractor._rewrite_follow_up("Thereford", context) == "Thereford"

    def test_reference_rewrite_keeps_names_literal(self) -> None:
        context = ConversationContext(
            last_query="show me C:\\Maps",
            last_locations=[Location(name="C:\\Maps"), Location(name="Rome \\1")],
        )
        rewritten = self.extractor._rewrite_follow_up("show me there", context)
        assert rewritten == "show me C:\\Maps and Rome \\1"

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        result = await self.extractor.extract_with_context("and Rome", "s2")
        assert result.source != "context"
        assert self.extractor.get_context("s2").turn_count == 1
        assert self.extractor.get_context("s1").turn_count == 1

    @pytest.mark.asyncio
    async def test_context_records_last_turn(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        context = self.extractor.get_context("s1")
        assert context.last_query == "Paris to Berlin"
        assert context.last_intent == IntentType.ROUTE
        assert [loc.name for loc in context.last_locations] == ["Paris", "Berlin"]

    @pytest.mark.asyncio
    async def test_reset_context(self) -> None:
        await self.extractor.extract_with_context("Paris to Berlin", "s1")
        self.extractor.reset_context("s1")
        assert self.extractor.get_context("s1").last_query is None

    @pytest.mark.asyncio
    async def test_without_session_is_stateless(self) -> None:
        result = await self.extractor.extract_with_context("Paris to London")
        assert result.source == "x_to_y"
