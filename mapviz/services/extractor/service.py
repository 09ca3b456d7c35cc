"""Natural-language query → ExtractionResult.

Rules run cheapest-first and the first match wins:

1. direct route patterns (city pairs, ``From A to B``, ``route from``, ``X to Y``)
2. ``show me A, B and C`` lists
3. informational queries about a single place
4. ``from X to Y`` anywhere in the text
5. general regex extraction (two or more names)
6. text model, only for complex queries and only with a real provider
7. paragraph extraction with time contexts
8. scan for well-known place names
9. a default set of US cities

Every result then gets a travel mode, preferences, entity types, and
clarification data. ``extract_with_context`` adds per-session follow-up
handling on top.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from mapviz.models import (
    Clarification,
    ExtractionResult,
    IntentType,
    LLMError,
    Location,
    TravelMode,
    VisualizationType,
)
from mapviz.services.llm import LLMService
from mapviz.utils.cache import LRUCache

from . import patterns

logger = logging.getLogger(__name__)

DEFAULT_LOCATIONS = ["New York", "Los Angeles", "Chicago"]

# Used by the short-name ambiguity check
CLARIFICATION_COMMON_CITIES = (
    "new york", "los angeles", "chicago", "houston", "paris", "london", "berlin",
    "tokyo", "sydney", "toronto", "rome", "madrid", "beijing", "moscow", "cairo",
    "rio", "dubai", "istanbul", "seoul", "bangkok", "delhi", "singapore",
)
AMBIGUOUS_NAMES = {
    "springfield", "washington", "portland", "franklin", "manchester",
    "york", "san jose", "san juan", "georgetown",
}
ALTERNATIVES = {
    "portland": ["Portland, Oregon, USA", "Portland, Maine, USA"],
    "springfield": [
        "Springfield, Illinois, USA",
        "Springfield, Massachusetts, USA",
        "Springfield, Missouri, USA",
    ],
    "manchester": ["Manchester, UK", "Manchester, New Hampshire, USA"],
    "york": ["York, UK", "New York, USA", "York, Pennsylvania, USA"],
    "washington": ["Washington, D.C., USA", "Washington State, USA"],
    "columbia": [
        "Columbia, South Carolina, USA",
        "Columbia, Missouri, USA",
        "District of Columbia, USA",
    ],
    "san jose": ["San Jose, California, USA", "San José, Costa Rica"],
}

CONFIDENCE_CLEAR = 0.95
CONFIDENCE_UNSURE = 0.7

FOLLOW_UP_ADDITION = re.compile(r"^(?:and|also|add|include|with|plus)\b", re.IGNORECASE)
FOLLOW_UP_CONTINUATION = re.compile(r"^(?:then|next|after that|from there)\b", re.IGNORECASE)
FOLLOW_UP_QUESTION = re.compile(r"^(?:what about|how about|what is|where is|show me)\b", re.IGNORECASE)
FOLLOW_UP_REFINEMENT = re.compile(r"^(?:but|instead|actually|rather)\b", re.IGNORECASE)
FOLLOW_UP_REFERENCE = re.compile(
    r"\b(?:there|it|that|this|those|these|the area|the city|the route)\b", re.IGNORECASE
)
_FOLLOW_UPS = (
    FOLLOW_UP_ADDITION,
    FOLLOW_UP_CONTINUATION,
    FOLLOW_UP_QUESTION,
    FOLLOW_UP_REFINEMENT,
    FOLLOW_UP_REFERENCE,
)


@dataclass
class ConversationContext:
    """What the previous turn of a session resolved to."""

    last_query: str | None = None
    last_locations: list[Location] = field(default_factory=list)
    last_intent: IntentType | None = None
    turn_count: int = 0


def alternatives_for(name: str) -> list[str]:
    """Suggestions to show next to an ambiguous place name."""
    if not name:
        return []
    key = name.lower()
    alternatives = list(ALTERNATIVES.get(key, []))
    if len(key) < 4:
        alternatives += [f"{name} City", f"{name}, USA", f"{name}, Europe"]
    if not alternatives:
        alternatives = [
            f"{name}, USA",
            f"{name}, Europe",
            f"{name} (the city)",
            f"{name} (the landmark)",
        ]
    return alternatives


def add_clarification(result: ExtractionResult, text: str) -> ExtractionResult:
    """Flag results that deserve a follow-up question and set confidence."""
    if result.skip_clarification:
        return result.model_copy(
            update={"needs_clarification": False, "clarification": None, "confidence": CONFIDENCE_CLEAR}
        )

    ambiguous: list[str] = []
    for loc in result.locations:
        name = loc.name.lower()
        if len(name) < 4 and not any(name in city for city in CLARIFICATION_COMMON_CITIES):
            ambiguous.append(loc.name)
        if name in AMBIGUOUS_NAMES:
            ambiguous.append(loc.name)

    has_show_me = re.match(r"^show\s+me\s+[^?]+", text, re.IGNORECASE) is not None
    ambiguous_intent = not has_show_me and (
        len(text) < 10
        or re.match(r"^(?:display|find|get)\b", text, re.IGNORECASE) is not None
        or len(result.locations) > 3
    )

    clarification = None
    if ambiguous:
        names = ", ".join(loc.name for loc in result.locations)
        clarification = Clarification(
            type="ambiguousLocations",
            message=f"I found these locations: {names}. Did you mean something else?",
            ambiguous_locations=ambiguous,
            alternatives=alternatives_for(ambiguous[0]),
        )
    elif ambiguous_intent and len(result.locations) >= 2:
        clarification = Clarification(
            type="ambiguousIntent",
            message="Should I show these as separate locations or create a route between them?",
            options=["Show as route", "Show as separate locations"],
        )

    return result.model_copy(
        update={
            "clarification": clarification,
            "needs_clarification": clarification is not None,
            "confidence": CONFIDENCE_UNSURE if clarification else CONFIDENCE_CLEAR,
        }
    )


def looks_like_prompt_echo(data: dict[str, Any], text: str) -> bool:
    """True when the model parroted the prompt example instead of reading the query."""
    message = data.get("message") if isinstance(data.get("message"), str) else ""
    names = [
        loc.get("name") if isinstance(loc, dict) else loc
        for loc in _list_field(data, "locations")
    ]
    names = [n for n in names if isinstance(n, str)]
    lower_text = text.lower()
    if "Boston to New York" in message:
        return True
    boston_and_new_york = any("Boston" in n for n in names) and any("New York" in n for n in names)
    if boston_and_new_york and "boston" not in lower_text:
        return True
    return "avoiding highways" in message and "avoid" not in lower_text


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    """A model reply field that should be a JSON array; anything else reads as empty."""
    value = data.get(key)
    return value if isinstance(value, list) else []


def _enum_or_default(enum_cls, value: Any, default):
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return default


class IntentExtractor:
    """Rule-based intent and location extraction with a text-model fallback.

    The model is consulted only for complex queries and only when a real
    provider is configured; any model failure falls through to the
    remaining rules.
    """

    def __init__(
        self,
        llm: LLMService | None = None,
        max_sessions: int = 1000,
        session_ttl_seconds: int = 3600,
    ) -> None:
        self._llm = llm
        self._contexts: LRUCache[ConversationContext] = LRUCache(
            max_size=max_sessions, ttl_seconds=session_ttl_seconds
        )

    # ── Result construction ───────────────────────────────────────────

    @staticmethod
    def _build(
        text: str,
        intent: IntentType,
        locations: list[Location] | list[str],
        message: str,
        source: str,
        sequence: list[str] | None = None,
        skip_clarification: bool = False,
    ) -> ExtractionResult:
        locs = [
            loc if isinstance(loc, Location) else Location(name=loc)
            for loc in locations
        ]
        locs = [
            loc.model_copy(update={"entity_type": patterns.classify_entity(loc.name)})
            for loc in locs
        ]
        return ExtractionResult(
            intent_type=intent,
            locations=locs,
            travel_mode=patterns.detect_travel_mode(text),
            preferences=patterns.detect_preferences(text),
            message=message,
            suggested_sequence=sequence if sequence is not None else [loc.name for loc in locs],
            source=source,
            skip_clarification=skip_clarification,
        )

    @staticmethod
    def _route_message(names: list[str]) -> str:
        return f"Showing route from {names[0]} to {names[-1]}"

    # ── Rules ─────────────────────────────────────────────────────────

    def _direct_route(self, text: str) -> ExtractionResult | None:
        normalized = patterns.strip_terminal_punctuation(text)

        pair = patterns.match_intercontinental_pair(normalized)
        if pair:
            return self._build(
                text, IntentType.ROUTE, pair,
                f"Showing intercontinental route from {pair[0]} to {pair[1]}",
                "intercontinental_pair",
            )

        for source, matcher in (
            ("from_to_chain", patterns.match_leading_from),
            ("route_from_to", patterns.match_route_from_to),
            ("x_to_y", patterns.match_whole_x_to_y),
        ):
            names = matcher(normalized)
            if names and len(names) >= 2:
                return self._build(text, IntentType.ROUTE, names, self._route_message(names), source)
        return None

    def _show_me(self, text: str) -> ExtractionResult | None:
        names = patterns.extract_show_me(text)
        if not names:
            return None
        if len(names) == 1:
            return self._build(
                text, IntentType.LOCATIONS, names, f"Showing location: {names[0]}", "show_me",
                skip_clarification=True,
            )
        return self._build(
            text, IntentType.ROUTE, names,
            f"Showing route following sequence: {' → '.join(names)}",
            "show_me",
            skip_clarification=True,
        )

    def _informational(self, text: str) -> ExtractionResult | None:
        place = patterns.detect_informational_query(text)
        if not place:
            return None
        return self._build(
            text, IntentType.LOCATIONS, [place], f"Showing information about: {place}", "informational"
        )

    def _simple_from_to(self, text: str) -> ExtractionResult | None:
        names = patterns.extract_simple_from_to(text)
        if not names:
            return None
        return self._build(text, IntentType.ROUTE, names, self._route_message(names), "simple_from_to")

    def _regex(self, text: str, names: list[str]) -> ExtractionResult | None:
        if len(names) < 2:
            return None
        if patterns.is_paragraph_text(text):
            return self._build(
                text, IntentType.LOCATIONS, names,
                f"Found several locations in this text: {', '.join(names)}",
                "regex",
            )
        return self._build(
            text, IntentType.ROUTE, names, f"Showing route between {' and '.join(names)}", "regex"
        )

    async def _model(self, text: str) -> ExtractionResult | None:
        if self._llm is None or self._llm.is_mock:
            logger.info("[NLP] No live text model, skipping model extraction")
            return None
        if not patterns.is_complex_query(text):
            return None

        logger.info(f"[NLP] Complex query, asking {self._llm.provider_name}")
        try:
            data = await self._llm.extract_structured(text)
        except LLMError as e:
            logger.warning(f"[NLP] Model extraction failed, falling back to patterns: {e}")
            return None

        if looks_like_prompt_echo(data, text):
            logger.info("[NLP] Model echoed the prompt example, ignoring it")
            return None

        locations: list[Location] = []
        for raw in _list_field(data, "locations"):
            if isinstance(raw, str) and raw.strip():
                locations.append(Location(name=raw.strip()))
            elif isinstance(raw, dict) and isinstance(raw.get("name"), str) and raw["name"].strip():
                time_context = raw.get("timeContext") or raw.get("time_context") or ""
                locations.append(
                    Location(name=raw["name"].strip(), time_context=str(time_context))
                )
        if not locations:
            logger.info("[NLP] Model returned no usable locations")
            return None

        sequence = [s for s in _list_field(data, "suggestedSequence") if isinstance(s, str) and s.strip()]
        result = self._build(
            text,
            _enum_or_default(IntentType, data.get("intentType"), IntentType.LOCATIONS),
            locations,
            data.get("message") if isinstance(data.get("message"), str) else f"Processed query: {text}",
            "llm",
            sequence=sequence or None,
        )
        preferences = [p for p in _list_field(data, "preferences") if isinstance(p, str)]
        return result.model_copy(
            update={
                "visualization_type": _enum_or_default(
                    VisualizationType, data.get("visualizationType"), VisualizationType.BOTH
                ),
                "travel_mode": _enum_or_default(TravelMode, data.get("travelMode"), result.travel_mode),
                "preferences": list(dict.fromkeys(preferences + result.preferences)),
            }
        )

    def _paragraph(self, text: str) -> ExtractionResult | None:
        found = patterns.extract_paragraph_locations(text)
        if not found:
            return None
        locations = [Location(name=name, time_context=ctx) for name, ctx in found]
        return self._build(
            text, IntentType.LOCATIONS, locations,
            f"I found {len(locations)} locations mentioned in this text.",
            "paragraph",
        )

    def _known_places(self, text: str) -> ExtractionResult | None:
        names = patterns.extract_known_places(text)
        if not names:
            return None
        if len(names) >= 2:
            return self._build(
                text, IntentType.ROUTE, names, f"Showing route between {' → '.join(names)}", "known_places"
            )
        return self._build(
            text, IntentType.LOCATIONS, names, f"Showing location: {names[0]}", "known_places"
        )

    def _default(self, text: str) -> ExtractionResult:
        return self._build(
            text, IntentType.LOCATIONS, DEFAULT_LOCATIONS,
            "Couldn't find specific locations. Showing some major US cities instead.",
            "default",
        )

    async def _run_rules(self, text: str) -> ExtractionResult:
        for rule in (self._direct_route, self._show_me, self._informational, self._simple_from_to):
            result = rule(text)
            if result:
                return result

        regex_result = self._regex(text, patterns.extract_locations_with_regex(text))
        if regex_result:
            return regex_result

        model_result = await self._model(text)
        if model_result:
            return model_result

        for rule in (self._paragraph, self._known_places):
            result = rule(text)
            if result:
                return result

        logger.info("[NLP] No locations found, using defaults")
        return self._default(text)

    # ── Public ────────────────────────────────────────────────────────

    async def extract(self, text: str) -> ExtractionResult:
        """Stateless extraction of a single query.

        Raises:
            ValueError: If ``text`` is empty.
        """
        if not text or not text.strip():
            raise ValueError("Query text is required")
        text = text.strip()
        result = await self._run_rules(text)
        logger.info(
            f"[NLP] {result.source}: {result.intent_type.value} "
            f"{[loc.name for loc in result.locations]}"
        )
        return add_clarification(result, text)

    def get_context(self, session_id: str) -> ConversationContext:
        return self._contexts.get(session_id) or ConversationContext()

    def reset_context(self, session_id: str) -> None:
        self._contexts.delete(session_id)

    @staticmethod
    def _strip_lead(pattern: re.Pattern, text: str) -> str:
        remainder = pattern.sub("", text, count=1).strip(" ,")
        return re.sub(r"^to\s+", "", remainder, flags=re.IGNORECASE)

    def _rewrite_follow_up(self, text: str, context: ConversationContext) -> str:
        names = [loc.name for loc in context.last_locations]
        if FOLLOW_UP_ADDITION.search(text):
            return self._strip_lead(FOLLOW_UP_ADDITION, text) or text
        if FOLLOW_UP_CONTINUATION.search(text):
            remainder = self._strip_lead(FOLLOW_UP_CONTINUATION, text)
            if names and remainder:
                return f"from {names[-1]} to {remainder}"
            return remainder or text
        if FOLLOW_UP_REFERENCE.search(text) and names:
            # Names are literal text, not a replacement template
            joined = " and ".join(names)
            return FOLLOW_UP_REFERENCE.sub(lambda _: joined, text)
        return text

    async def extract_with_context(self, text: str, session_id: str | None = None) -> ExtractionResult:
        """Extraction that reads follow-ups against the session's previous turn.

        Additions (``and Rome``) and continuations (``then Rome``) extend the
        previous locations; a follow-up yielding plain locations after a route
        continues that route. Without a ``session_id`` this is ``extract``.

        Raises:
            ValueError: If ``text`` is empty.
        """
        if session_id is None:
            return await self.extract(text)
        if not text or not text.strip():
            raise ValueError("Query text is required")
        text = text.strip()

        context = self.get_context(session_id)
        context.turn_count += 1
        has_context = bool(context.last_query and context.last_locations)
        is_follow_up = has_context and any(p.search(text) for p in _FOLLOW_UPS)
        extends = is_follow_up and bool(
            FOLLOW_UP_ADDITION.search(text) or FOLLOW_UP_CONTINUATION.search(text)
        )

        processed = self._rewrite_follow_up(text, context) if is_follow_up else text
        if processed != text:
            logger.info(f"[NLP] Follow-up rewritten: {processed!r}")

        result = await self._run_rules(processed)

        continues_route = context.last_intent == IntentType.ROUTE and result.intent_type == IntentType.LOCATIONS
        if extends or (is_follow_up and continues_route):
            merged = list(context.last_locations)
            known = {loc.name.lower() for loc in merged}
            added = [loc for loc in result.locations if loc.name.lower() not in known]
            merged += added
            intent = IntentType.ROUTE if IntentType.ROUTE in (context.last_intent, result.intent_type) else result.intent_type
            verb = "route" if intent == IntentType.ROUTE else "map"
            result = result.model_copy(
                update={
                    "intent_type": intent,
                    "locations": merged,
                    "message": f"Continuing {verb} with {' and '.join(loc.name for loc in added) or 'the same stops'}",
                    "suggested_sequence": [loc.name for loc in merged],
                    "source": "context",
                    "skip_clarification": True,
                }
            )

        result = add_clarification(result, text)

        context.last_query = text
        context.last_locations = list(result.locations)
        context.last_intent = result.intent_type
        self._contexts.set(session_id, context)
        return result
