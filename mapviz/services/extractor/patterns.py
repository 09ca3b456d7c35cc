"""Regex helpers for reading place names and intent out of free text.

Every function here is pure: text in, names (or None) out. The rule order
that decides which helper wins lives in ``service.py``.
"""

import re

from mapviz.models import EntityType, TravelMode

# ── Vocabulary ────────────────────────────────────────────────────────

# Capitalized words that are almost never places
STOPWORDS = {
    "I", "Me", "My", "Mine", "You", "Your", "He", "She", "His", "Her", "It",
    "We", "They", "Who", "What", "Where", "When", "Why", "How",
    "The", "A", "An", "And", "Or", "But", "If", "Then", "So", "Because",
    "Although", "Since", "Show", "Display", "Find", "Get", "Please", "Route",
    "In", "On", "At", "By", "For", "Of", "With", "From", "To", "During", "After",
    "Before", "This", "That", "These", "Those", "There", "Here", "Also", "Then",
    "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "First", "Second", "Third", "Fourth", "Fifth",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "January", "February", "March", "April", "May", "June", "July", "August",
    "September", "October", "November", "December",
}

LOCATION_INDICATORS = (
    "in", "at", "to", "from", "near", "around", "through", "across", "between", "visit",
)

# Geographic names that often appear lower-case in prose
LOWERCASE_GEOGRAPHY = (
    "mediterranean", "europe", "asia", "africa", "australia", "antarctica",
    "america", "pacific", "atlantic", "indian ocean", "arctic", "sahara",
    "alps", "himalayas", "constantinople", "china",
)

KNOWN_PLACES = (
    "New York", "Los Angeles", "Chicago", "Houston", "Phoenix", "Philadelphia",
    "San Antonio", "San Diego", "Dallas", "San Jose", "Austin", "Jacksonville",
    "Fort Worth", "Columbus", "San Francisco", "Charlotte", "Indianapolis", "Seattle",
    "Denver", "Washington", "Boston", "El Paso", "Nashville", "Detroit", "Oklahoma City",
    "Portland", "Las Vegas", "Memphis", "Louisville", "Baltimore", "Milwaukee", "Albuquerque",
    "London", "Paris", "Tokyo", "Beijing", "Sydney", "Berlin", "Rome", "Madrid",
    "Moscow", "Cairo", "Dubai", "Mumbai", "Delhi", "Singapore", "Hong Kong",
    "Eiffel Tower", "Statue of Liberty", "Golden Gate Bridge", "Grand Canyon",
    "Mount Everest", "Mount Rushmore", "Great Wall",
)

# ── Compiled patterns ─────────────────────────────────────────────────

_TRAILING_PUNCT = re.compile(r"[.!?]+$")
_TO_SPLIT = re.compile(r"\s+to\s+", re.IGNORECASE)

_INTERCONTINENTAL_PAIRS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:new\s*york|nyc)\s+to\s+(?:paris|london|tokyo|beijing|sydney|rome)\b",
        r"\b(?:paris|london|tokyo|beijing|sydney|rome)\s+to\s+(?:new\s*york|nyc)\b",
        r"\b(?:los\s*angeles|la)\s+to\s+(?:tokyo|sydney|paris|london|rome)\b",
        r"\b(?:tokyo|sydney|paris|london|rome)\s+to\s+(?:los\s*angeles|la)\b",
        r"\bchicago\s+to\s+(?:paris|london|tokyo|sydney|rome)\b",
        r"\b(?:paris|london|tokyo|sydney|rome)\s+to\s+chicago\b",
    )
]
_ROUTE_FROM_TO = re.compile(r"route\s+from\s+([A-Za-z\s']+?)\s+to\s+([A-Za-z\s']+)(?:\s|$)", re.IGNORECASE)
_WHOLE_X_TO_Y = re.compile(r"^([A-Za-z\s']+?)\s+to\s+([A-Za-z\s']+)$", re.IGNORECASE)
_FROM_X_TO_Y = re.compile(r"\bfrom\s+([A-Za-z\s']+?)\s+to\s+([A-Za-z\s']+)\b", re.IGNORECASE)
_X_TO_Y = re.compile(r"\b([A-Za-z\s']+?)\s+to\s+([A-Za-z\s']+)\b", re.IGNORECASE)

_SHOW_ME = re.compile(r"show\s+me\s+(.*)", re.IGNORECASE | re.DOTALL)

_INFORMATIONAL = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(?:historical|famous|popular|tourist|interesting)\s+(?:sites|places|locations|spots|attractions|destinations)\s+(?:in|of|around|near)\s+([A-Za-z\s]+)",
        r"\b(?:sites|places|locations|spots|attractions|destinations)\s+(?:in|of|around|near)\s+([A-Za-z\s]+)",
        r"\b(?:things|what)\s+to\s+(?:see|do|visit)\s+(?:in|around|near)\s+([A-Za-z\s]+)",
        r"\b(?:visit|explore|discover)\s+([A-Za-z\s]+)",
        r"\b(?:information|info|facts|history)\s+(?:about|on|of)\s+([A-Za-z\s]+)",
    )
]
_ANCIENT = re.compile(r"\bancient\s+(rome|greece|egypt)\b", re.IGNORECASE)

_BETWEEN = re.compile(r"between\s+([A-Za-z\s]+?)\s+and\s+([A-Za-z\s]+)", re.IGNORECASE)
_SEPARATORS = [
    re.compile(r"\s+to\s+", re.IGNORECASE),
    re.compile(r"\s+and\s+", re.IGNORECASE),
    re.compile(r"\s*,\s*"),
    re.compile(r"\s+through\s+", re.IGNORECASE),
    re.compile(r"\s+via\s+", re.IGNORECASE),
]
_LEADING_PREPOSITION = re.compile(
    r"^(?:from|to|in|at|starting|ending|beginning|route)\s+", re.IGNORECASE
)

_indicators = "|".join(LOCATION_INDICATORS)
_AFTER_INDICATOR = re.compile(
    rf"\b({_indicators})\s+([A-Z][a-zA-Z\s]+?)(?=[,.;!?]|\s+(?:{_indicators})\s+|$)",
    re.IGNORECASE,
)
_QUOTED = re.compile(r'"([A-Z][a-zA-Z\s]+?)"')
_CAPITALIZED_RUN = re.compile(r"\b([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)\b")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_TIME_CONTEXT = re.compile(
    r"(?:in|during|around|about|circa|c\.|year|century)\s+(?:the\s+)?"
    r"(\d{1,2}(?:st|nd|rd|th)\s+century|\d{1,4}(?:\s*(?:AD|BC|BCE|CE))?)\b",
    re.IGNORECASE,
)
_HISTORICAL_WORDING = re.compile(r"historical|ancient|century|period|empire|civilization", re.IGNORECASE)
_EXPLICIT_ROUTE_WORDING = re.compile(r"route from|from .* to|directions to|show me", re.IGNORECASE)

_COMPLEX_VOCABULARY = re.compile(
    r"historical|ancient|culture|civilization|empire|kingdom|region|famous|landmarks|"
    r"attractions|itinerary|journey|tour|travel|visit",
    re.IGNORECASE,
)
_SIMPLE_ROUTE_WORDS = re.compile(r"\b(?:route|from|to|between|and)\b", re.IGNORECASE)

_WALKING = re.compile(r"\b(?:walk|walking|on foot)\b", re.IGNORECASE)
_CYCLING = re.compile(r"\b(?:cycl\w*|bike|biking|bicycle)\b", re.IGNORECASE)
_TRANSIT = re.compile(r"\b(?:transit|train|bus|subway)\b", re.IGNORECASE)

_PREFERENCES = [
    ("avoid tolls", re.compile(r"\b(?:no|avoid(?:ing)?|without)\s+tolls?\b", re.IGNORECASE)),
    ("avoid highways", re.compile(r"\b(?:no|avoid(?:ing)?|without)\s+highways?\b", re.IGNORECASE)),
    ("avoid ferries", re.compile(r"\b(?:no|avoid(?:ing)?|without)\s+ferr(?:y|ies)\b", re.IGNORECASE)),
    ("scenic route", re.compile(r"\bscenic\b", re.IGNORECASE)),
    ("fastest route", re.compile(r"\b(?:fastest|quickest)\b", re.IGNORECASE)),
]

_ENTITY_PATTERNS = [
    (EntityType.NATURAL_FEATURE, re.compile(
        r"\b(?:mount|mt\.|lake|river|mountain|ocean|sea|forest|desert|canyon|valley|peak|island|"
        r"peninsula|bay|gulf|waterfall|plateau|volcano|cliff|glacier|reef|delta|spring|basin|falls|"
        r"rapids|strait|hill|dune)\b", re.IGNORECASE)),
    (EntityType.HISTORICAL_SITE, re.compile(
        r"\b(?:ancient|historical|historic|ruins|castle|palace|temple|monument|memorial|fort|fortress|"
        r"cathedral|basilica|colosseum|acropolis|pyramid|tomb|shrine|wall|tower|battlefield|"
        r"amphitheater|altar|mosque|abbey|citadel)\b", re.IGNORECASE)),
    (EntityType.ADMINISTRATIVE_AREA, re.compile(
        r"\b(?:county|district|region|state|province|territory|oblast|prefecture|canton|republic|"
        r"kingdom|empire|commonwealth|principality|duchy|federation|borough|precinct|colony)\b",
        re.IGNORECASE)),
    (EntityType.POINT_OF_INTEREST, re.compile(
        r"\b(?:museum|park|garden|zoo|stadium|mall|restaurant|hotel|airport|station|theater|cinema|"
        r"library|university|college|school|hospital|plaza|square|market|store|shop|center|gallery|"
        r"hall|arena|complex|resort|manor|villa)\b", re.IGNORECASE)),
    (EntityType.URBAN_AREA, re.compile(
        r"\b(?:city|town|village|metropolis|suburb|downtown|neighborhood|district|quarter|block|"
        r"street|avenue|boulevard|lane|plaza|borough|urban|metropolitan|municipalit\w*)\b",
        re.IGNORECASE)),
]
_COUNTRIES = re.compile(
    r"\b(?:united states|usa|us|uk|united kingdom|canada|australia|germany|france|italy|spain|"
    r"china|japan|india|brazil|russia|mexico|egypt|turkey|greece|portugal|ireland|scotland|wales|"
    r"denmark|sweden|norway|finland|belgium|netherlands|switzerland|austria|poland|ukraine|israel|"
    r"saudi arabia|iran|iraq|nigeria|south africa|kenya|argentina|chile|peru|colombia)\b",
    re.IGNORECASE,
)
_MAJOR_CITIES = re.compile(
    r"\b(?:new york|los angeles|chicago|houston|phoenix|paris|london|tokyo|beijing|shanghai|delhi|"
    r"mumbai|cairo|moscow|istanbul|rome|berlin|madrid|seoul|mexico city|toronto|hong kong|"
    r"singapore|sydney|são paulo|rio de janeiro)\b",
    re.IGNORECASE,
)


# ── Helpers ───────────────────────────────────────────────────────────

def strip_terminal_punctuation(text: str) -> str:
    return _TRAILING_PUNCT.sub("", text.strip()).strip()


def _clean_parts(parts: list[str]) -> list[str]:
    return [p.strip().rstrip(".").strip() for p in parts if p and p.strip().rstrip(".").strip()]


def _dedupe(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))


def match_intercontinental_pair(text: str) -> list[str] | None:
    """``new york to paris`` style pairs between well-known world cities."""
    for pattern in _INTERCONTINENTAL_PAIRS:
        match = pattern.search(text)
        if match:
            parts = _clean_parts(_TO_SPLIT.split(match.group(0)))
            if len(parts) == 2:
                return parts
    return None


def match_leading_from(text: str) -> list[str] | None:
    """``From A to B to C`` → every waypoint, in order."""
    if not text.lower().startswith("from "):
        return None
    parts = _clean_parts(_TO_SPLIT.split(text[5:].strip()))
    return parts if len(parts) >= 2 else None


def match_route_from_to(text: str) -> list[str] | None:
    match = _ROUTE_FROM_TO.search(text)
    if match:
        return _clean_parts([match.group(1), match.group(2)]) or None
    return None


def match_whole_x_to_y(text: str) -> list[str] | None:
    match = _WHOLE_X_TO_Y.match(text)
    if match:
        return _clean_parts([match.group(1), match.group(2)]) or None
    return None


def extract_show_me(text: str) -> list[str] | None:
    """``show me A, B and C`` → ``[A, B, C]``, order preserved."""
    match = _SHOW_ME.search(text)
    if not match:
        return None
    listing = strip_terminal_punctuation(match.group(1))
    listing = re.sub(r"\s+and\s+", ", ", listing, flags=re.IGNORECASE)
    names = [n.strip() for n in re.split(r"\s*,\s*", listing) if n.strip()]
    return names or None


def detect_informational_query(text: str) -> str | None:
    """Single place behind ``famous sites in X``, ``history of X``, ``visit X``..."""
    for pattern in _INFORMATIONAL:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return strip_terminal_punctuation(match.group(1))
    ancient = _ANCIENT.search(text)
    if ancient:
        return f"Ancient {ancient.group(1).capitalize()}"
    return None


def extract_simple_from_to(text: str) -> list[str] | None:
    """``from X to Y`` anywhere, else the first ``X to Y``."""
    for pattern in (_FROM_X_TO_Y, _X_TO_Y):
        match = pattern.search(text.strip())
        if match:
            parts = _clean_parts([match.group(1), match.group(2)])
            if len(parts) == 2:
                return parts
    return None


def is_likely_location(candidate: str) -> bool:
    candidate = candidate.strip()
    if candidate in STOPWORDS or len(candidate) < 2:
        return False
    return all(word[0].isupper() for word in candidate.split())


def extract_locations_with_regex(text: str) -> list[str]:
    """General-purpose extraction; returns place names in first-seen order.

    Tries, in order: ``from`` prefixes, ``route from``, ``between X and Y``,
    separator splits (to, and, comma, through, via), then location
    prepositions, quoted names, and capitalized word runs.
    """
    if not text or not text.strip():
        return []
    normalized = " ".join(text.split())

    for matcher in (match_leading_from, match_route_from_to):
        found = matcher(normalized)
        if found and len(found) >= 2:
            return found

    between = _BETWEEN.search(normalized)
    if between:
        return _clean_parts([between.group(1), strip_terminal_punctuation(between.group(2))])

    for separator in _SEPARATORS:
        if not separator.search(normalized):
            continue
        parts = [
            _LEADING_PREPOSITION.sub("", part).strip()
            for part in separator.split(strip_terminal_punctuation(normalized))
        ]
        parts = [p for p in parts if p]
        if len(parts) >= 2:
            return parts

    found: list[str] = []
    for match in _AFTER_INDICATOR.finditer(text):
        if is_likely_location(match.group(2)):
            found.append(match.group(2).strip())
    for pattern in (_QUOTED, _CAPITALIZED_RUN):
        for match in pattern.finditer(text):
            if is_likely_location(match.group(1)):
                found.append(match.group(1).strip())
    return _dedupe(found)


def find_time_context(sentence: str) -> str:
    match = _TIME_CONTEXT.search(sentence)
    return match.group(1).strip() if match else ""


def extract_paragraph_locations(text: str) -> list[tuple[str, str]]:
    """Places in prose, each paired with a time context from its sentence.

    Returns ``(name, time_context)`` tuples, first occurrence wins.
    """
    found: dict[str, str] = {}
    lower_text = text.lower()
    has_sub_saharan = "sub-saharan africa" in lower_text or "sub saharan africa" in lower_text

    for sentence in _SENTENCE_SPLIT.split(text):
        if not sentence.strip():
            continue
        time_context = find_time_context(sentence)

        for match in _CAPITALIZED_RUN.finditer(sentence):
            name = match.group(1)
            if name not in STOPWORDS and name not in found:
                found[name] = time_context

        for geo in LOWERCASE_GEOGRAPHY:
            if re.search(rf"\b{geo}\b", sentence, re.IGNORECASE):
                name = geo.title()
                if name not in found:
                    found[name] = time_context

        if has_sub_saharan and re.search(r"sub[-\s]saharan africa", sentence, re.IGNORECASE):
            found.setdefault("sub-Saharan Africa", time_context)

    if has_sub_saharan:
        found.pop("Africa", None)
        found.pop("Saharan Africa", None)
    return list(found.items())


def extract_known_places(text: str) -> list[str]:
    lower_text = text.lower()
    return [place for place in KNOWN_PLACES if place.lower() in lower_text]


def is_paragraph_text(text: str) -> bool:
    """Long historical or multi-sentence prose with no route wording."""
    return (
        len(text) > 100
        and (bool(_HISTORICAL_WORDING.search(text)) or len(_SENTENCE_SPLIT.split(text)) > 3)
        and not _EXPLICIT_ROUTE_WORDING.search(text)
    )


def is_complex_query(text: str) -> bool:
    """Whether a query is worth a model call."""
    word_count = len(text.split())
    has_simple_route = bool(_SIMPLE_ROUTE_WORDS.search(text)) and word_count < 10
    if has_simple_route:
        return False
    return word_count >= 8 or bool(_COMPLEX_VOCABULARY.search(text)) or "?" in text


def detect_travel_mode(text: str) -> TravelMode:
    if _WALKING.search(text):
        return TravelMode.WALKING
    if _CYCLING.search(text):
        return TravelMode.CYCLING
    if _TRANSIT.search(text):
        return TravelMode.TRANSIT
    return TravelMode.DRIVING


def detect_preferences(text: str) -> list[str]:
    return [name for name, pattern in _PREFERENCES if pattern.search(text)]


def classify_entity(name: str) -> EntityType:
    """Rough entity type from words in a place name."""
    entity_type = EntityType.PLACE
    for candidate, pattern in _ENTITY_PATTERNS:
        if pattern.search(name):
            entity_type = candidate
            break
    if _COUNTRIES.search(name):
        entity_type = EntityType.COUNTRY
    if _MAJOR_CITIES.search(name):
        entity_type = EntityType.MAJOR_CITY
    return entity_type
