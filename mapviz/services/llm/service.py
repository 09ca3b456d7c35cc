"""Text model access: Gemini (primary) + Groq (secondary) + canned mock.

Provider-agnostic base class with three implementations:
- GeminiLLMService: Google Gemini through ``google-genai``
- GroqLLMService:   Groq LPU, llama-3.1-8b-instant
- MockLLMService:   canned responses for ``USE_MOCK_DATA`` or keyless setups

The model is only ever asked for names and intent; coordinates always come
from the geocoder.
"""

import asyncio
import json
import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Any

from mapviz.config import Settings
from mapviz.models import LLMError

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You extract structured location data for a map application. "
    "Respond ONLY with valid JSON. No explanations, no markdown, no extra text."
)

EXTRACTION_PROMPT = """Parse the following query and extract structured location data for a map application:
"{query}"

INSTRUCTIONS:
- Identify if this is a route request (multiple locations with intent to travel between them) or just a list of locations
- Extract all location names mentioned (cities, countries, landmarks, etc.)
- Detect any time periods or historical context for each location (e.g., "Ancient Rome", "Paris in the 1920s")
- Identify any travel preferences (walking, driving, cycling, avoid highways, etc.)
- Determine the intended sequence of locations for routes

RESPONSE FORMAT (JSON only, no explanations):
{{
  "intentType": "route" or "locations",
  "locations": [{{"name": "Location name", "timeContext": "historical period or empty"}}],
  "visualizationType": "both",
  "travelMode": "driving", "walking", or "cycling",
  "preferences": ["array of preferences"],
  "message": "A descriptive message for the user",
  "suggestedSequence": ["ordered array of location names for routes"]
}}"""

MOCK_RESPONSES: list[dict[str, Any]] = [
    {
        "intentType": "route",
        "locations": [
            {"name": "New York", "timeContext": ""},
            {"name": "Boston", "timeContext": ""},
        ],
        "visualizationType": "default",
        "travelMode": "driving",
        "preferences": ["avoid highways"],
        "message": "Creating a driving route from New York to Boston avoiding highways",
        "suggestedSequence": ["New York", "Boston"],
    },
    {
        "intentType": "locations",
        "locations": [
            {"name": "Paris", "timeContext": "19th century"},
            {"name": "London", "timeContext": "Victorian era"},
            {"name": "Rome", "timeContext": "Ancient times"},
        ],
        "visualizationType": "historical",
        "message": "Displaying historical locations across Europe",
        "preferences": ["historical context"],
    },
    {
        "intentType": "locations",
        "locations": [
            {"name": "Mount Everest", "timeContext": ""},
            {"name": "K2", "timeContext": ""},
            {"name": "Kilimanjaro", "timeContext": ""},
        ],
        "visualizationType": "terrain",
        "message": "Showing the world's most famous mountains",
        "preferences": ["elevation data"],
    },
]


def gemini_envelope(text: str) -> dict[str, Any]:
    """Wrap model text in the ``generateContent`` response shape."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class LLMService(ABC):
    """Base class for text model services.

    Prompt construction and JSON parsing live here. Subclasses only
    implement ``_generate()`` for their specific API client.
    """

    _timeout: float
    _proxy_timeout: float = 20.0
    _rng: random.Random = random.Random()

    @abstractmethod
    async def _generate(
        self,
        prompt: str,
        timeout: float | None = None,
        system: str | None = None,
    ) -> str:
        """Send prompt to the provider and return raw text."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name for logging."""
        ...

    @property
    def is_mock(self) -> bool:
        return False

    async def close(self) -> None:
        """Release provider clients. Most SDK clients need nothing here."""

    # ── Utilities ─────────────────────────────────────────────────────

    @staticmethod
    def _sanitize_input(text: str, max_length: int = 2000) -> str:
        """Strip control characters and cap length before prompting."""
        cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
        return cleaned[:max_length].strip()

    @staticmethod
    def _extract_json(text: str) -> str:
        if "```json" in text:
            return text.split("```json")[1].split("```")[0].strip()
        if "```" in text:
            return text.split("```")[1].split("```")[0].strip()
        return text.strip()

    @staticmethod
    def _contents_to_text(contents: Any) -> str:
        """Flatten Gemini ``contents`` (string, dict or list of dicts) to prompt text."""
        if isinstance(contents, str):
            return contents
        if isinstance(contents, dict):
            contents = [contents]
        texts: list[str] = []
        for item in contents or []:
            if isinstance(item, str):
                texts.append(item)
            elif isinstance(item, dict):
                for part in item.get("parts", []):
                    if isinstance(part, dict) and isinstance(part.get("text"), str):
                        texts.append(part["text"])
                    elif isinstance(part, str):
                        texts.append(part)
        return "\n".join(t.strip() for t in texts if t.strip())

    # ── Shared implementations ────────────────────────────────────────

    async def extract_structured(self, text: str) -> dict[str, Any]:
        """Ask the model for the extraction JSON for ``text``.

        Raises:
            LLMError: On timeout, provider failure, or unparseable output.
        """
        query = self._sanitize_input(text)
        prompt = EXTRACTION_PROMPT.format(query=query)
        try:
            raw = await self._generate(prompt, system=EXTRACTION_SYSTEM_PROMPT)
        except asyncio.TimeoutError as e:
            raise LLMError(f"{self.provider_name} timed out", status_code=504) from e
        except Exception as e:
            raise LLMError(f"{self.provider_name} request failed: {e}", status_code=502) from e

        try:
            data = json.loads(self._extract_json(raw))
        except json.JSONDecodeError as e:
            logger.warning(f"[LLM] {self.provider_name} returned non-JSON: {raw[:120]!r}")
            raise LLMError(f"Could not parse {self.provider_name} response") from e

        if not isinstance(data, dict):
            raise LLMError(f"{self.provider_name} returned {type(data).__name__}, expected object")
        return data

    async def generate_content(self, contents: Any) -> dict[str, Any]:
        """Raw proxy: run ``contents`` through the model, Gemini-shaped reply.

        Failures fall back to a canned payload tagged with ``_note`` and
        ``_error`` so the browser keeps working.
        """
        prompt = self._contents_to_text(contents)
        if not prompt:
            raise ValueError("Contents are required")
        try:
            text = await self._generate(prompt, timeout=self._proxy_timeout)
        except Exception as e:
            logger.warning(f"[LLM] {self.provider_name} proxy call failed, serving mock data: {e}")
            payload = gemini_envelope(json.dumps(self._rng.choice(MOCK_RESPONSES)))
            payload["_note"] = "This is mock data provided due to an API error"
            payload["_error"] = str(e) or type(e).__name__
            return payload
        return gemini_envelope(text)


# ═══════════════════════════════════════════════════════════════════════
# Provider: Gemini  (primary)
# ═══════════════════════════════════════════════════════════════════════

class GeminiLLMService(LLMService):
    """Google Gemini via the ``google-genai`` SDK."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.0-flash",
        timeout_seconds: float = 5.0,
        proxy_timeout_seconds: float = 20.0,
    ) -> None:
        from google import genai

        if not api_key:
            raise ValueError("GEMINI_API_KEY not provided")
        self._client = genai.Client(api_key=api_key)
        self._model_name = model_name
        self._timeout = timeout_seconds
        self._proxy_timeout = proxy_timeout_seconds
        logger.info(f"[LLM] Gemini ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Gemini"

    async def _generate(
        self,
        prompt: str,
        timeout: float | None = None,
        system: str | None = None,
    ) -> str:
        t = timeout or self._timeout
        full_prompt = f"{system}\n\n{prompt}" if system else prompt
        try:
            resp = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents=full_prompt,
                ),
                timeout=t,
            )
            return (resp.text or "").strip()
        except asyncio.TimeoutError:
            logger.warning(f"[Gemini] Timeout after {t}s")
            raise
        except Exception as e:
            logger.warning(f"[Gemini] Error: {e}")
            raise


# ═══════════════════════════════════════════════════════════════════════
# Provider: Groq  (secondary)
# ═══════════════════════════════════════════════════════════════════════

class GroqLLMService(LLMService):
    """Groq LPU with Llama 3.1 8B Instant."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "llama-3.1-8b-instant",
        timeout_seconds: float = 5.0,
        proxy_timeout_seconds: float = 20.0,
    ) -> None:
        from groq import AsyncGroq

        if not api_key:
            raise ValueError("GROQ_API_KEY not provided")
        self._client = AsyncGroq(api_key=api_key)
        self._model_name = model_name
        self._timeout = timeout_seconds
        self._proxy_timeout = proxy_timeout_seconds
        logger.info(f"[LLM] Groq ready: {self._model_name}")

    @property
    def provider_name(self) -> str:
        return "Groq"

    async def close(self) -> None:
        await self._client.close()

    async def _generate(
        self,
        prompt: str,
        timeout: float | None = None,
        system: str | None = None,
    ) -> str:
        t = timeout or self._timeout
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})
        try:
            resp = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model_name,
                    messages=messages,
                    temperature=0.2,
                    max_tokens=1024,
                ),
                timeout=t,
            )
            return (resp.choices[0].message.content or "").strip()
        except asyncio.TimeoutError:
            logger.warning(f"[Groq] Timeout after {t}s")
            raise
        except Exception as e:
            logger.warning(f"[Groq] Error: {e}")
            raise


# ═══════════════════════════════════════════════════════════════════════
# Mock: canned responses, no network
# ═══════════════════════════════════════════════════════════════════════

class MockLLMService(LLMService):
    """Returns one of the canned extraction payloads at random."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._timeout = 0.0

    @property
    def provider_name(self) -> str:
        return "Mock"

    @property
    def is_mock(self) -> bool:
        return True

    async def _generate(
        self,
        prompt: str,
        timeout: float | None = None,
        system: str | None = None,
    ) -> str:
        return json.dumps(self._rng.choice(MOCK_RESPONSES))


# ═══════════════════════════════════════════════════════════════════════
# Factory: Gemini → Groq → Mock
# ═══════════════════════════════════════════════════════════════════════

def create_llm_service(settings: Settings) -> LLMService:
    """Create the best available text model service."""
    if settings.use_mock_data:
        logger.info("[LLM] USE_MOCK_DATA set, using canned responses")
        return MockLLMService()

    if settings.gemini_api_key:
        try:
            return GeminiLLMService(
                api_key=settings.gemini_api_key,
                model_name=settings.gemini_model,
                timeout_seconds=settings.llm_timeout,
                proxy_timeout_seconds=settings.llm_proxy_timeout,
            )
        except Exception as e:
            logger.info(f"[LLM] Gemini init failed: {e}")

    if settings.groq_api_key:
        try:
            return GroqLLMService(
                api_key=settings.groq_api_key,
                model_name=settings.groq_model,
                timeout_seconds=settings.llm_timeout,
                proxy_timeout_seconds=settings.llm_proxy_timeout,
            )
        except Exception as e:
            logger.info(f"[LLM] Groq init failed: {e}")

    logger.warning("[LLM] No provider available, using canned responses")
    return MockLLMService()
