"""Unit tests for the text model services."""

import asyncio
import json
import random

import pytest

from mapviz.config import Settings
from mapviz.models import LLMError
from mapviz.services.llm import LLMService, MockLLMService, create_llm_service
from mapviz.services.llm.service import MOCK_RESPONSES, gemini_envelope


class ScriptedLLMService(LLMService):
    """Replies with fixed text or raises."""

    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self._reply = reply
        self._error = error
        self._timeout = 1.0
        self.prompts: list[str] = []

    @property
    def provider_name(self) -> str:
        return "Scripted"

    async def _generate(self, prompt, timeout=None, system=None) -> str:
        self.prompts.append(prompt)
        if self._error:
            raise self._error
        return self._reply


class TestHelpers:
    def test_extract_json_from_fence(self) -> None:
        assert LLMService._extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert LLMService._extract_json('```\n{"a": 1}\n```') == '{"a": 1}'
        assert LLMService._extract_json('  {"a": 1} ') == '{"a": 1}'

    def test_sanitize_input(self) -> None:
        assert LLMService._sanitize_input("Paris\x00 to\x07 Rome ") == "Paris to Rome"
        assert len(LLMService._sanitize_input("x" * 5000)) == 2000

    def test_contents_to_text(self) -> None:
        contents = [{"role": "user", "parts": [{"text": "Paris"}, {"text": "Rome"}]}]
        assert LLMService._contents_to_text(contents) == "Paris\nRome"
        assert LLMService._contents_to_text("plain") == "plain"
        assert LLMService._contents_to_text({"parts": [{"text": "one"}]}) == "one"

    def test_gemini_envelope(self) -> None:
        assert gemini_envelope("hi")["candidates"][0]["content"]["parts"][0]["text"] == "hi"


class TestExtractStructured:
    """Tests for JSON extraction through a provider."""

    @pytest.mark.asyncio
    async def test_parses_fenced_json(self) -> None:
        llm = ScriptedLLMService('```json\n{"intentType": "route"}\n```')
        assert await llm.extract_structured("Paris to Rome") == {"intentType": "route"}
        assert '"Paris to Rome"' in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_unparseable_reply(self) -> None:
        with pytest.raises(LLMError):
            await ScriptedLLMService("not json").extract_structured("Paris")

    @pytest.mark.asyncio
    async def test_non_object_reply(self) -> None:
        with pytest.raises(LLMError):
            await ScriptedLLMService("[1, 2]").extract_structured("Paris")

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504(self) -> None:
        llm = ScriptedLLMService(error=asyncio.TimeoutError())
        with pytest.raises(LLMError) as exc_info:
            await llm.extract_structured("Paris")
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_provider_error_maps_to_502(self) -> None:
        llm = ScriptedLLMService(error=RuntimeError("quota"))
        with pytest.raises(LLMError) as exc_info:
            await llm.extract_structured("Paris")
        assert exc_info.value.status_code == 502


class TestGenerateContent:
    """Tests for the raw proxy path."""

    @pytest.mark.asyncio
    async def test_wraps_reply(self) -> None:
        llm = ScriptedLLMService("hello")
        payload = await llm.generate_content([{"parts": [{"text": "hi"}]}])
        assert payload == gemini_envelope("hello")

    @pytest.mark.asyncio
    async def test_failure_serves_tagged_mock(self) -> None:
        llm = ScriptedLLMService(error=RuntimeError("quota exceeded"))
        payload = await llm.generate_content("hi")
        assert payload["_note"] == "This is mock data provided due to an API error"
        assert payload["_error"] == "quota exceeded"
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
        assert json.loads(text) in MOCK_RESPONSES

    @pytest.mark.asyncio
    async def test_failure_payload_uses_instance_rng(self) -> None:
        llm = ScriptedLLMService(error=RuntimeError("down"))
        llm._rng = random.Random(7)
        expected = random.Random(7).choice(MOCK_RESPONSES)
        payload = await llm.generate_content("hi")
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
        assert json.loads(text) == expected

    @pytest.mark.asyncio
    async def test_empty_contents_rejected(self) -> None:
        with pytest.raises(ValueError):
            await ScriptedLLMService("x").generate_content([])


class TestMockService:
    @pytest.mark.asyncio
    async def test_returns_canned_payload(self) -> None:
        llm = MockLLMService(rng=random.Random(0))
        assert llm.is_mock
        assert await llm.extract_structured("anything") in MOCK_RESPONSES


class TestFactory:
    def test_mock_when_requested(self) -> None:
        settings = Settings(gemini_api_key="key", use_mock_data=True)
        assert isinstance(create_llm_service(settings), MockLLMService)

    def test_mock_without_keys(self) -> None:
        assert isinstance(create_llm_service(Settings()), MockLLMService)
