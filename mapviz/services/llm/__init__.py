"""Text model access: Gemini (primary), Groq (secondary) and a canned mock."""

from .service import (
    MOCK_RESPONSES,
    GeminiLLMService,
    GroqLLMService,
    LLMService,
    MockLLMService,
    create_llm_service,
    gemini_envelope,
)

__all__ = [
    "MOCK_RESPONSES",
    "GeminiLLMService",
    "GroqLLMService",
    "LLMService",
    "MockLLMService",
    "create_llm_service",
    "gemini_envelope",
]
