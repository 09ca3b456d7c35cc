"""Intent and location extraction from natural-language map queries."""

from .service import (
    ConversationContext,
    IntentExtractor,
    add_clarification,
    alternatives_for,
    looks_like_prompt_echo,
)

__all__ = [
    "ConversationContext",
    "IntentExtractor",
    "add_clarification",
    "alternatives_for",
    "looks_like_prompt_echo",
]
