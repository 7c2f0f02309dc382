"""LLM answer extraction services."""

from .extractor import (
    AnswerExtractor,
    BaselineAnswerExtractor,
    GeminiAnswerExtractor,
    GroqAnswerExtractor,
    SearchResult,
    create_extractor,
    normalize_content,
)

__all__ = [
    "AnswerExtractor",
    "BaselineAnswerExtractor",
    "GeminiAnswerExtractor",
    "GroqAnswerExtractor",
    "SearchResult",
    "create_extractor",
    "normalize_content",
]
