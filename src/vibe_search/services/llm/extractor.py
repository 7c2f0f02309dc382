"""LLM-powered answer extraction over a provided corpus.

This module provides interfaces and implementations for extracting answers
from text using Large Language Models (Groq, Google Gemini). A caller passes a
corpus plus a natural-language query and gets back the list of answer strings
the model found.

Key Features:
- Abstract async interface shared by every provider
- Groq support via the async client (default provider)
- Gemini support via google-generativeai (optional extra)
- Deterministic regex baseline for dry runs that never calls out
- Two-stage decoding with a literal-match fallback for malformed output
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from groq import APIConnectionError, APITimeoutError, AsyncGroq

from vibe_search.config import get_settings
from vibe_search.exceptions import ConfigurationError, ExtractionError
from vibe_search.services.llm.decoder import (
    DEFAULT_MATCH_LIMIT,
    decode_response,
    extract_literal_matches,
)
from vibe_search.services.llm.prompts import v1_0

logger = logging.getLogger(__name__)
settings = get_settings()

Content = Union[str, Sequence[str], None]


def normalize_content(content: Content) -> str:
    """Flatten string-or-list content into a single corpus string.

    List items that are empty are dropped and the rest are joined with a
    blank line between them.
    """
    if content is None:
        return ""
    if isinstance(content, (list, tuple)):
        return "\n\n".join(str(part) for part in content if part)
    return str(content)


@dataclass
class SearchResult:
    """Structured output from an extraction call.

    Attributes:
        answers: Extracted answers in the order the model returned them
        raw: Full model response for debugging/auditing (empty for baseline)
    """
    answers: List[str] = field(default_factory=list)
    raw: str = ""


class AnswerExtractor(ABC):
    """Abstract base class for answer extraction."""

    def __init__(
        self,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        prompt_version: str = v1_0.PROMPT_VERSION
    ):
        """Initialize extractor.

        Args:
            model: Model identifier
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens in response
            prompt_version: Version of prompt template to use
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.prompt_version = prompt_version

    async def search(
        self,
        content: Content,
        query: str,
        k: Optional[int] = None
    ) -> SearchResult:
        """Extract answers to ``query`` from ``content``.

        Args:
            content: Corpus as a string or list of strings
            query: Natural-language description of what to extract
            k: Optional cap on the number of answers wanted

        Returns:
            SearchResult with extracted answers and raw response

        Raises:
            ExtractionError: If inputs are missing or the provider call fails
        """
        if not query:
            raise ExtractionError("Missing query")
        corpus = normalize_content(content)
        if not corpus:
            raise ExtractionError("Missing content")
        return await self._search(corpus, query, k)

    @abstractmethod
    async def _search(self, corpus: str, query: str, k: Optional[int]) -> SearchResult:
        """Provider-specific extraction over a normalized corpus."""
        pass

    def _build_prompt(self, corpus: str, query: str) -> str:
        """Build the user prompt for the configured prompt version."""
        if self.prompt_version == v1_0.PROMPT_VERSION:
            return v1_0.build_user_prompt(corpus, query)
        else:
            # Fallback for unknown versions
            return v1_0.build_user_prompt(corpus, query)


class BaselineAnswerExtractor(AnswerExtractor):
    """Deterministic heuristic that returns literal matches of the query terms.

    Used for dry runs of the evaluation harness: no network, no API key.
    """

    def __init__(self, model: str = "baseline", **kwargs):
        super().__init__(model, **kwargs)

    async def search(
        self,
        content: Content,
        query: str,
        k: Optional[int] = None
    ) -> SearchResult:
        """Return literal matches, or no answers when the query or content is empty."""
        corpus = normalize_content(content)
        if not query or not corpus:
            return SearchResult()
        return await self._search(corpus, query, k)

    async def _search(self, corpus: str, query: str, k: Optional[int]) -> SearchResult:
        limit = k if k is not None else DEFAULT_MATCH_LIMIT
        return SearchResult(answers=extract_literal_matches(corpus, query, limit))


class GroqAnswerExtractor(AnswerExtractor):
    """Answer extractor using the Groq API (fast inference for Llama, Qwen)."""

    def __init__(
        self,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.2,
        max_tokens: int = 2048,
        prompt_version: str = v1_0.PROMPT_VERSION,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0
    ):
        """Initialize Groq extractor.

        Args:
            model: Groq model (default: llama-3.3-70b-versatile)
            temperature: Sampling temperature
            max_tokens: Maximum response tokens
            prompt_version: Prompt template version
            api_key: Groq API key (uses settings.groq_api_key if None)
            timeout: Per-request timeout in seconds
            max_retries: Attempts made on connection errors
            retry_delay: Seconds to wait between attempts
        """
        super().__init__(model, temperature, max_tokens, prompt_version)
        api_key = api_key or settings.groq_api_key
        if not api_key:
            raise ConfigurationError("Missing apiKey", {"provider": "groq"})
        self.client = AsyncGroq(api_key=api_key)
        self.timeout = timeout or settings.llm_timeout_seconds
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def _search(self, corpus: str, query: str, k: Optional[int]) -> SearchResult:
        prompt = self._build_prompt(corpus, query)

        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"Calling Groq {self.model} "
                    f"(prompt {self.prompt_version}, attempt {attempt + 1}/{self.max_retries})"
                )
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": v1_0.SYSTEM_PROMPT},
                        {"role": "user", "content": prompt}
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout
                )
                break
            except (APIConnectionError, APITimeoutError, ConnectionError, TimeoutError) as e:
                logger.warning(f"Connection error on attempt {attempt + 1}/{self.max_retries}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise ExtractionError(
                    f"Groq connection failed after {self.max_retries} retries: {e}"
                ) from e
            except Exception as e:
                # Rate limits, auth failures, bad requests
                logger.error(f"Groq API error: {e}")
                raise ExtractionError(f"Groq extraction failed: {e}") from e

        raw = response.choices[0].message.content or ""
        return SearchResult(answers=decode_response(raw, corpus, query), raw=raw)


class GeminiAnswerExtractor(AnswerExtractor):
    """Answer extractor using Google Gemini (text-only)."""

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        max_tokens: int = 2048,
        prompt_version: str = v1_0.PROMPT_VERSION,
        api_key: Optional[str] = None
    ):
        """Initialize Gemini extractor.

        Args:
            model: Gemini model name
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            prompt_version: Prompt template version
            api_key: Google API key (uses settings.gemini_api_key if None)
        """
        super().__init__(model, temperature, max_tokens, prompt_version)

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "Gemini dependencies not installed. "
                "Run: pip install 'vibe-search[gemini]'"
            )

        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise ConfigurationError("Missing apiKey", {"provider": "gemini"})

        genai.configure(api_key=api_key)
        self.client = genai.GenerativeModel(model)

    async def _search(self, corpus: str, query: str, k: Optional[int]) -> SearchResult:
        prompt = self._build_prompt(corpus, query)
        logger.debug(f"Calling Gemini {self.model} (prompt {self.prompt_version})")

        try:
            response = await self.client.generate_content_async(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens
                }
            )
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise ExtractionError(f"Gemini extraction failed: {e}") from e

        try:
            raw = response.text or ""
        except ValueError:
            # Blocked or empty candidates have no text accessor
            raw = ""
        return SearchResult(answers=decode_response(raw, corpus, query), raw=raw)


def create_extractor(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    dry: bool = False,
    **kwargs
) -> AnswerExtractor:
    """Factory function to create an answer extractor.

    Args:
        provider: LLM provider ("groq" or "gemini"); settings default if None
        model: Model name (uses provider default if None)
        dry: Return the deterministic baseline instead of a model client
        **kwargs: Additional arguments passed to extractor constructor

    Returns:
        Configured AnswerExtractor instance

    Raises:
        ValueError: If provider is unsupported
        ConfigurationError: If the provider has no API key

    Examples:
        >>> extractor = create_extractor(dry=True)  # No API calls
        >>> extractor = create_extractor("groq")  # Llama 3.3 70B (default)
        >>> extractor = create_extractor("gemini", model="gemini-2.5-flash")
    """
    if dry:
        return BaselineAnswerExtractor()

    provider = (provider or settings.default_provider).lower()
    kwargs.setdefault("temperature", settings.llm_temperature)
    kwargs.setdefault("max_tokens", settings.llm_max_tokens)

    if provider == "groq":
        return GroqAnswerExtractor(
            model=model or settings.groq_model,
            **kwargs
        )
    elif provider == "gemini":
        return GeminiAnswerExtractor(
            model=model or settings.gemini_model,
            **kwargs
        )
    else:
        raise ValueError(
            f"Unsupported provider: {provider}. "
            f"Supported providers: 'groq', 'gemini'"
        )
