"""Decode raw LLM output into a list of extracted answers.

Decoding happens in two stages:
1. Structured: parse the ``{"answers": [...]}`` JSON object the prompt asks for
2. Fallback: when the model ignores the format, pull literal occurrences of
   the query terms straight out of the corpus

Both stages are pure functions so they can be tested in isolation. The
fallback heuristic is also what the dry-run baseline extractor uses.
"""

import json
import logging
import re
from typing import Any, List

logger = logging.getLogger(__name__)

# Upper bound on fallback matches when no cutoff is supplied
DEFAULT_MATCH_LIMIT = 200

_QUERY_SPLIT = re.compile(r"[;,\s]+")


def split_query_terms(query: str) -> List[str]:
    """Split a query into literal terms on ``;``, ``,`` or whitespace."""
    return [term for term in _QUERY_SPLIT.split(str(query or "")) if term]


def extract_literal_matches(
    corpus: str,
    query: str,
    limit: int = DEFAULT_MATCH_LIMIT
) -> List[str]:
    """Find literal occurrences of the query terms in the corpus.

    Matches are returned in corpus order, without overlap, and each match
    keeps the exact text found (so ``"r"`` and ``"R"`` stay distinct).

    Args:
        corpus: Text to scan
        query: Query whose terms are searched for verbatim
        limit: Maximum number of matches to return

    Returns:
        List of matched strings, at most ``limit`` long

    Examples:
        >>> extract_literal_matches("StrawbeRry", "R,r")
        ['r', 'R', 'r']
    """
    terms = split_query_terms(query)
    if not terms or limit <= 0:
        return []

    pattern = re.compile("|".join(re.escape(term) for term in terms))
    found = []
    for match in pattern.finditer(corpus or ""):
        found.append(match.group(0))
        if len(found) >= limit:
            break
    return found


def parse_structured(text: str) -> Any:
    """Parse the JSON object embedded in a model response.

    The slice between the first ``{`` and the last ``}`` is parsed, which
    tolerates prose or code fences around the object. If no such slice
    exists the whole text is tried.

    Raises:
        ValueError: If the text does not contain valid JSON
    """
    text = text or ""
    start = text.find("{")
    end = text.rfind("}")
    candidate = text[start:end + 1] if start >= 0 and end > start else text
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ValueError(f"Response is not valid JSON: {e}") from e


def clean_answers(parsed: Any) -> List[str]:
    """Keep only the non-empty string answers of a parsed response."""
    answers = parsed.get("answers") if isinstance(parsed, dict) else None
    if not isinstance(answers, list):
        return []
    return [a for a in answers if isinstance(a, str) and a]


def decode_response(text: str, corpus: str, query: str) -> List[str]:
    """Decode a raw model response, falling back to literal matching.

    Args:
        text: Raw model response
        corpus: Corpus the model was asked to search
        query: Extraction query

    Returns:
        List of extracted answers
    """
    try:
        parsed = parse_structured(text)
    except ValueError as e:
        logger.warning(f"Falling back to literal matching: {e}")
        parsed = {"answers": extract_literal_matches(corpus, query)}
    return clean_answers(parsed)
