"""Prompt templates for LLM answer extraction - Version 1.0.

This module contains the initial prompt templates for extraction.
Future versions can be added as v2_0.py, v3_0.py, etc. to track prompt evolution.
"""

PROMPT_VERSION = "v1.0"

SYSTEM_PROMPT = """You are a careful extractor. You read a corpus of text and return every span that answers the user's extraction query.

Key principles:
1. **Literal**: Copy answers exactly as they appear in the corpus, preserving case
2. **Complete**: Return every occurrence, including repeated ones, in corpus order
3. **Grounded**: Never invent answers that are not present in the corpus

Output Format:
- Return JSON only, with no preamble or explanation
- Use the shape {"answers": ["..."]}"""


EXAMPLE = """Corpus: ABcabCB
Query: B,c
Expected JSON: { "answers": ["B","c","C"] }"""


def build_user_prompt(corpus: str, query: str) -> str:
    """Build the user prompt for an extraction request.

    Args:
        corpus: Normalized corpus text to search
        query: Natural-language description of what to extract

    Returns:
        Formatted user prompt
    """
    return f"""You are a careful extractor. Given the corpus and a query describing what to extract, return JSON only with:
{{
  "answers": ["..."]
}}

Examples:
{EXAMPLE}

User Query: {query}
---
Corpus:
{corpus}
---"""
