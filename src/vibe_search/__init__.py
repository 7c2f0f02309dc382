"""Vibe Search: LLM answer extraction over a provided corpus."""

__version__ = "0.1.0"
