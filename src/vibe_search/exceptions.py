"""Custom exceptions for the application."""


class VibeSearchError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(VibeSearchError):
    """Raised when required configuration (e.g. an API key) is missing."""

    pass


class DatasetError(VibeSearchError):
    """Raised when an evaluation dataset cannot be read or is malformed."""

    pass


class ExtractionError(VibeSearchError):
    """Raised when LLM answer extraction fails."""

    pass


class CacheError(VibeSearchError):
    """Raised when cache operations fail."""

    pass


class EvaluationError(VibeSearchError):
    """Raised when evaluation fails."""

    pass
