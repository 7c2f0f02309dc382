"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Vibe Search"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # API Keys
    groq_api_key: str | None = None
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "google_api_key", "api_key"),
    )

    # LLM Configuration
    default_provider: Literal["groq", "gemini"] = "groq"
    groq_model: str = "llama-3.3-70b-versatile"
    gemini_model: str = "gemini-2.5-flash"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 2048
    llm_timeout_seconds: float = 60.0

    # Evaluation
    eval_k: int = 10
    eval_concurrency: int = 2
    default_dataset_path: str = "evaluation/dataset.sample.json"

    # Caching
    cache_enabled: bool = True
    cache_dir: str = "evaluation/.cache"
    cache_schema_version: str = "text-v3"

    def api_key_for(self, provider: str) -> str | None:
        """Return the API key configured for a provider."""
        provider = provider.lower()
        if provider == "groq":
            return self.groq_api_key
        if provider == "gemini":
            return self.gemini_api_key
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
