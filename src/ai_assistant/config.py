"""Application settings and logging setup."""

import logging
from functools import lru_cache
from typing import List, Optional

import structlog
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Provider credentials
    OPENAI_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_GENERATIVE_AI_API_KEY", "GEMINI_API_KEY"),
    )

    # Generation settings
    GEMINI_MODEL: str = "gemini-1.5-flash"
    MAX_OUTPUT_TOKENS: int = 1000
    PROVIDER_TIMEOUT: float = 60.0
    MOCK_COMPLETIONS: bool = False

    # Storage settings
    STORE_BACKEND: str = "sql"  # "sql" or "memory"
    DATABASE_URL: str = "sqlite:///./data/ai_assistant.db"
    DATABASE_ECHO: bool = False

    # HTTP settings
    CORS_ORIGINS: List[str] = ["*"]

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @property
    def has_openai_key(self) -> bool:
        return bool(self.OPENAI_API_KEY and self.OPENAI_API_KEY.strip())

    @property
    def has_gemini_key(self) -> bool:
        return bool(self.GEMINI_API_KEY and self.GEMINI_API_KEY.strip())


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Configure structlog filtering and rendering."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.LOG_JSON
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
