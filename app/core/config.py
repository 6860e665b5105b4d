from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Auth
    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Database
    DATABASE_URL: str = "sqlite:///./shiftsmart.db"

    # LLM
    LLM_PROVIDER: str = "anthropic"
    LLM_MODEL: str = "claude-haiku-4-5"
    ANTHROPIC_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None
    LLM_TIMEOUT_SECONDS: float = 120.0
    GENERATION_MAX_TOKENS: int = 64000
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_BASE_DELAY_MS: int = 1000

    # Scheduling
    BUREAUS: list[str] = ["Milan", "Rome"]
    SCHEDULING_TEAM: str = "Breaking News"
    SCHEDULE_UTC_OFFSET: str = "+01:00"
    HISTORY_WINDOW_DAYS: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def is_ai_configured() -> bool:
    """True when the active LLM provider has an API key."""
    if settings.LLM_PROVIDER == "gemini":
        return bool(settings.GEMINI_API_KEY)
    return bool(settings.ANTHROPIC_API_KEY)
