from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ENV: str = "local"
    APP_NAME: str = "actor-dashboard"
    LOG_LEVEL: str = "INFO"

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Only the MCP server reads a token from the environment; HTTP callers send their own key.
    APIFY_TOKEN: str | None = None
    APIFY_API_URL: str | None = None

    POLL_INTERVAL_MS: int = 2000
    PROGRESS_TICK_MS: int = 1000
    PROGRESS_CEILING: float = 85.0

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
