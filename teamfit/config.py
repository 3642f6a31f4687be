from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")
    DATABASE_URL: str = "sqlite:///teamfit.db"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    SITE_URL: str = "http://localhost:3000"

    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    STRAVA_REDIRECT_URI: str = "http://localhost:8000/strava/auth/callback"

    # shared secrets for the ingest trigger; unset means that path never authorizes
    STRAVA_WEBHOOK_SECRET: str | None = None
    STRAVA_CRON_SECRET: str | None = None

    CHALLENGE_TZ: str = "UTC"
    INGESTION_LOOKBACK_DAYS: int = 30
    TOKEN_REFRESH_BUFFER_MINUTES: int = 10

    STRAVA_PAGE_SIZE: int = 50
    STRAVA_HTTP_TIMEOUT: float = 15.0
    STRAVA_MAX_RETRIES: int = 3
    STRAVA_BACKOFF_SECONDS: float = 1.0
    STRAVA_BACKOFF_MAX_SECONDS: float = 8.0

@lru_cache
def get_settings() -> Settings:
    return Settings()
