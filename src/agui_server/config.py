from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the AG-UI run server."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    # Gemini weather agent. Without an API key the agent is disabled and runs
    # answer with a pseudo-response instead of calling the model.
    google_api_key: str | None = Field(default=None, alias="GOOGLE_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-pro", alias="GEMINI_MODEL")
    agent_timeout_seconds: float | None = Field(default=None, alias="AGENT_TIMEOUT_SECONDS")

    # Optional single-string override of the modular system prompt
    system_prompt: str | None = Field(default=None, alias="SYSTEM_PROMPT")

    # Streaming cadence
    text_chunk_size: int = Field(default=20, ge=1, alias="TEXT_CHUNK_SIZE")
    text_chunk_delay_ms: int = Field(default=30, ge=0, alias="TEXT_CHUNK_DELAY_MS")
    answer_chunk_delay_ms: int = Field(default=20, ge=0, alias="ANSWER_CHUNK_DELAY_MS")
    step_delay_scale: float = Field(default=1.0, ge=0, alias="STEP_DELAY_SCALE")

    # Weather tool (Open-Meteo)
    weather_geocoding_url: str = Field(
        default="https://geocoding-api.open-meteo.com/v1/search", alias="WEATHER_GEOCODING_URL"
    )
    weather_forecast_url: str = Field(
        default="https://api.open-meteo.com/v1/forecast", alias="WEATHER_FORECAST_URL"
    )
    weather_timeout_seconds: float = Field(default=10.0, alias="WEATHER_TIMEOUT_SECONDS")

    # FastAPI configuration
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    debug: bool = Field(default=False, alias="DEBUG")


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings so multiple imports share a single instance."""

    return Settings()
