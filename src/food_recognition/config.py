"""Application configuration."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str | None = None
    openai_chat_model: str = "gpt-4"
    openai_vision_model: str = "gpt-4o"
    openai_max_tokens: int = Field(default=1000, ge=1)
    openai_concurrency: int = Field(default=4, ge=1)
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    openfoodfacts_timeout_seconds: float = Field(default=12.0, gt=0)
    openfoodfacts_page_size: int = Field(default=3, ge=1)
    openfoodfacts_user_agent: str = "food-recognition/0.1 (nutrition lookup)"
    reference_cache_ttl_seconds: int = 3600
    reference_miss_ttl_seconds: int = 300
    reference_retry_attempts: int = Field(default=1, ge=0)
    reference_retry_delay_seconds: float = Field(default=0.3, ge=0)
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
