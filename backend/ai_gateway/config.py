"""
Application settings
Read once at startup from the environment (prefix GATEWAY_) or a .env file.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ai_gateway.services.provider_registry import DEFAULT_FALLBACK_MODELS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        extra="ignore",
    )

    APP_NAME: str = "AI Gateway"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Unified gateway with fallback, circuit breakers, rate limiting and caching"
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # "echo" answers locally, "http" calls OpenAI-compatible upstreams
    ADAPTOR: str = "echo"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    PROVIDERS_FILE: Optional[str] = None
    FALLBACK_MODELS: List[str] = list(DEFAULT_FALLBACK_MODELS)

    CACHE_TTL_SECONDS: float = 300.0
    CACHE_MAX_ENTRIES: int = 1000
    BREAKER_FAILURE_THRESHOLD: int = 3
    BREAKER_COOLDOWN_SECONDS: float = 300.0
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0
    CACHE_SWEEP_INTERVAL_SECONDS: float = 600.0
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 60.0

    # Provider keys keep their conventional unprefixed names
    OPENAI_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("OPENAI_API_KEY", "GATEWAY_OPENAI_API_KEY"))
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("ANTHROPIC_API_KEY", "GATEWAY_ANTHROPIC_API_KEY"))
    GOOGLE_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("GOOGLE_API_KEY", "GATEWAY_GOOGLE_API_KEY"))
    MISTRAL_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("MISTRAL_API_KEY", "GATEWAY_MISTRAL_API_KEY"))

    def provider_api_keys(self) -> Dict[str, Optional[str]]:
        return {
            "openai": self.OPENAI_API_KEY,
            "anthropic": self.ANTHROPIC_API_KEY,
            "google": self.GOOGLE_API_KEY,
            "mistral": self.MISTRAL_API_KEY,
        }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
