import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from a local .env file if present
load_dotenv()

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_CHAT_MODEL = "google/gemini-2.5-flash"


def _get_env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _get_env_choice(name: str, default: str, allowed: set) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().upper()
    return candidate if candidate in allowed else default


class Settings(BaseModel):
    ai_gateway_api_key: str = Field(default_factory=lambda: os.getenv("AI_GATEWAY_API_KEY", ""))
    ai_gateway_url: str = Field(default_factory=lambda: os.getenv("AI_GATEWAY_URL", DEFAULT_GATEWAY_URL))
    chat_model: str = Field(default_factory=lambda: os.getenv("AI_CHAT_MODEL", DEFAULT_CHAT_MODEL))
    # None leaves the upstream stream open for as long as the gateway keeps it open
    ai_gateway_timeout: Optional[float] = Field(
        default_factory=lambda: _get_env_optional_float("AI_GATEWAY_TIMEOUT"),
    )

    profile_dsn: str = Field(default_factory=lambda: os.getenv("PROFILE_DSN", "sqlite:///backend/profiles.db"))

    log_level: str = Field(
        default_factory=lambda: _get_env_choice(
            "LOG_LEVEL", "INFO", {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        ),
    )

    @model_validator(mode="after")
    def _validate_ranges(self) -> "Settings":
        self.ai_gateway_api_key = self.ai_gateway_api_key.strip()

        # Non-positive timeouts mean "no timeout"
        if self.ai_gateway_timeout is not None and self.ai_gateway_timeout <= 0:
            self.ai_gateway_timeout = None

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
