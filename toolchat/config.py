"""Application configuration using pydantic-settings."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant in a demo chat application. "
    "You can use tools to evaluate math expressions, look up the current date and time, "
    "and report statistics about the current chat session. "
    "Use the calculator for any arithmetic instead of computing it yourself. "
    "Keep answers short and friendly."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Toolchat"
    log_level: str = "INFO"
    cors_origins: str = "*"

    # Inference
    anthropic_api_key: str | None = None
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1000
    temperature: float = 0.1
    max_steps: int = 5
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_message_tokens: int = 2000
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    # Session storage
    store_backend: Literal["memory", "redis", "disabled"] = "memory"
    redis_url: str | None = None
    session_ttl_seconds: int = 86400  # 24 hours

    # Coordination relay
    coordinator_url: str | None = None
    coordinator_timeout_seconds: float = 5.0

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
