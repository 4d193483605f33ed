"""
Runtime configuration for the travel assistant.

Values come from the environment (or a ``.env`` file next to the working
directory). Field names map to upper-case env vars, e.g. ``SESSION_TTL``.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from travel_agent.domain.errors import ConfigError


class Settings(BaseSettings):
    """Global configuration, instantiated once through ``get_settings()``"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Service -------------------------------------------------------------
    service_name: str = "travel-agent"
    environment: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # --- Gemini (analysis + generation) --------------------------------------
    gemini_api_key: Optional[str] = Field(default=None, description="env: GEMINI_API_KEY")
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    temperature: float = 0.7
    max_output_tokens: int = 4000

    # --- Tavily (retrieval) --------------------------------------------------
    tavily_api_key: Optional[str] = Field(default=None, description="env: TAVILY_API_KEY")
    tavily_url: str = "https://api.tavily.com/search"

    # --- Session memory ------------------------------------------------------
    store_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    session_ttl: int = 3600
    max_messages_per_session: int = 20
    context_window_size: int = 10
    prompt_history_size: int = 6

    # --- Turn execution ------------------------------------------------------
    max_search_results: int = 5
    collaborator_timeout_s: float = 30.0
    serialize_session_turns: bool = True

    # User-facing fixed strings, localise per deployment
    apology_message: str = "Sorry, I ran into an unexpected problem. Please try again."
    empty_message_reply: str = "Please provide a message."

    def validate_required(self) -> None:
        """Raise ConfigError listing every missing credential"""

        errors: List[str] = []
        if not self.gemini_api_key:
            errors.append("GEMINI_API_KEY is required")
        if not self.tavily_api_key:
            errors.append("TAVILY_API_KEY is required")

        if errors:
            raise ConfigError("Configuration errors:\n" + "\n".join(errors))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
