"""Application settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Upper bound on reasoning rounds per run.
MAX_ITERATIONS = 20
# Ceiling for a single reasoning backend call.
BACKEND_TIMEOUT_SECONDS = 120.0
MCP_CONNECT_TIMEOUT_SECONDS = 30.0
MCP_REQUEST_TIMEOUT_SECONDS = 60.0

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Configuration read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # HTTP server
    environment: Literal["development", "staging", "production"] = "development"
    host: str = "127.0.0.1"
    port: int = Field(default=8787, ge=1, le=65535)
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    cors_origins: str = "http://localhost:5173"
    sse_ping_interval_seconds: float = Field(default=15.0, ge=0)

    # Reasoning loop
    reasoning_backend: Literal["anthropic", "openai_compat"] = "anthropic"
    backend_timeout_seconds: float = Field(default=BACKEND_TIMEOUT_SECONDS, gt=0)
    max_iterations: int = Field(default=MAX_ITERATIONS, ge=1)

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = Field(default=8192, ge=1)

    # Ollama, LM Studio, vLLM and other /v1/chat/completions servers
    openai_compat_base_url: str = "http://127.0.0.1:11434"
    openai_compat_model: str = "llama3.1"
    openai_compat_api_key: str = ""

    # MCP servers
    mcp_servers_file: str | None = None
    mcp_connect_timeout_seconds: float = Field(default=MCP_CONNECT_TIMEOUT_SECONDS, gt=0)
    mcp_request_timeout_seconds: float = Field(default=MCP_REQUEST_TIMEOUT_SECONDS, gt=0)

    @property
    def cors_origins_list(self) -> list[str]:
        """Comma-separated ``cors_origins`` as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        upper = v.strip().upper()
        if upper not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {', '.join(LOG_LEVELS)}")
        return upper

    @field_validator("reasoning_backend", "environment", mode="before")
    @classmethod
    def normalize_choice(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
