"""Configuration schemas.

Loaded from mamacare/config/defaults.toml by settings.load_config().
Gibberish thresholds, fallback pacing, and retry policy are tuned
values, so all of them live here instead of in code.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class UpstreamConfig(BaseModel):
    """LiteLLM routing and limits for the hosted text-generation model."""

    model: str = Field(description="LiteLLM model identifier")
    api_key_env: str = Field(
        default="HF_TOKEN", description="Environment variable holding the API key"
    )
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    timeout: float = Field(
        default=30.0, ge=30.0, le=45.0, description="Wall-clock bound per request in seconds"
    )
    max_tokens: int = Field(default=800, gt=0, description="Completion token limit")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    start_attempts: int = Field(
        default=1, ge=1, le=3, description="Attempts to open the stream before falling back"
    )


class GibberishConfig(BaseModel):
    """Thresholds for the corrupted-output heuristic."""

    check_every: int = Field(default=10, gt=0, description="Run the check every N deltas")
    window_chars: int = Field(default=200, gt=0, description="Trailing window inspected")
    min_space_ratio: float = Field(
        default=1 / 15, gt=0.0, lt=1.0, description="Minimum spaces per character in the window"
    )
    min_ratio_chars: int = Field(
        default=100, ge=0, description="Window length before the space ratio is enforced"
    )
    max_lowercase_run: int = Field(
        default=40, gt=0, description="Unbroken lowercase run length that flags the stream"
    )


class ProxyConfig(BaseModel):
    """Server-side streaming proxy settings."""

    gibberish: GibberishConfig = Field(default_factory=GibberishConfig)
    fallback_slice_chars: int = Field(
        default=5, gt=0, description="Characters per simulated fallback chunk"
    )
    fallback_slice_delay: float = Field(
        default=0.02, ge=0.0, description="Pause between fallback chunks in seconds"
    )


class ClientConfig(BaseModel):
    """Client-side consumer retry policy."""

    base_url: str = Field(default="http://127.0.0.1:8000", description="Proxy base URL")
    max_retries: int = Field(default=3, ge=0, le=5, description="Retries after the first attempt")
    backoff_base: float = Field(default=1.0, ge=0.0, description="First retry delay in seconds")
    backoff_cap: float = Field(default=10.0, ge=0.0, description="Maximum retry delay in seconds")
    attempt_timeout: float = Field(
        default=45.0, gt=0.0, description="Wall-clock bound per attempt in seconds"
    )


class PersistenceConfig(BaseModel):
    """Question history storage."""

    enabled: bool = Field(default=True, description="Whether committed answers are stored")
    db_path: str = Field(
        default="~/.mamacare/questions.db", description="Path to the SQLite database file"
    )


class AppConfig(BaseModel):
    """Top-level configuration."""

    upstream: UpstreamConfig
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
