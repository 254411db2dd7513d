"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Every knob comes from a PEERLINK_* environment variable or .env (never hardcoded at call sites)
    - get_settings() is cached (lru_cache) — single instance per process
    - Intervals and timeouts are positive; worker and retry budgets are bounded

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - retry_base_delay_ms defaults to 0: failed deliveries re-enqueue immediately unless
      backoff is opted into
    - peer_exchange is a name, not an import path: the runtime maps it to a strategy class
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from peerlink.core.domain_types import normalize_domain


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="PEERLINK_", case_sensitive=False,
    )

    # Local node
    local_domain: str = "localhost:4001"
    local_name: str = "PeerLink Node"
    local_description: str = "A PeerLink federation node"
    service_name: str = "peerlink"
    url_scheme: Literal["https", "http"] = "https"
    version: str = "1.0.0"
    capabilities: list[str] = [
        "federation", "real_time", "data_collection", "ai_agents",
    ]

    @field_validator("local_domain")
    @classmethod
    def normalize_local_domain(cls, v: str) -> str:
        """Same normalization as registry keys and WebFinger lookups."""
        v = normalize_domain(v)
        if not v:
            raise ValueError("local_domain cannot be empty")
        return v

    # Delivery engine
    max_workers: int = Field(10, ge=1, le=500)
    max_retry_attempts: int = Field(3, ge=0, le=20)
    retry_base_delay_ms: int = Field(0, ge=0)
    retry_max_delay_ms: int = Field(60_000, ge=0)
    delivery_timeout_seconds: float = Field(15.0, gt=0)

    # Outbound HTTP (discovery, probes, key fetches)
    http_timeout_seconds: float = Field(5.0, gt=0)

    # Periodic cycles
    health_check_interval_seconds: float = Field(30.0, gt=0)
    discovery_interval_seconds: float = Field(300.0, gt=0)
    stats_interval_seconds: float = Field(10.0, gt=0)
    ping_interval_seconds: float = Field(30.0, gt=0)

    # Peer exchange
    peer_exchange: Literal["static", "following"] = "following"
    bootstrap_peers: list[str] = []

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
