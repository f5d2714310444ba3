"""
Shared configuration management for the token verification service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="VERIFIER_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream identity API
    identity_api_url: str = Field(default="http://localhost:8090/users/@me")
    auth_scheme: str = Field(default="Bearer")
    upstream_timeout_seconds: float = Field(default=10.0)

    # Verification policy
    batch_max_items: int = Field(default=100)
    batch_item_delay_ms: int = Field(default=200)
    min_token_length: int = Field(default=50)
    token_separator: str = Field(default=".")

    # Audit sink
    audit_webhook_url: Optional[str] = Field(default=None)
    audit_timeout_seconds: float = Field(default=5.0)
    audit_username: str = Field(default="Token Verifier")
    audit_avatar_url: Optional[str] = Field(default=None)
    audit_forward_kinds: List[str] = Field(default_factory=lambda: ["request", "login", "error"])
    audit_max_data_chars: int = Field(default=1000)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
