"""Configuration management for the AWS OIDC console."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aws_oidc_console.auth.capabilities import origin_of
from aws_oidc_console.auth.models import OAuthConfig
from aws_oidc_console.aws.models import (
    CONSOLE_BASE_URL,
    DEFAULT_DURATION_SECONDS,
    DEFAULT_REGION,
    FEDERATION_ENDPOINT,
    MAX_DURATION_SECONDS,
    MAX_ROLE_HISTORY,
    MIN_DURATION_SECONDS,
    STS_ENDPOINT,
    AWSConfig,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OIDC provider. Left empty here; initialize() reports what is missing.
    oauth_authority: str = Field(default="", description="OIDC issuer / authority URL")
    oauth_client_id: str = Field(default="", description="OAuth2 public client ID")
    oauth_scope: str = Field(default="openid profile email")
    redirect_uri: str = Field(default="http://localhost:8000/callback")

    # AWS federation
    aws_region: str = Field(default=DEFAULT_REGION)
    aws_default_duration_seconds: int = Field(default=DEFAULT_DURATION_SECONDS)
    aws_console_base_url: str = Field(default=CONSOLE_BASE_URL)
    aws_sts_endpoint: str = Field(default=STS_ENDPOINT)
    aws_federation_endpoint: str = Field(default=FEDERATION_ENDPOINT)
    aws_federation_endpoint_proxy: str | None = Field(default=None)
    federation_issuer: str | None = Field(
        default=None, description="Issuer shown by AWS signin; defaults to the redirect URI origin"
    )
    role_history_max: int = Field(default=MAX_ROLE_HISTORY, ge=1)

    # Storage
    storage_backend: Literal["file", "memory", "redis"] = Field(default="file")
    storage_path: str = Field(default="~/.aws-oidc-console/store.json")
    redis_url: str | None = Field(default=None)

    # Server Configuration
    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=8000)
    http_timeout_s: float = Field(default=30.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator("aws_default_duration_seconds")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if not MIN_DURATION_SECONDS <= v <= MAX_DURATION_SECONDS:
            raise ValueError(
                f"must be between {MIN_DURATION_SECONDS} and {MAX_DURATION_SECONDS} seconds"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    def oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            authority=self.oauth_authority,
            client_id=self.oauth_client_id,
            scope=self.oauth_scope,
            redirect_uri=self.redirect_uri or None,
        )

    def aws_config(self) -> AWSConfig:
        return AWSConfig(
            region=self.aws_region,
            default_duration_seconds=self.aws_default_duration_seconds,
            console_base_url=self.aws_console_base_url,
            sts_endpoint=self.aws_sts_endpoint,
            federation_endpoint=self.aws_federation_endpoint,
            federation_endpoint_proxy=self.aws_federation_endpoint_proxy,
            issuer=self.federation_issuer or origin_of(self.redirect_uri),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
