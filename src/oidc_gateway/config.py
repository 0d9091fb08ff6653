"""Configuration management for the OIDC gateway."""

import json
import logging
import os
from functools import lru_cache
from typing import Annotated

import boto3
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# Keys in the AWS secret that may override environment values.
SECRET_OVERRIDE_KEYS = (
    "oidc_client_id",
    "oidc_client_secret",
    "access_token_secret",
    "id_token_secret",
    "refresh_token_secret",
)


def get_aws_secrets(secret_name: str, region_name: str) -> dict:
    """Fetch secrets from AWS Secrets Manager."""
    try:
        session = boto3.session.Session()
        client = session.client(service_name="secretsmanager", region_name=region_name)
        response = client.get_secret_value(SecretId=secret_name)
        return json.loads(response["SecretString"])
    except Exception as e:
        logger.warning(f"Failed to fetch AWS secrets: {e}. Falling back to environment variables.")
        return {}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # External OIDC provider
    oidc_client_id: str = Field(..., description="Client ID registered with the provider")
    oidc_client_secret: str = Field(..., description="Client secret registered with the provider")
    oidc_authorization_url: str = Field(default="https://accounts.google.com/o/oauth2/v2/auth")
    oidc_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    oidc_userinfo_url: str = Field(default="https://openidconnect.googleapis.com/v1/userinfo")
    oidc_issuer: str = Field(default="https://accounts.google.com")
    oidc_jwks_url: str | None = Field(default=None, description="Provider JWKS endpoint")
    oidc_redirect_uri: str = Field(default="http://localhost:8080/auth/callback")
    oidc_scopes: Annotated[list[str], NoDecode] = Field(default=["openid", "profile", "email"])
    oidc_allow_unverified_id_tokens: bool = Field(
        default=False,
        description="Accept provider ID tokens without signature verification (demo only)",
    )
    oidc_http_timeout_seconds: float = Field(default=30.0)

    # Locally issued tokens
    access_token_secret: str = Field(..., description="HMAC key for access tokens")
    id_token_secret: str = Field(..., description="HMAC key for ID tokens")
    refresh_token_secret: str = Field(..., description="HMAC key for refresh tokens")
    token_issuer: str = Field(default="oidc-api-server")
    token_audience: str = Field(default="oidc-api-client")
    token_scopes: Annotated[list[str], NoDecode] = Field(default=["openid", "profile", "email"])
    access_token_ttl_seconds: int = Field(default=3600)
    id_token_ttl_seconds: int = Field(default=3600)
    refresh_token_ttl_seconds: int = Field(default=30 * 24 * 3600)

    # In-memory stores
    state_ttl_seconds: int = Field(default=600)
    state_sweep_interval_seconds: float = Field(default=300)
    session_ttl_seconds: int = Field(default=3600)
    session_sweep_interval_seconds: float = Field(default=600)

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8080)
    server_env: str = Field(default="development")
    post_login_redirect_url: str | None = Field(default=None)

    # CORS Configuration
    cors_origins: Annotated[list[str], NoDecode] = Field(default=["http://localhost:3000"])

    # Logging
    log_level: str = Field(default="INFO")

    # Optional AWS Secrets Manager overlay
    aws_secret_name: str | None = Field(default=None)
    aws_region: str = Field(default="us-east-2")

    @field_validator("cors_origins", "oidc_scopes", "token_scopes", mode="before")
    @classmethod
    def parse_comma_list(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @model_validator(mode="after")
    def check_token_secrets(self) -> "Settings":
        secrets = [self.access_token_secret, self.id_token_secret, self.refresh_token_secret]
        if any(not s for s in secrets):
            raise ValueError("access, id and refresh token secrets must all be set")
        if len(set(secrets)) != len(secrets):
            raise ValueError("access, id and refresh token secrets must be distinct")
        return self

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"


def load_settings(**overrides) -> Settings:
    """Build settings, overlaying AWS secrets when a secret name is configured.

    Secret values take precedence over the environment; explicit keyword
    overrides take precedence over both.
    """
    secret_name = overrides.get("aws_secret_name") or os.getenv("AWS_SECRET_NAME")
    if not secret_name:
        return Settings(**overrides)

    region_name = overrides.get("aws_region") or os.getenv("AWS_REGION", "us-east-2")
    secrets = get_aws_secrets(secret_name, region_name)
    updates = {key: secrets[key] for key in SECRET_OVERRIDE_KEYS if secrets.get(key)}
    if updates:
        logger.info(f"Loaded {len(updates)} value(s) from AWS secret {secret_name}")
    return Settings(**{**updates, **overrides})


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
