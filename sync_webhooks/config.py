"""Configuration management using Pydantic Settings."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Only load .env file in development (not Lambda/production)
        env_file=".env" if os.getenv("AWS_EXECUTION_ENV") is None else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Configuration
    aws_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None  # Required for temporary credentials

    # Secrets and identifiers that are "unset" when blank
    github_repo: str | None = None
    github_pat: str | None = None
    pco_webhook_secret: str | None = None
    cloudflare_webhook_secret: str | None = None
    webhook_logs_table: str | None = None

    @field_validator(
        "aws_access_key_id",
        "aws_secret_access_key",
        "aws_session_token",
        "github_repo",
        "github_pat",
        "pco_webhook_secret",
        "cloudflare_webhook_secret",
        "webhook_logs_table",
        mode="before",
    )
    @classmethod
    def convert_empty_string_to_none(cls, v):
        """Convert empty strings to None so unset secrets stay unset."""
        if v is None:
            return None
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    # DynamoDB Configuration
    dynamodb_endpoint_url: str | None = None
    dynamodb_connect_timeout_seconds: float = 2.0
    dynamodb_read_timeout_seconds: float = 3.0
    dynamodb_max_attempts: int = 2

    # Application Configuration
    stage: str = "unknown"
    log_level: str = "INFO"
    api_title: str = "Sync Webhooks"
    api_version: str = "1.0.0"
    api_gateway_base_path: str = "/"

    # GitHub workflow dispatch
    github_api_url: str = "https://api.github.com"
    github_workflow_file: str = "daily-sync.yml"
    github_ref: str = "main"
    github_user_agent: str = "sync-webhooks"
    github_connect_timeout_seconds: float = 10.0
    github_read_timeout_seconds: float = 30.0

    # Verification and routing
    signature_tolerance_seconds: int = 300
    # Comma separated source tags that are audited but never dispatched
    log_only_sources: str = "pco"

    # Audit log
    audit_ttl_days: int = 90
    audit_timezone: str = "America/Chicago"
    max_raw_payload_bytes: int = 300_000
    # payload + payload_raw together; DynamoDB items stop at 400 KB
    max_audit_payload_bytes: int = 350_000

    # Webhook subscription management (operator scripts)
    pco_client_id: str | None = None
    pco_secret: str | None = None
    pco_api_url: str = "https://api.planningcenteronline.com"
    cloudflare_account_id: str | None = None
    cloudflare_api_token: str | None = None
    cloudflare_api_url: str = "https://api.cloudflare.com/client/v4"

    @property
    def log_only_source_set(self) -> frozenset[str]:
        """Source tags configured as log-only, lowercased."""
        return frozenset(
            part.strip().lower()
            for part in self.log_only_sources.split(",")
            if part.strip()
        )


# Global settings instance
settings = Settings()
