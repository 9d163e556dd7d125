"""Receiver configuration using pydantic-settings.

This module defines the ReceiverSettings class that reads configuration
from environment variables. The GitHub App credentials are required; the
receiver refuses to start without them.

Environment variables:
- GITHUB_WEBHOOK_SECRET: Shared secret GitHub signs deliveries with
- GITHUB_PRIVATE_KEY: App private key (PEM; literal ``\\n`` allowed)
- GITHUB_APP_IDENTIFIER: App ID, used as the assertion issuer
"""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.receiver.auth.assertion import normalize_pem
from src.receiver.webhook.handlers import DEFAULT_ISSUE_LABEL


class ReceiverSettings(BaseSettings):
    """GitHub App receiver configuration from environment variables.

    Required fields (must be set via environment variables):
    - github_webhook_secret: Secret for validating webhook signatures
    - github_private_key: App private key for signing assertions
    - github_app_identifier: App ID placed in the assertion issuer claim
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    # Secret for validating GitHub webhook signatures
    github_webhook_secret: str

    # PEM-encoded RSA private key of the GitHub App
    github_private_key: str

    # GitHub App ID, the issuer of every app assertion
    github_app_identifier: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_api_url: str = "https://api.github.com"

    # Upper bound for the installation token exchange
    github_exchange_timeout_seconds: float = 10.0

    # Timeout for API calls made by event handlers
    github_api_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Handler Configuration
    # -------------------------------------------------------------------------
    # Label added to newly opened issues
    issue_label: str = DEFAULT_ISSUE_LABEL

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    # Host address to bind the server to
    host: str = "0.0.0.0"

    # Port number for the server
    port: int = 8080

    # Root log level
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("github_webhook_secret cannot be empty")
        return v

    @field_validator("github_private_key")
    @classmethod
    def validate_private_key(cls, v: str) -> str:
        """Normalise escaped newlines and check for a PEM private key block."""
        pem = normalize_pem(v or "")
        if not pem.startswith("-----BEGIN") or "PRIVATE KEY-----" not in pem:
            raise ValueError("github_private_key must be a PEM private key")
        return pem

    @field_validator("github_app_identifier")
    @classmethod
    def validate_app_identifier(cls, v: str) -> str:
        """Validate that the App identifier is not empty."""
        if not v or not v.strip():
            raise ValueError("github_app_identifier cannot be empty")
        return v.strip()

    @field_validator("github_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate that the API URL is a valid URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("github_exchange_timeout_seconds", "github_api_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("issue_label")
    @classmethod
    def validate_issue_label(cls, v: str) -> str:
        """Validate that the issue label is not empty."""
        if not v or not v.strip():
            raise ValueError("issue_label cannot be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard level name."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"log_level must be a logging level name, got {v!r}")
        return level


def get_settings() -> ReceiverSettings:
    """Create and return ReceiverSettings instance.

    Returns:
        ReceiverSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return ReceiverSettings()
