"""Service configuration using pydantic-settings.

This module defines the AutopromoteSettings class that reads configuration
from environment variables (and an optional ``.env`` file). The variable
names match the ones the GitHub App was originally deployed with:
``APP_ID``, ``PRIVATE_KEY_PATH``, ``WEBHOOK_SECRET`` and ``PORT``.

Missing or invalid required values are startup-fatal and surface as
ConfigurationError from load_settings().
"""

from pathlib import Path
from typing import Literal

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or unusable.

    This is the only error class allowed to terminate the process.
    """


class AutopromoteSettings(BaseSettings):
    """Webhook receiver configuration from environment variables.

    Required fields (must be set via environment variables or .env):
    - app_id: GitHub App identifier
    - private_key_path: Path to the GitHub App PEM private key
    - webhook_secret: Shared secret used to sign webhook deliveries
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    app_id: str

    private_key_path: str

    webhook_secret: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Workflow Configuration
    # -------------------------------------------------------------------------
    # Branch whose pushes trigger the promotion workflow
    target_branch: str = "mass-bump-versions"

    # Integration branch the pull request is opened against
    base_branch: str = "master"

    # Title used for both the pull request and the squash commit
    pull_request_title: str = "[skip ci] chore: Mass bump versions"

    merge_method: Literal["merge", "squash", "rebase"] = "squash"

    # Upper bound on workflow plans running at the same time
    max_concurrent_plans: int = 8

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 3000

    webhook_path: str = "/api/webhook"

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("app_id")
    @classmethod
    def validate_app_id(cls, v: str) -> str:
        """Validate that the app id is a non-empty string."""
        if not v or not v.strip():
            raise ValueError("app_id cannot be empty")
        return v.strip()

    @field_validator("webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("webhook_secret cannot be empty")
        return v

    @field_validator("private_key_path")
    @classmethod
    def validate_private_key_path(cls, v: str) -> str:
        """Validate that the private key path is set."""
        if not v or not v.strip():
            raise ValueError("private_key_path cannot be empty")
        return v.strip()

    @field_validator("target_branch", "base_branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        """Validate branch names and strip a leading refs/heads/."""
        v = v.strip()
        if v.startswith("refs/heads/"):
            v = v[len("refs/heads/"):]
        if not v:
            raise ValueError("branch name cannot be empty")
        return v

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: str) -> str:
        """Validate that the webhook path is absolute."""
        if not v.startswith("/"):
            raise ValueError("webhook_path must start with /")
        return v

    @field_validator("max_concurrent_plans")
    @classmethod
    def validate_max_concurrent_plans(cls, v: int) -> int:
        """Validate that at least one plan may run."""
        if v < 1:
            raise ValueError("max_concurrent_plans must be at least 1")
        return v

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
        """Validate the log level name, case-insensitively."""
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def target_ref(self) -> str:
        """Fully qualified ref of the target branch."""
        return f"refs/heads/{self.target_branch}"

    def read_private_key(self) -> str:
        """Read and parse the GitHub App private key.

        Returns:
            str: The PEM encoded private key.

        Raises:
            ConfigurationError: If the file is missing, unreadable or does
                not hold a usable PEM private key.
        """
        path = Path(self.private_key_path)
        try:
            key = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(
                f"Cannot read private key at {path}: {exc}"
            ) from exc

        try:
            serialization.load_pem_private_key(key.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise ConfigurationError(f"{path} is not a PEM private key: {exc}") from exc
        return key


def load_settings(**overrides) -> AutopromoteSettings:
    """Create and return an AutopromoteSettings instance.

    Args:
        **overrides: Values that take precedence over the environment.

    Returns:
        AutopromoteSettings: Configured settings instance.

    Raises:
        ConfigurationError: If required fields are missing or invalid.
    """
    try:
        return AutopromoteSettings(**overrides)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "settings"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {fields}") from exc
