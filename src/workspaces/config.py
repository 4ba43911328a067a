"""Workspace manager configuration using pydantic-settings.

This module defines the WorkspaceSettings class that reads configuration
from environment variables with the WORKSPACES_ prefix. Every field has a
default so the inventory and sweeper can run without GitHub App
credentials; clone and sync operations fail with an AuthError until
github_app_id and github_app_private_key are set.
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkspaceSettings(BaseSettings):
    """Repository workspace configuration from environment variables.

    All environment variables are prefixed with WORKSPACES_
    (e.g., WORKSPACES_CLONE_BASE_PATH).
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKSPACES_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Filesystem Layout
    # -------------------------------------------------------------------------
    # Root of the flat tenant/repository layout
    clone_base_path: str = "/var/lib/workspaces/repositories"

    # Root of the structured tenant/user/repository layout (defaults to
    # clone_base_path when unset)
    structured_base_path: Optional[str] = None

    # Tenant name reported for checkouts that predate tenant directories
    legacy_tenant_id: str = "legacy"

    # Days since last access before a checkout is swept
    retention_days: int = 7

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    github_app_id: Optional[str] = None

    # PEM private key; literal "\n" sequences are unescaped
    github_app_private_key: Optional[str] = None

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_api_base_url: str = "https://api.github.com"

    # Host that clone URLs point at; credentials are spliced in for this host
    github_host: str = "github.com"

    # Reuse installation tokens until shortly before they expire
    token_cache_enabled: bool = False

    # Seconds before expiry at which a cached token is considered stale
    token_cache_margin_seconds: int = 600

    # -------------------------------------------------------------------------
    # Git Configuration
    # -------------------------------------------------------------------------
    git_executable: str = "git"

    # Deadline for any single git subprocess
    git_timeout_seconds: int = 300

    # Branch used when neither the caller nor the registry names one
    default_branch: str = "main"

    # -------------------------------------------------------------------------
    # Registry / Metrics
    # -------------------------------------------------------------------------
    # PostgreSQL connection string for the repository registry
    database_url: Optional[str] = None

    # Prometheus push gateway for the sweep job
    metrics_push_gateway: Optional[str] = None

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("clone_base_path", "structured_base_path")
    @classmethod
    def validate_base_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate that base paths are absolute."""
        if v is None:
            return v
        if not Path(v).is_absolute():
            raise ValueError("workspace base paths must be absolute")
        return v

    @field_validator("github_app_private_key")
    @classmethod
    def unescape_private_key(cls, v: Optional[str]) -> Optional[str]:
        """Turn literal \\n sequences from single-line env values into newlines."""
        if v is None:
            return v
        return v.replace("\\n", "\n")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that database URL has a PostgreSQL scheme."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("retention_days")
    @classmethod
    def validate_retention_days(cls, v: int) -> int:
        """Validate that retention days is not negative."""
        if v < 0:
            raise ValueError("retention_days cannot be negative")
        return v

    @field_validator("git_timeout_seconds", "token_cache_margin_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @property
    def base_path(self) -> Path:
        return Path(self.clone_base_path)

    @property
    def structured_path(self) -> Path:
        return Path(self.structured_base_path or self.clone_base_path)


def get_settings() -> WorkspaceSettings:
    """Create and return a WorkspaceSettings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return WorkspaceSettings()
