"""Data models for the repository workspace manager.

This module defines:
- RepositoryRecord: Read-only registry row describing a GitHub repository
- RepositoryInfo: Repository summary returned with a clone result
- CloneResult: Outcome of a clone or sync operation
- ClonedRepositoryEntry: A checkout discovered by walking the base directory
- CheckoutState: Inspection outcome driving the clone/sync state machine

RepositoryRecord uses Pydantic for validation of registry rows; the result
types are plain dataclasses since they are built internally.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator


class CheckoutState(str, Enum):
    """State of a workspace path as observed on disk.

    Attributes:
        NO_LOCAL_COPY: Nothing exists at the path.
        VALID_CHECKOUT: The path holds a .git metadata directory.
        INVALID_DIRECTORY: The path exists but is not a git checkout.
    """

    NO_LOCAL_COPY = "no_local_copy"
    VALID_CHECKOUT = "valid_checkout"
    INVALID_DIRECTORY = "invalid_directory"


class RepositoryRecord(BaseModel):
    """A repository row from the external registry.

    Attributes:
        id: Opaque registry identifier.
        name: Repository name without owner (e.g. "widgets").
        full_name: Owner-qualified name (e.g. "acme/widgets").
        clone_url: Unauthenticated HTTPS remote.
        default_branch: Branch recorded as the repository default, if known.
        installation_id: GitHub App installation that scopes credentials.
        tenant_id: Organization owning the installation, if known.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    clone_url: str = Field(..., min_length=1)
    default_branch: Optional[str] = None
    installation_id: int
    tenant_id: Optional[str] = None

    @field_validator("clone_url")
    @classmethod
    def validate_clone_url(cls, v: str) -> str:
        """Reject remotes that are not HTTPS or that embed credentials."""
        parts = urlsplit(v)
        if parts.scheme != "https":
            raise ValueError("clone_url must be an https:// URL")
        if parts.username or parts.password:
            raise ValueError("clone_url must not embed credentials")
        return v


@dataclass
class RepositoryInfo:
    """Summary of the repository a clone result refers to."""

    id: str
    name: str
    full_name: str
    clone_url: str

    @classmethod
    def from_record(cls, record: RepositoryRecord) -> "RepositoryInfo":
        return cls(
            id=record.id,
            name=record.name,
            full_name=record.full_name,
            clone_url=record.clone_url,
        )


@dataclass
class CloneResult:
    """Outcome of a clone or sync operation.

    Always returned, never raised. On failure ``repository_path`` is None
    and ``error`` describes what went wrong with credentials masked.

    Attributes:
        success: True when the checkout exists and is up to date.
        repository_path: Resolved workspace path on success.
        repository_info: Summary of the repository on success.
        error: Failure description on failure.
    """

    success: bool
    repository_path: Optional[Path] = None
    repository_info: Optional[RepositoryInfo] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "CloneResult":
        return cls(success=False, error=error)

    def to_response(self) -> Dict[str, Any]:
        """Render the result as the camelCase mapping relayed to HTTP callers."""
        response: Dict[str, Any] = {
            "success": self.success,
            "repositoryPath": (
                str(self.repository_path) if self.repository_path else ""
            ),
        }
        if self.repository_info is not None:
            response["repositoryInfo"] = {
                "id": self.repository_info.id,
                "name": self.repository_info.name,
                "fullName": self.repository_info.full_name,
                "cloneUrl": self.repository_info.clone_url,
            }
        if self.error is not None:
            response["error"] = self.error
        return response


@dataclass(frozen=True)
class ClonedRepositoryEntry:
    """A local checkout found under the base directory.

    Attributes:
        tenant_id: Tenant directory name, or the legacy sentinel.
        repository_name: Directory name of the checkout.
        full_path: Absolute path of the checkout.
    """

    tenant_id: str
    repository_name: str
    full_path: Path

    @property
    def identifier(self) -> str:
        return f"{self.tenant_id}/{self.repository_name}"
