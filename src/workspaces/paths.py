"""Deterministic on-disk addressing for repository checkouts.

Two layouts are supported:
- flat: base/<tenant_id>/<repo_name>, or base/<repo_name> without a tenant
- structured: structured_base/<tenant_id>/<sanitized phone>/<repo_name>

Identical identity inputs always resolve to the identical path. Path
construction is pure; directory creation is a separate step so callers can
resolve a path (e.g. for a lock key) without touching the filesystem.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from src.workspaces.errors import FilesystemError

logger = logging.getLogger(__name__)

GIT_METADATA_DIR = ".git"

_NON_WORD = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORE_RUN = re.compile(r"_+")


def sanitize_identifier(value: str) -> str:
    """Convert an untrusted identifier into a filesystem-safe segment.

    Every character outside [A-Za-z0-9_] becomes an underscore, runs of
    underscores collapse to one, and leading/trailing underscores are
    stripped. Total over all strings; "" sanitizes to "".

    Args:
        value: Raw identifier such as "+1 (555) 123-4567".

    Returns:
        The sanitized segment, e.g. "1_555_123_4567".
    """
    replaced = _NON_WORD.sub("_", value)
    collapsed = _UNDERSCORE_RUN.sub("_", replaced)
    return collapsed.strip("_")


def _validate_segment(segment: str, label: str) -> str:
    """Reject segments that would alias the parent or escape the base."""
    if not segment or segment in (".", ".."):
        raise FilesystemError(f"Invalid {label} path segment: {segment!r}")
    if "/" in segment or "\\" in segment or "\x00" in segment:
        raise FilesystemError(
            f"{label} path segment must not contain separators: {segment!r}"
        )
    return segment


class PathResolver:
    """Resolves workspace paths for the flat and structured layouts.

    Attributes:
        base_path: Root of the flat layout.
        structured_base_path: Root of the structured layout.
    """

    def __init__(
        self,
        base_path: Path,
        structured_base_path: Optional[Path] = None,
    ):
        self.base_path = Path(base_path)
        self.structured_base_path = Path(structured_base_path or base_path)

    def flat_path(self, repo_name: str, tenant_id: Optional[str] = None) -> Path:
        """Return base/<tenant_id>/<repo_name>, or base/<repo_name> without a tenant."""
        name = _validate_segment(repo_name, "repository")
        if tenant_id is None:
            return self.base_path / name
        return self.base_path / _validate_segment(tenant_id, "tenant") / name

    def structured_path(
        self,
        repo_name: str,
        tenant_id: str,
        user_phone: str,
    ) -> Path:
        """Return structured_base/<tenant_id>/<sanitized phone>/<repo_name>.

        Raises:
            FilesystemError: If any segment is empty after sanitization,
                which would otherwise collapse onto the tenant directory.
        """
        return (
            self.structured_base_path
            / _validate_segment(tenant_id, "tenant")
            / _validate_segment(sanitize_identifier(user_phone), "user")
            / _validate_segment(repo_name, "repository")
        )

    def tenant_directory(self, tenant_id: str) -> Path:
        return self.base_path / _validate_segment(tenant_id, "tenant")

    @staticmethod
    def ensure_directory(path: Path) -> Path:
        """Create a directory and any missing parents.

        Raises:
            FilesystemError: If directory creation fails.
        """
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                f"Failed to create directory {path}: {exc}",
                original_error=exc,
            ) from exc
        return path

    @staticmethod
    def is_checkout(path: Path) -> bool:
        """Return True when ``path`` has a git metadata directory at its root."""
        return (path / GIT_METADATA_DIR).exists()
