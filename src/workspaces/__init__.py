"""Repository workspace manager.

Materializes GitHub repositories onto local disk for the coding agent and
keeps that state consistent, authenticated, and bounded in size:
- Deterministic flat and structured workspace paths
- Installation tokens minted per operation through the GitHub App flow
- Single-flight exclusion per workspace path
- Clone, refresh-and-pull, and purge-and-reclone of checkouts
- Inventory, removal, and age-based sweeping of checkouts
"""

from src.workspaces.engine import CloneSyncEngine
from src.workspaces.errors import (
    AuthError,
    FilesystemError,
    NotFoundError,
    ProcessError,
    RegistryError,
    WorkspaceError,
)
from src.workspaces.inventory import RepositoryInventory
from src.workspaces.locks import LockRegistry
from src.workspaces.manager import WorkspaceManager
from src.workspaces.models import (
    CheckoutState,
    ClonedRepositoryEntry,
    CloneResult,
    RepositoryInfo,
    RepositoryRecord,
)
from src.workspaces.paths import PathResolver, sanitize_identifier
from src.workspaces.sweeper import RetentionSweeper

__all__ = [
    "AuthError",
    "CheckoutState",
    "CloneResult",
    "CloneSyncEngine",
    "ClonedRepositoryEntry",
    "FilesystemError",
    "LockRegistry",
    "NotFoundError",
    "PathResolver",
    "ProcessError",
    "RegistryError",
    "RepositoryInfo",
    "RepositoryInventory",
    "RepositoryRecord",
    "RetentionSweeper",
    "WorkspaceError",
    "WorkspaceManager",
    "sanitize_identifier",
]
