"""Read-side view of the checkouts under the flat base directory.

Walks base/<tenant>/<repository> without consulting the registry. A
directory directly under the base that is itself a checkout predates
tenant directories and is reported under the legacy tenant id. Nothing
is cached; every call reflects the filesystem as it is.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from src.workspaces.errors import WorkspaceError
from src.workspaces.locks import LockRegistry, workspace_key
from src.workspaces.models import ClonedRepositoryEntry
from src.workspaces.paths import PathResolver

logger = logging.getLogger(__name__)

LEGACY_TENANT_ID = "legacy"


class RepositoryInventory:
    """Enumerates, locates, and removes local checkouts.

    Attributes:
        resolver: Path resolver providing the flat base directory.
        locks: Lock registry shared with the clone/sync engine.
        legacy_tenant_id: Tenant reported for pre-tenant checkouts.
    """

    def __init__(
        self,
        resolver: PathResolver,
        locks: Optional[LockRegistry] = None,
        legacy_tenant_id: str = LEGACY_TENANT_ID,
    ):
        self.resolver = resolver
        self.locks = locks or LockRegistry()
        self.legacy_tenant_id = legacy_tenant_id

    @property
    def base_path(self) -> Path:
        return self.resolver.base_path

    def list_repositories(self) -> List[ClonedRepositoryEntry]:
        """Return every valid checkout, sorted by tenant/repository.

        Directories without git metadata are skipped silently. Unreadable
        directories are logged and skipped.
        """
        if not self.base_path.is_dir():
            return []

        entries: List[ClonedRepositoryEntry] = []
        for tenant_dir in self._subdirectories(self.base_path):
            if PathResolver.is_checkout(tenant_dir):
                entries.append(
                    ClonedRepositoryEntry(
                        tenant_id=self.legacy_tenant_id,
                        repository_name=tenant_dir.name,
                        full_path=tenant_dir,
                    )
                )
                continue

            for repo_dir in self._subdirectories(tenant_dir):
                if PathResolver.is_checkout(repo_dir):
                    entries.append(
                        ClonedRepositoryEntry(
                            tenant_id=tenant_dir.name,
                            repository_name=repo_dir.name,
                            full_path=repo_dir,
                        )
                    )

        return sorted(entries, key=lambda entry: entry.identifier)

    def path_for(
        self, repo_name: str, tenant_id: Optional[str] = None
    ) -> Optional[Path]:
        """Locate a checkout.

        With a tenant the path is constructed directly and returned whether
        or not it exists; the legacy tenant maps to base/<repo_name>. Without
        a tenant the inventory is scanned and the first match by name is
        returned.
        """
        if tenant_id is not None:
            if tenant_id == self.legacy_tenant_id:
                tenant_id = None
            try:
                return self.resolver.flat_path(repo_name, tenant_id)
            except WorkspaceError:
                return None

        for entry in self.list_repositories():
            if entry.repository_name == repo_name:
                return entry.full_path
        return None

    def exists(self, repo_name: str, tenant_id: Optional[str] = None) -> bool:
        path = self.path_for(repo_name, tenant_id)
        return path is not None and PathResolver.is_checkout(path)

    async def remove(self, repo_name: str, tenant_id: Optional[str] = None) -> bool:
        """Delete a checkout.

        Returns:
            True if a directory was removed; False if none was found or
            removal failed.
        """
        path = self.path_for(repo_name, tenant_id)
        # A legacy lookup resolves directly under the base, where tenant
        # directories also live
        if tenant_id == self.legacy_tenant_id and path is not None:
            if not PathResolver.is_checkout(path):
                path = None
        if path is None:
            logger.info(
                "Repository not found for removal",
                extra={"repository": repo_name, "tenant_id": tenant_id},
            )
            return False

        return await self.locks.run(
            workspace_key(path), lambda: self._remove_directory(path)
        )

    async def _remove_directory(self, path: Path) -> bool:
        if not path.exists():
            logger.info(
                "Repository directory not found",
                extra={"path": str(path)},
            )
            return False

        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError:
            logger.exception(
                "Failed to remove repository",
                extra={"path": str(path)},
            )
            return False

        logger.info("Removed repository", extra={"path": str(path)})
        return True

    @staticmethod
    def _subdirectories(path: Path) -> List[Path]:
        try:
            return sorted(entry for entry in path.iterdir() if entry.is_dir())
        except OSError:
            logger.warning(
                "Skipping unreadable directory",
                extra={"path": str(path)},
            )
            return []
