"""Facade exposing workspace operations to the request-handling layer.

WorkspaceManager wires the clone/sync engine, inventory, and sweeper
around one shared lock registry so that every mutating entry point
serializes on the same resolved-path keys.

Source:
- src/workspaces/engine.py (CloneSyncEngine)
- src/workspaces/inventory.py (RepositoryInventory)
- src/workspaces/sweeper.py (RetentionSweeper)
- src/workspaces/config.py (WorkspaceSettings)
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from src.workspaces.config import WorkspaceSettings
from src.workspaces.credentials import (
    CredentialProvider,
    GitHubAppCredentialProvider,
)
from src.workspaces.engine import CloneSyncEngine
from src.workspaces.git import GitRunner
from src.workspaces.inventory import RepositoryInventory
from src.workspaces.locks import LockRegistry
from src.workspaces.metrics import WorkspaceMetrics
from src.workspaces.models import ClonedRepositoryEntry, CloneResult
from src.workspaces.paths import PathResolver
from src.workspaces.registry import PostgresRepositoryRegistry, RepositoryRegistry
from src.workspaces.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Entry point for cloning, syncing, inventorying, and sweeping checkouts.

    Example:
        >>> async with WorkspaceManager.from_settings(get_settings()) as manager:
        ...     result = await manager.clone_or_sync("R1")
        ...     if not result.success:
        ...         print(result.error)
    """

    def __init__(
        self,
        engine: CloneSyncEngine,
        inventory: RepositoryInventory,
        sweeper: RetentionSweeper,
    ):
        self.engine = engine
        self.inventory = inventory
        self.sweeper = sweeper

    @classmethod
    def build(
        cls,
        registry: RepositoryRegistry,
        credentials: CredentialProvider,
        resolver: PathResolver,
        locks: Optional[LockRegistry] = None,
        git: Optional[GitRunner] = None,
        default_branch: str = "main",
        github_host: str = "github.com",
        legacy_tenant_id: str = "legacy",
        retention_days: int = 7,
        metrics: Optional[WorkspaceMetrics] = None,
    ) -> "WorkspaceManager":
        """Assemble a manager whose components share one lock registry."""
        locks = locks or LockRegistry()
        engine = CloneSyncEngine(
            registry=registry,
            credentials=credentials,
            resolver=resolver,
            locks=locks,
            git=git,
            default_branch=default_branch,
            github_host=github_host,
            metrics=metrics,
        )
        inventory = RepositoryInventory(
            resolver=resolver,
            locks=locks,
            legacy_tenant_id=legacy_tenant_id,
        )
        sweeper = RetentionSweeper(
            inventory=inventory,
            retention_days=retention_days,
            metrics=metrics,
        )
        return cls(engine=engine, inventory=inventory, sweeper=sweeper)

    @classmethod
    def from_settings(
        cls,
        settings: WorkspaceSettings,
        registry: Optional[RepositoryRegistry] = None,
        metrics: Optional[WorkspaceMetrics] = None,
    ) -> "WorkspaceManager":
        """Build a manager from environment configuration.

        Args:
            settings: Loaded workspace settings.
            registry: Registry override; defaults to PostgreSQL at
                settings.database_url.
            metrics: Optional metrics sink.

        Raises:
            ValueError: If no registry is given and database_url is unset.
        """
        if registry is None:
            if not settings.database_url:
                raise ValueError(
                    "database_url is required when no registry is provided"
                )
            registry = PostgresRepositoryRegistry(settings.database_url)

        credentials = GitHubAppCredentialProvider(
            app_id=settings.github_app_id,
            private_key=settings.github_app_private_key,
            base_url=settings.github_api_base_url,
            cache_enabled=settings.token_cache_enabled,
            cache_margin_seconds=settings.token_cache_margin_seconds,
        )
        return cls.build(
            registry=registry,
            credentials=credentials,
            resolver=PathResolver(settings.base_path, settings.structured_path),
            git=GitRunner(
                executable=settings.git_executable,
                timeout_seconds=settings.git_timeout_seconds,
            ),
            default_branch=settings.default_branch,
            github_host=settings.github_host,
            legacy_tenant_id=settings.legacy_tenant_id,
            retention_days=settings.retention_days,
            metrics=metrics,
        )

    async def __aenter__(self) -> "WorkspaceManager":
        connect = getattr(self.engine.registry, "connect", None)
        if connect is not None:
            await connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the registry pool and HTTP client, if any."""
        disconnect = getattr(self.engine.registry, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        close_credentials = getattr(self.engine.credentials, "close", None)
        if close_credentials is not None:
            await close_credentials()

    async def clone_or_sync(
        self,
        repository_id: str,
        target_path: Optional[Union[str, Path]] = None,
        branch: Optional[str] = None,
    ) -> CloneResult:
        return await self.engine.clone_or_sync(repository_id, target_path, branch)

    async def clone_or_sync_structured(
        self,
        repository_id: str,
        tenant_id: str,
        user_phone: str,
        branch: Optional[str] = None,
    ) -> CloneResult:
        return await self.engine.clone_or_sync_structured(
            repository_id, tenant_id, user_phone, branch
        )

    async def clone_first_for_tenant(
        self,
        tenant_id: str,
        target_path: Optional[Union[str, Path]] = None,
        branch: Optional[str] = None,
    ) -> CloneResult:
        return await self.engine.clone_first_for_tenant(tenant_id, target_path, branch)

    def list_repositories(self) -> List[ClonedRepositoryEntry]:
        return self.inventory.list_repositories()

    async def remove(self, repo_name: str, tenant_id: Optional[str] = None) -> bool:
        return await self.inventory.remove(repo_name, tenant_id)

    def path_for(
        self, repo_name: str, tenant_id: Optional[str] = None
    ) -> Optional[Path]:
        return self.inventory.path_for(repo_name, tenant_id)

    def exists(self, repo_name: str, tenant_id: Optional[str] = None) -> bool:
        return self.inventory.exists(repo_name, tenant_id)

    async def sweep(self, max_age_days: Optional[float] = None) -> List[str]:
        return await self.sweeper.sweep(max_age_days)
