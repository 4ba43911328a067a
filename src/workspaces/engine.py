"""Clone/sync engine for repository workspaces.

Given a repository identity and desired branch, ensures a local working
copy exists and is current. Each invocation resolves the target path,
serializes on that path through the lock registry, inspects the directory,
and then dispatches:

    VALID_CHECKOUT    -> refresh token, rewrite origin, pull, restore origin
    INVALID_DIRECTORY -> purge contents, then clone
    NO_LOCAL_COPY     -> clone, restore origin

Credentials are minted fresh before every clone and every pull, and
origin is pointed back at the unauthenticated URL afterwards. When the
provider caches tokens, a token rejected by the remote is force-refreshed
and the git step retried once. All failures are converted into a failed
CloneResult; nothing propagates to the caller.

Source:
- src/workspaces/paths.py (PathResolver)
- src/workspaces/locks.py (LockRegistry)
- src/workspaces/credentials.py (CredentialProvider)
- src/workspaces/git.py (GitRunner)
- src/workspaces/registry.py (RepositoryRegistry)
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from src.workspaces.credentials import CredentialProvider
from src.workspaces.errors import (
    FilesystemError,
    NotFoundError,
    ProcessError,
    WorkspaceError,
)
from src.workspaces.git import GitRunner, authenticated_url, mask_credentials
from src.workspaces.locks import LockRegistry, workspace_key
from src.workspaces.metrics import WorkspaceMetrics
from src.workspaces.models import (
    CheckoutState,
    CloneResult,
    RepositoryInfo,
    RepositoryRecord,
)
from src.workspaces.paths import PathResolver
from src.workspaces.registry import RepositoryRegistry

logger = logging.getLogger(__name__)

FALLBACK_BRANCH = "main"

# git stderr fragments that indicate the remote rejected the token
AUTH_FAILURE_MARKERS = (
    "Authentication failed",
    "could not read Username",
    "Invalid username or password",
)


def is_auth_failure(error: ProcessError) -> bool:
    return any(marker in error.stderr for marker in AUTH_FAILURE_MARKERS)


def inspect_checkout(path: Path) -> CheckoutState:
    """Classify what currently exists at ``path``."""
    if not path.exists():
        return CheckoutState.NO_LOCAL_COPY
    if PathResolver.is_checkout(path):
        return CheckoutState.VALID_CHECKOUT
    return CheckoutState.INVALID_DIRECTORY


async def purge_directory(path: Path) -> None:
    """Remove a non-checkout at ``path`` so a clone can take its place.

    Empty directories are left in place since git clones into them.

    Raises:
        FilesystemError: If removal fails.
    """
    try:
        if path.is_dir():
            if not any(path.iterdir()):
                return
            logger.info("Removing non-git directory", extra={"path": str(path)})
            await asyncio.to_thread(shutil.rmtree, path)
        else:
            logger.info("Removing non-directory entry", extra={"path": str(path)})
            path.unlink()
    except OSError as exc:
        raise FilesystemError(
            f"Failed to remove {path}: {exc}", original_error=exc
        ) from exc


class CloneSyncEngine:
    """Materializes registry repositories as local checkouts.

    Attributes:
        registry: Read-only repository registry.
        credentials: Installation token provider.
        resolver: Workspace path resolver.
        locks: Single-flight registry keyed by resolved workspace path.
        git: Git subprocess runner.
        default_branch: Branch used when neither caller nor registry names one.
        github_host: Host whose clone URLs receive the installation token.
        metrics: Optional Prometheus metrics sink.
    """

    def __init__(
        self,
        registry: RepositoryRegistry,
        credentials: CredentialProvider,
        resolver: PathResolver,
        locks: Optional[LockRegistry] = None,
        git: Optional[GitRunner] = None,
        default_branch: str = FALLBACK_BRANCH,
        github_host: str = "github.com",
        metrics: Optional[WorkspaceMetrics] = None,
    ):
        self.registry = registry
        self.credentials = credentials
        self.resolver = resolver
        self.locks = locks or LockRegistry()
        self.git = git or GitRunner()
        self.default_branch = default_branch
        self.github_host = github_host
        self.metrics = metrics

    async def clone_or_sync(
        self,
        repository_id: str,
        target_path: Optional[Union[str, Path]] = None,
        branch: Optional[str] = None,
    ) -> CloneResult:
        """Clone or update a repository under the flat layout.

        Args:
            repository_id: Registry id of the repository.
            target_path: Explicit checkout location overriding the layout.
            branch: Branch to clone; defaults to the recorded default branch.

        Returns:
            CloneResult with the resolved path on success.
        """
        start = time.monotonic()
        result = await self._lookup_and_run(
            repository_id,
            lambda record: (
                Path(target_path)
                if target_path
                else self.resolver.flat_path(record.name, record.tenant_id)
            ),
            branch,
        )
        return self._finish("clone_or_sync", start, result)

    async def clone_or_sync_structured(
        self,
        repository_id: str,
        tenant_id: str,
        user_phone: str,
        branch: Optional[str] = None,
    ) -> CloneResult:
        """Clone or update a repository under tenant/user/repository.

        Args:
            repository_id: Registry id of the repository.
            tenant_id: Tenant directory name.
            user_phone: Raw user phone number, sanitized into a segment.
            branch: Branch to clone; defaults to the recorded default branch.
        """
        start = time.monotonic()
        result = await self._lookup_and_run(
            repository_id,
            lambda record: self.resolver.structured_path(
                record.name, tenant_id, user_phone
            ),
            branch,
        )
        return self._finish("clone_or_sync_structured", start, result)

    async def clone_first_for_tenant(
        self,
        tenant_id: str,
        target_path: Optional[Union[str, Path]] = None,
        branch: Optional[str] = None,
    ) -> CloneResult:
        """Clone or update the first registry repository of a tenant."""
        try:
            repositories = await self.registry.list_repositories(tenant_id)
        except WorkspaceError as exc:
            logger.error(
                "Failed to fetch tenant repositories",
                extra={"tenant_id": tenant_id, "error": exc.message},
            )
            return CloneResult.failure(
                f"Failed to fetch repositories: {exc.message}"
            )
        except Exception as exc:
            logger.exception(
                "Failed to fetch tenant repositories",
                extra={"tenant_id": tenant_id},
            )
            return CloneResult.failure(f"Failed to fetch repositories: {exc}")

        if not repositories:
            logger.info(
                "No repositories found for tenant",
                extra={"tenant_id": tenant_id},
            )
            return CloneResult.failure("No repositories found for this organization")

        first = repositories[0]
        logger.info(
            "Selected first tenant repository",
            extra={
                "tenant_id": tenant_id,
                "repository": first.full_name,
                "candidates": len(repositories),
            },
        )
        return await self.clone_or_sync(first.id, target_path, branch)

    async def _lookup_and_run(
        self,
        repository_id: str,
        resolve_path: Callable[[RepositoryRecord], Path],
        branch: Optional[str],
    ) -> CloneResult:
        try:
            record = await self.registry.get_repository(repository_id)
        except NotFoundError as exc:
            logger.warning(
                "Repository not found",
                extra={"repository_id": repository_id},
            )
            return CloneResult.failure(f"Repository not found: {exc.message}")
        except WorkspaceError as exc:
            logger.error(
                "Repository lookup failed",
                extra={"repository_id": repository_id, "error": exc.message},
            )
            return CloneResult.failure(f"Failed to clone repository: {exc.message}")
        except Exception as exc:
            logger.exception(
                "Repository lookup failed",
                extra={"repository_id": repository_id},
            )
            return CloneResult.failure(f"Failed to clone repository: {exc}")

        try:
            path = resolve_path(record)
            key = workspace_key(path)
        except WorkspaceError as exc:
            return CloneResult.failure(f"Failed to clone repository: {exc.message}")
        except (OSError, RuntimeError) as exc:
            # resolve() fails on overlong names and symlink loops
            return CloneResult.failure(f"Failed to clone repository: {exc}")

        return await self.locks.run(
            key,
            lambda: self._ensure_checkout(record, path, branch),
        )

    async def _ensure_checkout(
        self,
        record: RepositoryRecord,
        path: Path,
        branch: Optional[str],
    ) -> CloneResult:
        target_branch = branch or record.default_branch or self.default_branch
        action = "clone"

        try:
            state = inspect_checkout(path)
            if state is CheckoutState.VALID_CHECKOUT:
                action = "sync"
            logger.info(
                "Resolved workspace",
                extra={
                    "repository": record.full_name,
                    "path": str(path),
                    "state": state.value,
                    "branch": target_branch,
                },
            )

            if state is CheckoutState.VALID_CHECKOUT:
                await self._refresh_and_pull(record, path)
            else:
                if state is CheckoutState.INVALID_DIRECTORY:
                    await purge_directory(path)
                await self._clone(record, path, target_branch)
        except (WorkspaceError, OSError) as exc:
            detail = mask_credentials(
                exc.message if isinstance(exc, WorkspaceError) else str(exc)
            )
            logger.error(
                "Workspace %s failed",
                action,
                extra={
                    "repository": record.full_name,
                    "path": str(path),
                    "error": detail,
                },
            )
            return CloneResult.failure(f"Failed to {action} repository: {detail}")

        return CloneResult(
            success=True,
            repository_path=path,
            repository_info=RepositoryInfo.from_record(record),
        )

    async def _with_remote(
        self,
        record: RepositoryRecord,
        git_call: Callable[[str], Awaitable[None]],
    ) -> None:
        """Mint a token and run ``git_call`` against the authenticated remote.

        When the provider caches tokens, a cached token may have been
        revoked; one retry with a force-refreshed token is made if git
        reports an authentication failure.
        """
        token = await self.credentials.get_token(record.installation_id)
        try:
            await git_call(authenticated_url(record.clone_url, token, self.github_host))
        except ProcessError as exc:
            caching = getattr(self.credentials, "cache_enabled", False)
            if not (caching and is_auth_failure(exc)):
                raise
            logger.warning(
                "Installation token rejected, retrying with a fresh token",
                extra={
                    "repository": record.full_name,
                    "installation_id": record.installation_id,
                },
            )
            token = await self.credentials.get_token(
                record.installation_id, force_refresh=True
            )
            await git_call(authenticated_url(record.clone_url, token, self.github_host))

    async def _refresh_and_pull(self, record: RepositoryRecord, path: Path) -> None:
        async def pull(remote: str) -> None:
            await self.git.set_remote_url(path, remote)
            await self.git.pull(path)

        try:
            await self._with_remote(record, pull)
        finally:
            await self._restore_remote(record, path)
        logger.info(
            "Pulled latest changes",
            extra={"repository": record.full_name, "path": str(path)},
        )

    async def _clone(self, record: RepositoryRecord, path: Path, branch: str) -> None:
        self.resolver.ensure_directory(path.parent)

        async def clone(remote: str) -> None:
            logger.info(
                "Cloning repository",
                extra={
                    "remote": mask_credentials(remote),
                    "path": str(path),
                    "branch": branch,
                },
            )
            await self.git.clone(remote, path, branch)

        try:
            await self._with_remote(record, clone)
        finally:
            await self._restore_remote(record, path)
        logger.info(
            "Repository cloned",
            extra={"repository": record.full_name, "path": str(path)},
        )

    async def _restore_remote(self, record: RepositoryRecord, path: Path) -> None:
        """Point origin back at the unauthenticated URL.

        The installation token must not outlive the operation in .git/config.
        """
        if PathResolver.is_checkout(path):
            await self.git.set_remote_url(path, record.clone_url)

    def _finish(self, operation: str, start: float, result: CloneResult) -> CloneResult:
        if self.metrics is not None:
            self.metrics.record_operation(
                operation, result.success, time.monotonic() - start
            )
        return result
