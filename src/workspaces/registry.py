"""Repository registry access.

The registry owns RepositoryRecord rows; this subsystem only reads them.
PostgresRepositoryRegistry queries the github_repositories and
github_app_installations tables with asyncpg.

Source:
- src/workspaces/models.py (RepositoryRecord)
"""

import logging
from typing import Any, List, Optional, Protocol

import asyncpg
from pydantic import ValidationError

from src.workspaces.errors import NotFoundError, RegistryError
from src.workspaces.models import RepositoryRecord

logger = logging.getLogger(__name__)


_REPOSITORY_COLUMNS = """
    r.id::text AS id,
    r.name,
    r.full_name,
    r.clone_url,
    r.default_branch,
    r.installation_id,
    i.organization_id::text AS tenant_id
"""


class RepositoryRegistry(Protocol):
    """Read-only view of the repository registry."""

    async def get_repository(self, repository_id: str) -> RepositoryRecord: ...

    async def list_repositories(self, tenant_id: str) -> List[RepositoryRecord]: ...


class PostgresRepositoryRegistry:
    """asyncpg-backed repository registry.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresRepositoryRegistry("postgresql://...") as registry:
        ...     record = await registry.get_repository("R1")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            RegistryError: If the pool is not initialized.
        """
        if self._pool is None:
            raise RegistryError(
                "Registry pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            RegistryError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Registry connection pool already initialized")
            return

        try:
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("Repository registry connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to repository registry",
                extra={"error": str(e)},
            )
            raise RegistryError(
                f"Failed to connect to repository registry: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresRepositoryRegistry":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def get_repository(self, repository_id: str) -> RepositoryRecord:
        """Fetch one repository by registry id.

        Raises:
            NotFoundError: If no row matches.
            RegistryError: If the query fails or the row is malformed.
        """
        query = f"""
            SELECT {_REPOSITORY_COLUMNS}
            FROM github_repositories r
            LEFT JOIN github_app_installations i
                ON i.installation_id = r.installation_id
            WHERE r.id::text = $1
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, repository_id)
        except RegistryError:
            raise
        except Exception as e:
            logger.error(
                "Failed to load repository",
                extra={"repository_id": repository_id, "error": str(e)},
            )
            raise RegistryError(
                f"Failed to load repository {repository_id}: {e}",
                original_error=e,
            ) from e

        if row is None:
            raise NotFoundError(repository_id)
        return _record_from_row(dict(row))

    async def list_repositories(self, tenant_id: str) -> List[RepositoryRecord]:
        """List active repositories reachable through a tenant's active installations.

        Raises:
            RegistryError: If the query fails.
        """
        query = f"""
            SELECT {_REPOSITORY_COLUMNS}
            FROM github_repositories r
            INNER JOIN github_app_installations i
                ON i.installation_id = r.installation_id
            WHERE i.organization_id::text = $1
              AND i.is_active
              AND r.is_active
            ORDER BY r.full_name
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, tenant_id)
        except RegistryError:
            raise
        except Exception as e:
            logger.error(
                "Failed to list repositories",
                extra={"tenant_id": tenant_id, "error": str(e)},
            )
            raise RegistryError(
                f"Failed to list repositories for {tenant_id}: {e}",
                original_error=e,
            ) from e

        logger.debug(
            "Loaded tenant repositories",
            extra={"tenant_id": tenant_id, "count": len(rows)},
        )
        return [_record_from_row(dict(row)) for row in rows]


def _record_from_row(row: dict) -> RepositoryRecord:
    try:
        return RepositoryRecord(**row)
    except ValidationError as e:
        raise RegistryError(
            f"Malformed repository row {row.get('id')}: {e}",
            original_error=e,
        ) from e
