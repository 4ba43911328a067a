"""Age-based reclamation of repository checkouts.

Removes checkouts whose last access time is strictly older than the
retention cutoff, then removes tenant directories left empty by the
removal. Sweeping is caller-triggered; scheduling belongs to whatever
runs the sweep job.

Source:
- src/workspaces/inventory.py (RepositoryInventory)
"""

import asyncio
import logging
import shutil
import time
from typing import List, Optional

from src.workspaces.inventory import RepositoryInventory
from src.workspaces.locks import workspace_key
from src.workspaces.metrics import WorkspaceMetrics
from src.workspaces.models import ClonedRepositoryEntry

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class RetentionSweeper:
    """Deletes checkouts that have not been accessed recently.

    Attributes:
        inventory: Source of checkouts and of the shared lock registry.
        retention_days: Default age threshold when sweep() gets none.
        metrics: Optional Prometheus metrics sink.
    """

    def __init__(
        self,
        inventory: RepositoryInventory,
        retention_days: int = 7,
        metrics: Optional[WorkspaceMetrics] = None,
    ):
        self.inventory = inventory
        self.retention_days = retention_days
        self.metrics = metrics

    async def sweep(self, max_age_days: Optional[float] = None) -> List[str]:
        """Remove checkouts last accessed before ``now - max_age_days``.

        Args:
            max_age_days: Age threshold in days; defaults to retention_days.

        Returns:
            ``tenant/repository`` identifiers of removed checkouts.

        Raises:
            ValueError: If max_age_days is negative.
        """
        days = self.retention_days if max_age_days is None else max_age_days
        if days < 0:
            raise ValueError("max_age_days cannot be negative")

        cutoff = self._calculate_cutoff(days)
        removed: List[str] = []

        for entry in self.inventory.list_repositories():
            removed_entry = await self.inventory.locks.run(
                workspace_key(entry.full_path),
                lambda entry=entry: self._sweep_entry(entry, cutoff),
            )
            if removed_entry:
                removed.append(entry.identifier)

        if self.metrics is not None:
            self.metrics.record_sweep(len(removed))

        logger.info(
            "Workspace sweep complete",
            extra={"removed_count": len(removed), "max_age_days": days},
        )
        return removed

    @staticmethod
    def _calculate_cutoff(max_age_days: float) -> float:
        """Unix timestamp; checkouts last accessed before this are expired."""
        return time.time() - max_age_days * SECONDS_PER_DAY

    async def _sweep_entry(self, entry: ClonedRepositoryEntry, cutoff: float) -> bool:
        try:
            last_access = entry.full_path.stat().st_atime
        except FileNotFoundError:
            return False
        except OSError:
            logger.exception(
                "Failed to stat repository",
                extra={"repository": entry.identifier},
            )
            return False

        if last_access >= cutoff:
            return False

        logger.info(
            "Removing stale repository",
            extra={
                "repository": entry.identifier,
                "last_accessed": time.strftime(
                    "%Y-%m-%dT%H:%M:%SZ", time.gmtime(last_access)
                ),
            },
        )
        try:
            await asyncio.to_thread(shutil.rmtree, entry.full_path)
        except OSError:
            logger.exception(
                "Failed to remove repository",
                extra={"repository": entry.identifier},
            )
            return False

        self._remove_empty_tenant(entry)
        return True

    def _remove_empty_tenant(self, entry: ClonedRepositoryEntry) -> None:
        if entry.tenant_id == self.inventory.legacy_tenant_id:
            return
        tenant_dir = self.inventory.resolver.tenant_directory(entry.tenant_id)
        try:
            if any(tenant_dir.iterdir()):
                return
            tenant_dir.rmdir()
        except OSError:
            # A concurrent clone may have repopulated the tenant directory
            logger.debug(
                "Kept tenant directory",
                extra={"tenant_id": entry.tenant_id},
            )
            return
        logger.info(
            "Removed empty tenant directory",
            extra={"tenant_id": entry.tenant_id},
        )
