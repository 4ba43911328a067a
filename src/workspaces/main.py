"""Retention sweep entrypoint for CronJob execution.

Loads settings from the environment, sweeps checkouts older than the
configured retention period, optionally pushes metrics to a Prometheus
push gateway, and exits non-zero on failure.

    python -m src.workspaces.main [--max-age-days N]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from prometheus_client import CollectorRegistry, push_to_gateway

from src.workspaces.config import WorkspaceSettings, get_settings
from src.workspaces.inventory import RepositoryInventory
from src.workspaces.metrics import WorkspaceMetrics
from src.workspaces.paths import PathResolver
from src.workspaces.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: WorkspaceSettings) -> None:
    logger.info("Workspace configuration:")
    logger.info(f"  Clone Base Path: {settings.base_path}")
    logger.info(f"  Structured Base Path: {settings.structured_path}")
    logger.info(f"  Retention Days: {settings.retention_days}")
    logger.info(f"  Legacy Tenant ID: {settings.legacy_tenant_id}")
    logger.info(f"  GitHub API Base URL: {settings.github_api_base_url}")
    logger.info(f"  GitHub App ID: {settings.github_app_id or '<unset>'}")
    logger.info(
        f"  GitHub App Private Key: {_redact_secret(settings.github_app_private_key)}"
    )
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")
    logger.info(f"  Git Timeout Seconds: {settings.git_timeout_seconds}")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sweep stale repository checkouts")
    parser.add_argument(
        "--max-age-days",
        type=float,
        default=None,
        help="Override the configured retention period",
    )
    return parser.parse_args(argv)


def build_sweeper(
    settings: WorkspaceSettings, metrics: Optional[WorkspaceMetrics] = None
) -> RetentionSweeper:
    """Build a sweeper; the sweep never needs the registry or credentials."""
    inventory = RepositoryInventory(
        resolver=PathResolver(settings.base_path, settings.structured_path),
        legacy_tenant_id=settings.legacy_tenant_id,
    )
    return RetentionSweeper(
        inventory=inventory,
        retention_days=settings.retention_days,
        metrics=metrics,
    )


async def main(argv: Optional[List[str]] = None) -> int:
    """Run one sweep and return the process exit code."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = _parse_args(argv)

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error(f"Invalid workspace configuration: {e}")
        return 1

    _log_configuration(settings)

    registry = CollectorRegistry()
    metrics = WorkspaceMetrics(registry=registry)
    sweeper = build_sweeper(settings, metrics)

    try:
        removed = await sweeper.sweep(args.max_age_days)
    except (OSError, ValueError) as e:
        logger.error("Workspace sweep failed", extra={"error": str(e)}, exc_info=True)
        return 1

    for identifier in removed:
        logger.info(f"  removed {identifier}")

    if settings.metrics_push_gateway:
        try:
            push_to_gateway(
                settings.metrics_push_gateway,
                job="workspace-sweeper",
                registry=registry,
            )
        except OSError as e:
            logger.warning("Failed to push metrics", extra={"error": str(e)})

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
