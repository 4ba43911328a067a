"""Prometheus metrics for workspace operations.

Metrics Defined:
- workspace_operations_total: Counter of clone/sync/remove operations by result
- workspace_operation_duration_seconds: Histogram of operation duration
- workspace_sweep_removed_total: Counter of checkouts removed by the sweeper
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
)

logger = logging.getLogger(__name__)


# Covers a quick pull through a large initial clone
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
)


class WorkspaceMetrics:
    """Container for workspace manager Prometheus metrics.

    Pass a custom registry for testing to avoid duplicate registration
    against the global default.

    Attributes:
        registry: The Prometheus registry for these metrics.
        operations_total: Counter labelled by operation and result.
        operation_duration_seconds: Histogram labelled by operation.
        sweep_removed_total: Counter of swept checkouts.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.operations_total = Counter(
            "workspace_operations_total",
            "Total number of workspace operations",
            labelnames=["operation", "result"],
            registry=self.registry,
        )

        self.operation_duration_seconds = Histogram(
            "workspace_operation_duration_seconds",
            "Time spent in workspace operations",
            labelnames=["operation"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.sweep_removed_total = Counter(
            "workspace_sweep_removed_total",
            "Total number of checkouts removed by the retention sweeper",
            registry=self.registry,
        )

    def record_operation(
        self, operation: str, success: bool, duration_seconds: float
    ) -> None:
        result = "success" if success else "failure"
        self.operations_total.labels(operation=operation, result=result).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(
            duration_seconds
        )

    def record_sweep(self, removed_count: int) -> None:
        if removed_count:
            self.sweep_removed_total.inc(removed_count)
