"""
Prometheus Metrics for PuppetDB Service Discovery

Self-metrics of the poll loop: cycle outcomes and durations, the size of the
last snapshot, and artifact churn per output.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, start_http_server

from prometheus_puppetdb import __version__

logger = logging.getLogger(__name__)


class SyncMetrics:
    """Prometheus metrics for synchronization cycles."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize synchronization metrics.

        Args:
            registry: Prometheus registry (a private one is created if not provided)
        """
        self.registry = registry or CollectorRegistry()

        self.cycles_total = Counter(
            'prometheus_puppetdb_cycles_total',
            'Total number of poll cycles',
            ['status'],
            registry=self.registry
        )

        self.cycle_duration_seconds = Histogram(
            'prometheus_puppetdb_cycle_duration_seconds',
            'Duration of poll cycles in seconds',
            buckets=[0.05, 0.1, 0.5, 1, 2, 5, 10, 30, 60],
            registry=self.registry
        )

        self.scrape_configs = Gauge(
            'prometheus_puppetdb_scrape_configs',
            'Number of scrape configurations in the last snapshot',
            registry=self.registry
        )

        self.targets = Gauge(
            'prometheus_puppetdb_targets',
            'Number of targets in the last snapshot',
            registry=self.registry
        )

        self.artifacts_written_total = Counter(
            'prometheus_puppetdb_artifacts_written_total',
            'Total artifacts written by outputs',
            ['output'],
            registry=self.registry
        )

        self.artifacts_deleted_total = Counter(
            'prometheus_puppetdb_artifacts_deleted_total',
            'Total stale artifacts deleted by outputs',
            ['output'],
            registry=self.registry
        )

        self.output_errors_total = Counter(
            'prometheus_puppetdb_output_errors_total',
            'Total per-object errors isolated by outputs',
            ['output', 'operation'],
            registry=self.registry
        )

        self.build_info = Info(
            'prometheus_puppetdb_build',
            'PuppetDB service discovery build information',
            registry=self.registry
        )
        self.build_info.info({'version': __version__})

    def record_cycle(self, status: str, duration_seconds: float) -> None:
        """
        Record a finished poll cycle.

        Args:
            status: Cycle status (success, fetch_error, output_error)
            duration_seconds: Duration in seconds
        """
        self.cycles_total.labels(status=status).inc()
        self.cycle_duration_seconds.observe(duration_seconds)

    def record_snapshot(self, scrape_configs: int, targets: int) -> None:
        """Update the gauges describing the last snapshot."""
        self.scrape_configs.set(scrape_configs)
        self.targets.set(targets)

    def record_written(self, output: str, count: int = 1) -> None:
        self.artifacts_written_total.labels(output=output).inc(count)

    def record_deleted(self, output: str, count: int = 1) -> None:
        self.artifacts_deleted_total.labels(output=output).inc(count)

    def record_output_error(self, output: str, operation: str) -> None:
        self.output_errors_total.labels(output=output, operation=operation).inc()

    def start_server(self, port: int) -> None:
        """Start Prometheus metrics HTTP server."""
        try:
            start_http_server(port, registry=self.registry)
            logger.info(f"Metrics server started on port {port}")
        except OSError as e:
            if "Address already in use" in str(e):
                logger.warning(f"Metrics server already running on port {port}")
            else:
                raise
