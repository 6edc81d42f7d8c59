"""
Monitoring Module for PuppetDB Service Discovery

Usage:
    from prometheus_puppetdb.monitoring import SyncMetrics

    metrics = SyncMetrics()
    metrics.record_cycle(status="success", duration_seconds=0.4)
    metrics.start_server(9191)
"""

from prometheus_puppetdb.monitoring.metrics import SyncMetrics

__all__ = [
    "SyncMetrics",
]
