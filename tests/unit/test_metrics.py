"""
Unit tests for monitoring metrics module.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry

from prometheus_puppetdb import __version__
from prometheus_puppetdb.monitoring.metrics import SyncMetrics


class TestSyncMetrics:
    """Test suite for SyncMetrics class."""

    def test_private_registry_by_default(self):
        """Test two instances do not collide on metric names."""
        first = SyncMetrics()
        second = SyncMetrics()

        assert first.registry is not second.registry

    def test_build_info(self, metrics):
        value = metrics.registry.get_sample_value("prometheus_puppetdb_build_info", {"version": __version__})

        assert value == 1.0

    def test_record_cycle(self, metrics):
        metrics.record_cycle("success", 0.2)
        metrics.record_cycle("fetch_error", 0.1)
        metrics.record_cycle("success", 0.3)

        registry = metrics.registry
        assert registry.get_sample_value("prometheus_puppetdb_cycles_total", {"status": "success"}) == 2.0
        assert registry.get_sample_value("prometheus_puppetdb_cycles_total", {"status": "fetch_error"}) == 1.0
        assert registry.get_sample_value("prometheus_puppetdb_cycle_duration_seconds_count") == 3.0

    def test_record_snapshot(self, metrics):
        metrics.record_snapshot(2, 3)

        assert metrics.registry.get_sample_value("prometheus_puppetdb_scrape_configs") == 2.0
        assert metrics.registry.get_sample_value("prometheus_puppetdb_targets") == 3.0

    def test_artifact_counters(self, metrics):
        metrics.record_written("file", 3)
        metrics.record_deleted("file")
        metrics.record_output_error("k8s-external-service", "resolve")

        registry = metrics.registry
        assert registry.get_sample_value("prometheus_puppetdb_artifacts_written_total", {"output": "file"}) == 3.0
        assert registry.get_sample_value("prometheus_puppetdb_artifacts_deleted_total", {"output": "file"}) == 1.0
        assert registry.get_sample_value(
            "prometheus_puppetdb_output_errors_total",
            {"output": "k8s-external-service", "operation": "resolve"},
        ) == 1.0

    @patch("prometheus_puppetdb.monitoring.metrics.start_http_server")
    def test_start_server(self, mock_start, metrics):
        metrics.start_server(9090)

        mock_start.assert_called_once_with(9090, registry=metrics.registry)

    @patch("prometheus_puppetdb.monitoring.metrics.start_http_server")
    def test_start_server_port_in_use(self, mock_start, metrics):
        mock_start.side_effect = OSError("[Errno 98] Address already in use")

        metrics.start_server(9090)

    @patch("prometheus_puppetdb.monitoring.metrics.start_http_server")
    def test_start_server_other_error(self, mock_start, metrics):
        mock_start.side_effect = OSError("Permission denied")

        with pytest.raises(OSError):
            metrics.start_server(80)

    def test_explicit_registry(self):
        registry = CollectorRegistry()

        assert SyncMetrics(registry=registry).registry is registry
