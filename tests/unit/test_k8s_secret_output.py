"""
Unit tests for Kubernetes Secret output module.

Runs against the in-memory Kubernetes API fakes.
"""

import pytest
import yaml

from prometheus_puppetdb.config import K8sSecretOutputConfig, OutputFormat
from prometheus_puppetdb.errors import PersistenceError
from prometheus_puppetdb.outputs.k8s_secret import K8sSecretOutput, decode_value, encode_value

NAMESPACE = "monitoring"


class TestK8sSecretOutput:
    """Test writing scrape configurations into a Secret."""

    @pytest.fixture
    def cfg(self):
        return K8sSecretOutputConfig(namespace=NAMESPACE)

    def secret_data(self, kube_clients, name="prometheus-puppetdb"):
        data = kube_clients.core_api.get("secret", name)["data"]
        return {key: decode_value(value) for key, value in data.items()}

    def test_creates_secret(self, cfg, kube_clients, snapshot):
        K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, clients=kube_clients).write_output(snapshot)

        secret = kube_clients.core_api.get("secret", "prometheus-puppetdb")
        assert secret["metadata"]["labels"] == {"app.kubernetes.io/name": "prometheus-puppetdb"}
        data = yaml.safe_load(self.secret_data(kube_clients)["puppetdb.yml"])
        assert [sc["job_name"] for sc in data] == ["node-exporter", "apache-exporter"]

    def test_replaces_existing_secret(self, cfg, kube_clients, snapshot):
        output = K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, clients=kube_clients)
        output.write_output(snapshot)
        output.write_output(snapshot[:1])

        methods = [call[0] for call in kube_clients.core_api.calls]
        assert methods.count("create_namespaced_secret") == 1
        assert methods.count("replace_namespaced_secret") == 1
        data = yaml.safe_load(self.secret_data(kube_clients)["puppetdb.yml"])
        assert [sc["job_name"] for sc in data] == ["node-exporter"]

    def test_removes_stale_keys_only(self, cfg, kube_clients, snapshot):
        """Test keys of vanished jobs go away while foreign keys stay."""
        kube_clients.core_api.create_namespaced_secret(NAMESPACE, {
            "metadata": {"name": "prometheus-puppetdb", "namespace": NAMESPACE},
            "data": {"manual.yml": encode_value("[]\n")},
        })
        output = K8sSecretOutput(cfg, OutputFormat.STATIC_CONFIGS, clients=kube_clients)

        output.write_output(snapshot)
        assert set(self.secret_data(kube_clients)) == {
            "manual.yml", "puppetdb-node-exporter.yml", "puppetdb-apache-exporter.yml",
        }

        output.write_output(snapshot[:1])
        assert set(self.secret_data(kube_clients)) == {"manual.yml", "puppetdb-node-exporter.yml"}

    def test_extra_config_appended(self, kube_clients, snapshot):
        kube_clients.core_api.create_namespaced_secret(NAMESPACE, {
            "metadata": {"name": "extra", "namespace": NAMESPACE},
            "data": {"scrape.yml": encode_value("- job_name: static")},
        })
        cfg = K8sSecretOutputConfig(
            namespace=NAMESPACE,
            extra_config_secret_name="extra",
            extra_config_secret_key="scrape.yml",
        )

        K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, clients=kube_clients).write_output(snapshot)

        content = self.secret_data(kube_clients)["puppetdb.yml"]
        assert content.endswith("- job_name: static\n")
        assert [sc["job_name"] for sc in yaml.safe_load(content)] == [
            "node-exporter", "apache-exporter", "static",
        ]

    def test_missing_extra_config(self, kube_clients, snapshot):
        cfg = K8sSecretOutputConfig(
            namespace=NAMESPACE,
            extra_config_secret_name="absent",
            extra_config_secret_key="scrape.yml",
        )
        output = K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, clients=kube_clients)

        with pytest.raises(PersistenceError):
            output.write_output(snapshot)

    def test_api_failure(self, cfg, kube_clients, snapshot, metrics):
        """Test a failing write raises and keeps tracked keys."""
        kube_clients.core_api.fail("create_namespaced_secret")
        output = K8sSecretOutput(cfg, OutputFormat.STATIC_CONFIGS, metrics, clients=kube_clients)

        with pytest.raises(PersistenceError):
            output.write_output(snapshot)

        assert output.tracker.previous == set()
        assert metrics.registry.get_sample_value(
            "prometheus_puppetdb_output_errors_total", {"output": "k8s-secret", "operation": "write"}
        ) == 1.0

    def test_read_failure(self, cfg, kube_clients, snapshot):
        kube_clients.core_api.fail("read_namespaced_secret", status=403)
        output = K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, clients=kube_clients)

        with pytest.raises(PersistenceError):
            output.write_output(snapshot)

    def test_unreachable_api_server(self, cfg, unreachable_kube_clients, snapshot, metrics):
        """Test a refused connection surfaces as PersistenceError."""
        output = K8sSecretOutput(cfg, OutputFormat.SCRAPE_CONFIGS, metrics, clients=unreachable_kube_clients)

        with pytest.raises(PersistenceError):
            output.write_output(snapshot)

        assert metrics.registry.get_sample_value(
            "prometheus_puppetdb_output_errors_total", {"output": "k8s-secret", "operation": "read"}
        ) == 1.0
