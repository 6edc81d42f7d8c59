"""
Kubernetes Secret Output for PuppetDB Service Discovery

Stores the rendered configuration as keys of one Secret, typically mounted
into Prometheus or referenced by a Prometheus Operator additionalScrapeConfigs.
Keys owned by earlier cycles are removed, keys managed by anyone else are kept.
"""

import base64
import logging
from typing import Any, Dict, Optional

from prometheus_puppetdb.config import K8sSecretOutputConfig, OutputFormat
from prometheus_puppetdb.errors import PersistenceError
from prometheus_puppetdb.models import Snapshot
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import Output, render_artifacts
from prometheus_puppetdb.outputs.kube import (
    API_ERRORS,
    KubeClients,
    is_not_found,
    load_kube_clients,
    resolve_namespace,
    to_dict,
)
from prometheus_puppetdb.reconciliation.differ import ArtifactTracker

logger = logging.getLogger(__name__)


def encode_value(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def decode_value(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


class K8sSecretOutput(Output):
    """Output writing one Secret data key per artifact."""

    name = "k8s-secret"

    def __init__(
        self,
        cfg: K8sSecretOutputConfig,
        fmt: OutputFormat,
        metrics: Optional[SyncMetrics] = None,
        clients: Optional[KubeClients] = None
    ):
        """
        Initialize Secret output.

        Args:
            cfg: Secret output configuration
            fmt: Output format
            metrics: Optional self-metrics
            clients: Pre-built Kubernetes API clients (loaded when omitted)

        Raises:
            ConfigurationError: If no Kubernetes configuration can be loaded
        """
        super().__init__(fmt, metrics)
        self.cfg = cfg
        self.clients = clients or load_kube_clients()
        self.namespace = resolve_namespace(cfg.namespace)
        self.tracker = ArtifactTracker(self.name)

        logger.info(f"Writing {fmt.value} to secret {self.namespace}/{cfg.secret_name}")

    def write_output(self, snapshot: Snapshot) -> None:
        artifacts = render_artifacts(
            snapshot,
            self.format,
            self.cfg.secret_key,
            self.cfg.secret_key_pattern,
            extra_content=self.read_extra_config(),
        )

        existing = self._read_secret(self.cfg.secret_name)
        data: Dict[str, str] = dict((existing or {}).get("data") or {})

        removed = []
        for key in self.tracker.stale(artifacts):
            if data.pop(key, None) is not None:
                removed.append(key)
                logger.info(f"Removed stale key {key}", extra={"output": self.name, "artifact": key})

        for key, content in artifacts.items():
            data[key] = encode_value(content)

        body = self._build_secret(data, existing)
        try:
            if existing is None:
                self.clients.core_api.create_namespaced_secret(self.namespace, body)
                logger.info(f"Created secret {self.namespace}/{self.cfg.secret_name}")
            else:
                self.clients.core_api.replace_namespaced_secret(self.cfg.secret_name, self.namespace, body)
                logger.debug(f"Replaced secret {self.namespace}/{self.cfg.secret_name}")
        except API_ERRORS as e:
            self._record_error("write")
            raise PersistenceError(f"Failed to write secret {self.cfg.secret_name}: {e}") from e

        self.tracker.commit(artifacts)
        self._record_written(len(artifacts))
        self._record_deleted(len(removed))

    def read_extra_config(self) -> str:
        """
        Decoded content of the extra configuration key, newline terminated.

        Returns an empty string when no extra configuration is set.

        Raises:
            PersistenceError: If the Secret or key cannot be read
        """
        name = self.cfg.extra_config_secret_name
        key = self.cfg.extra_config_secret_key
        if not name or not key:
            return ""

        secret = self._read_secret(name)
        if secret is None:
            raise PersistenceError(f"Extra config secret {self.namespace}/{name} not found")

        value = (secret.get("data") or {}).get(key)
        if value is None:
            raise PersistenceError(f"Key {key} not found in secret {self.namespace}/{name}")

        try:
            return decode_value(value) + "\n"
        except (ValueError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to decode key {key} of secret {name}: {e}") from e

    def _read_secret(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            secret = self.clients.core_api.read_namespaced_secret(name, self.namespace)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            self._record_error("read")
            raise PersistenceError(f"Failed to read secret {name}: {e}") from e
        return to_dict(self.clients.api_client, secret)

    def _build_secret(self, data: Dict[str, str], existing: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": self.cfg.secret_name,
            "namespace": self.namespace,
            "labels": dict(self.cfg.object_labels),
        }
        resource_version = ((existing or {}).get("metadata") or {}).get("resourceVersion")
        if resource_version:
            metadata["resourceVersion"] = resource_version

        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": metadata,
            "data": data,
        }
