"""
Kubernetes External-Service Output for PuppetDB Service Discovery

Publishes every target as a selector-less Service plus a matching Endpoints
object, and lists them all in one Prometheus Operator ServiceMonitor. Objects
carry the `prometheus-puppetdb` label so that objects of vanished targets can
be found and removed.

Failures are isolated per object: a target that cannot be resolved or
upserted is logged and skipped, the rest of the cycle carries on.
"""

import ipaddress
import logging
import socket
from typing import Any, Dict, List, Optional, Set, Tuple

from prometheus_puppetdb.config import K8sExternalServiceOutputConfig, OutputFormat
from prometheus_puppetdb.errors import ResolutionError
from prometheus_puppetdb.models import Snapshot, StaticConfig
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import Output
from prometheus_puppetdb.outputs.kube import (
    API_ERRORS,
    KubeClients,
    is_not_found,
    load_kube_clients,
    resolve_namespace,
    to_dict,
)
from prometheus_puppetdb.reconciliation.comparer import ObjectComparer
from prometheus_puppetdb.reconciliation.differ import ArtifactDiffer

logger = logging.getLogger(__name__)

DISCRIMINATOR_LABEL = "prometheus-puppetdb"
SERVICE_MONITOR_NAME = "prometheus-puppetdb"
MONITORING_GROUP = "monitoring.coreos.com"
MONITORING_VERSION = "v1"
SERVICE_MONITOR_PLURAL = "servicemonitors"


def split_target(target: str, labels: Dict[str, str]) -> Tuple[str, int]:
    """
    Split "address[:port]" into address and port.

    The port defaults to 443 when the `scheme` label is https, 80 otherwise.

    Raises:
        ResolutionError: If the port is not a number
    """
    address, sep, port = target.partition(":")
    if not sep:
        return address, 443 if labels.get("scheme") == "https" else 80
    try:
        return address, int(port)
    except ValueError as e:
        raise ResolutionError(f"Invalid port in target {target!r}") from e


def object_name(address: str, port: int) -> str:
    return f"puppetdb-{address.replace('.', '-')}-{port}"


def resolve_ipv4(address: str) -> str:
    """
    Return the address itself if it is an IPv4 address, else its first IPv4.

    Raises:
        ResolutionError: If the name has no IPv4 address
    """
    try:
        return str(ipaddress.IPv4Address(address))
    except ValueError:
        pass

    try:
        infos = socket.getaddrinfo(address, None, socket.AF_INET)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"Failed to resolve {address}: {e}") from e

    for _family, _type, _proto, _canonname, sockaddr in infos:
        return sockaddr[0]
    raise ResolutionError(f"No IPv4 address found for {address}")


def service_monitor_endpoint(name: str, labels: Dict[str, str]) -> Dict[str, Any]:
    return {
        "port": name,
        "scheme": labels.get("scheme", ""),
        "path": labels.get("metrics_path", ""),
        "honorLabels": True,
        "metricRelabelings": [
            {"targetLabel": key, "replacement": labels[key]}
            for key in sorted(labels)
        ],
    }


class K8sExternalServiceOutput(Output):
    """Output managing ExternalName Services, Endpoints and a ServiceMonitor."""

    name = "k8s-external-service"

    def __init__(
        self,
        cfg: K8sExternalServiceOutputConfig,
        fmt: OutputFormat = OutputFormat.STATIC_CONFIGS,
        metrics: Optional[SyncMetrics] = None,
        clients: Optional[KubeClients] = None
    ):
        """
        Initialize external-service output.

        Args:
            cfg: External-service output configuration
            fmt: Ignored, objects are always built from static configs
            metrics: Optional self-metrics
            clients: Pre-built Kubernetes API clients (loaded when omitted)

        Raises:
            ConfigurationError: If no Kubernetes configuration can be loaded
        """
        super().__init__(fmt, metrics)
        self.object_labels = dict(cfg.object_labels)
        self.clients = clients or load_kube_clients()
        self.namespace = resolve_namespace(cfg.namespace)
        self.comparer = ObjectComparer()
        self.differ = ArtifactDiffer()

        logger.warning("Output `k8s-external-service` is still an experimental feature.")
        logger.info(f"Managing external services in namespace {self.namespace}")

    @property
    def core_api(self) -> Any:
        return self.clients.core_api

    def write_output(self, snapshot: Snapshot) -> None:
        static_configs = [
            sc for scrape_config in snapshot for sc in scrape_config.static_configs
        ]

        desired: Set[str] = set()
        sm_endpoints: List[Dict[str, Any]] = []

        for sc in static_configs:
            for target in sc.targets:
                endpoint = self._sync_target(target, sc, desired)
                if endpoint is not None:
                    sm_endpoints.append(endpoint)

        self._delete_stale("endpoints", desired)
        self._delete_stale("service", desired)
        self._upsert_service_monitor(sm_endpoints)

    def _sync_target(self, target: str, sc: StaticConfig, desired: Set[str]) -> Optional[Dict[str, Any]]:
        """Upsert the objects of one target; returns its ServiceMonitor endpoint or None."""
        try:
            address, port = split_target(target, sc.labels)
        except ResolutionError as e:
            logger.error(str(e), extra={"output": self.name, "target": target})
            self._record_error("resolve")
            return None

        name = object_name(address, port)
        if name in desired:
            # first job listing a target owns its objects and endpoint
            logger.debug(f"Skipping duplicate target {target}", extra={"output": self.name, "target": target})
            return None
        desired.add(name)

        try:
            ip = resolve_ipv4(address)
        except ResolutionError as e:
            logger.error(f"Skipping {name}: {e}", extra={"output": self.name, "target": target})
            self._record_error("resolve")
            return None

        if not self._upsert("endpoints", name, self._build_endpoints(name, ip, port)):
            return None
        if not self._upsert("service", name, self._build_service(name, address, port)):
            return None

        return service_monitor_endpoint(name, sc.labels)

    def _labels(self) -> Dict[str, str]:
        labels = dict(self.object_labels)
        labels[DISCRIMINATOR_LABEL] = "true"
        return labels

    def _build_endpoints(self, name: str, ip: str, port: int) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Endpoints",
            "metadata": {"name": name, "namespace": self.namespace, "labels": self._labels()},
            "subsets": [{
                "addresses": [{"ip": ip}],
                "ports": [{"name": name, "port": port, "protocol": "TCP"}],
            }],
        }

    def _build_service(self, name: str, address: str, port: int) -> Dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "namespace": self.namespace, "labels": self._labels()},
            "spec": {
                "type": "ExternalName",
                "externalName": address,
                "ports": [{"name": name, "port": port, "protocol": "TCP"}],
            },
        }

    def _upsert(self, kind: str, name: str, body: Dict[str, Any]) -> bool:
        """
        Create or replace one Endpoints/Service object, skipping unchanged ones.

        Args:
            kind: "endpoints" or "service"

        Returns:
            True if the object is in the desired state
        """
        read = getattr(self.core_api, f"read_namespaced_{kind}")
        create = getattr(self.core_api, f"create_namespaced_{kind}")
        replace = getattr(self.core_api, f"replace_namespaced_{kind}")
        equal = self.comparer.endpoints_equal if kind == "endpoints" else self.comparer.service_equal

        try:
            try:
                existing = to_dict(self.clients.api_client, read(name, self.namespace))
            except API_ERRORS as e:
                if not is_not_found(e):
                    raise
                create(self.namespace, body)
                logger.info(f"{kind} `{name}' created", extra={"output": self.name, "artifact": name})
                self._record_written(1)
                return True

            if equal(body, existing):
                logger.debug(f"{kind} `{name}' up to date")
                return True

            resource_version = (existing.get("metadata") or {}).get("resourceVersion")
            if resource_version:
                body["metadata"]["resourceVersion"] = resource_version
            replace(name, self.namespace, body)
            logger.info(f"{kind} `{name}' updated", extra={"output": self.name, "artifact": name})
            self._record_written(1)
            return True
        except API_ERRORS as e:
            logger.error(f"Failed to upsert {kind} `{name}': {e}", extra={"output": self.name, "artifact": name})
            self._record_error(f"upsert_{kind}")
            return False

    def _delete_stale(self, kind: str, desired: Set[str]) -> None:
        """Delete every labelled object of a kind whose name is not desired."""
        try:
            listed = getattr(self.core_api, f"list_namespaced_{kind}")(
                self.namespace, label_selector=DISCRIMINATOR_LABEL
            )
        except API_ERRORS as e:
            logger.error(f"Failed to list {kind}: {e}", extra={"output": self.name})
            self._record_error(f"list_{kind}")
            return

        items = to_dict(self.clients.api_client, listed).get("items") or []
        existing = self.differ.build_name_index(
            items, lambda item: (item.get("metadata") or {}).get("name")
        )

        delete = getattr(self.core_api, f"delete_namespaced_{kind}")
        for name in self.differ.find_stale(existing, desired):
            try:
                delete(name, self.namespace)
            except API_ERRORS as e:
                logger.error(f"Failed to delete {kind} `{name}': {e}", extra={"output": self.name, "artifact": name})
                self._record_error(f"delete_{kind}")
                continue
            logger.info(f"{kind} `{name}' deleted", extra={"output": self.name, "artifact": name})
            self._record_deleted(1)

    def _upsert_service_monitor(self, endpoints: List[Dict[str, Any]]) -> None:
        custom_api = self.clients.custom_api
        body = {
            "apiVersion": f"{MONITORING_GROUP}/{MONITORING_VERSION}",
            "kind": "ServiceMonitor",
            "metadata": {
                "name": SERVICE_MONITOR_NAME,
                "namespace": self.namespace,
                "labels": dict(self.object_labels),
            },
            "spec": {
                "selector": {"matchLabels": {DISCRIMINATOR_LABEL: "true"}},
                "endpoints": endpoints,
            },
        }

        try:
            try:
                existing = custom_api.get_namespaced_custom_object(
                    MONITORING_GROUP, MONITORING_VERSION, self.namespace,
                    SERVICE_MONITOR_PLURAL, SERVICE_MONITOR_NAME,
                )
            except API_ERRORS as e:
                if not is_not_found(e):
                    raise
                custom_api.create_namespaced_custom_object(
                    MONITORING_GROUP, MONITORING_VERSION, self.namespace,
                    SERVICE_MONITOR_PLURAL, body,
                )
                logger.info(f"ServiceMonitor `{SERVICE_MONITOR_NAME}' created")
                return

            body["metadata"]["resourceVersion"] = (existing.get("metadata") or {}).get("resourceVersion")
            custom_api.replace_namespaced_custom_object(
                MONITORING_GROUP, MONITORING_VERSION, self.namespace,
                SERVICE_MONITOR_PLURAL, SERVICE_MONITOR_NAME, body,
            )
            logger.debug(f"ServiceMonitor `{SERVICE_MONITOR_NAME}' updated with {len(endpoints)} endpoints")
        except API_ERRORS as e:
            logger.error(f"Failed to upsert ServiceMonitor `{SERVICE_MONITOR_NAME}': {e}")
            self._record_error("upsert_service_monitor")
