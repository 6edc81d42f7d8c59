"""Kubernetes API access shared by the Kubernetes outputs."""

import logging
import os
from typing import Any, Dict, NamedTuple, Optional

from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
import urllib3

from prometheus_puppetdb.errors import ConfigurationError

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAMESPACE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
DEFAULT_NAMESPACE = "default"

# Failures of one API call: error responses and unreachable API servers
API_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


class KubeClients(NamedTuple):
    api_client: Any
    core_api: Any
    custom_api: Any


def load_kube_clients() -> KubeClients:
    """
    Build API clients from the in-cluster config, falling back to kubeconfig.

    Raises:
        ConfigurationError: If neither configuration can be loaded
    """
    try:
        kube_config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
    except ConfigException:
        try:
            kube_config.load_kube_config()
            logger.info("Using local kubeconfig")
        except (ConfigException, OSError) as e:
            raise ConfigurationError(f"Failed to load Kubernetes configuration: {e}") from e

    api_client = client.ApiClient()
    return KubeClients(
        api_client=api_client,
        core_api=client.CoreV1Api(api_client),
        custom_api=client.CustomObjectsApi(api_client),
    )


def resolve_namespace(namespace: Optional[str] = None) -> str:
    """Configured namespace, else the service account's, else the kubeconfig context's."""
    if namespace:
        return namespace

    try:
        with open(SERVICE_ACCOUNT_NAMESPACE, encoding="utf-8") as f:
            found = f.read().strip()
        if found:
            return found
    except OSError:
        pass

    try:
        _, active_context = kube_config.list_kube_config_contexts()
        found = (active_context or {}).get("context", {}).get("namespace")
        if found:
            return found
    except (ConfigException, OSError):
        pass

    return DEFAULT_NAMESPACE


def to_dict(api_client: Any, obj: Any) -> Dict[str, Any]:
    """Normalize an API model (or a plain dict) into its camelCase JSON form."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return api_client.sanitize_for_serialization(obj)


def is_not_found(error: Exception) -> bool:
    return getattr(error, "status", None) == 404
