"""
Outputs for PuppetDB Service Discovery

Usage:
    from prometheus_puppetdb.outputs import setup_output

    output = setup_output(cfg.output, metrics)
    output.write_output(snapshot)
"""

import logging
from typing import Optional

from prometheus_puppetdb.config import OutputConfig, OutputMethod
from prometheus_puppetdb.errors import ConfigurationError
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import Output
from prometheus_puppetdb.outputs.file import FileOutput
from prometheus_puppetdb.outputs.kube import KubeClients
from prometheus_puppetdb.outputs.stdout import StdoutOutput

logger = logging.getLogger(__name__)


def setup_output(
    cfg: OutputConfig,
    metrics: Optional[SyncMetrics] = None,
    clients: Optional[KubeClients] = None
) -> Output:
    """
    Build the output selected by the configuration.

    Kubernetes outputs are imported lazily so that the other outputs work
    without a reachable cluster.

    Raises:
        ConfigurationError: If the output cannot be set up
    """
    if cfg.method is OutputMethod.STDOUT:
        return StdoutOutput(cfg.format, metrics)

    if cfg.method is OutputMethod.FILE:
        return FileOutput(cfg.file, cfg.format, metrics)

    if cfg.method is OutputMethod.K8S_SECRET:
        from prometheus_puppetdb.outputs.k8s_secret import K8sSecretOutput
        return K8sSecretOutput(cfg.k8s_secret, cfg.format, metrics, clients)

    if cfg.method is OutputMethod.K8S_EXTERNAL_SERVICE:
        from prometheus_puppetdb.outputs.k8s_external_service import K8sExternalServiceOutput
        return K8sExternalServiceOutput(cfg.k8s_external_service, cfg.format, metrics, clients)

    raise ConfigurationError(f"output method '{cfg.method}' not supported")


__all__ = ['Output', 'setup_output']
