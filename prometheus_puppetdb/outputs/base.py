"""
Output Contract and Rendering for PuppetDB Service Discovery

Every output implements write_output(snapshot). The output format decides how
a snapshot is cut into artifacts:

- scrape-configs: one artifact holding all scrape configurations
- static-configs: one artifact per job holding that job's static configs
- merged-static-configs: one artifact holding all static configs in a flat list
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import yaml

from prometheus_puppetdb.config import OutputFormat
from prometheus_puppetdb.errors import SerializationError
from prometheus_puppetdb.models import ScrapeConfig, Snapshot
from prometheus_puppetdb.monitoring.metrics import SyncMetrics

logger = logging.getLogger(__name__)

PLACEHOLDER = "*"


def render_yaml(data: Any) -> str:
    """
    Serialize data to block-style YAML, keeping mapping order.

    Raises:
        SerializationError: If the data cannot be represented
    """
    try:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except yaml.YAMLError as e:
        raise SerializationError(f"Failed to render YAML: {e}") from e


def render_scrape_configs(snapshot: Snapshot) -> str:
    return render_yaml([scrape_config.to_dict() for scrape_config in snapshot])


def render_static_configs(scrape_config: ScrapeConfig) -> str:
    return render_yaml([sc.to_dict() for sc in scrape_config.static_configs])


def render_merged_static_configs(snapshot: Snapshot) -> str:
    return render_yaml([
        sc.to_dict()
        for scrape_config in snapshot
        for sc in scrape_config.static_configs
    ])


def expand_pattern(pattern: str, job_name: str) -> str:
    """
    Replace the first '*' placeholder of a name pattern with a job name.

    Path separators in the job name become underscores so that the result
    stays a single file name or Secret key.
    """
    safe_name = job_name.replace("/", "_").replace("\\", "_")
    return pattern.replace(PLACEHOLDER, safe_name, 1)


def render_artifacts(
    snapshot: Snapshot,
    fmt: OutputFormat,
    single_name: str,
    pattern: str,
    extra_content: str = ""
) -> Dict[str, str]:
    """
    Cut a snapshot into named artifacts according to the output format.

    Args:
        snapshot: Scrape configurations of this cycle
        fmt: Output format
        single_name: Artifact name for single-artifact formats
        pattern: Artifact name pattern for static-configs
        extra_content: Text appended verbatim to single-artifact content

    Returns:
        Ordered mapping of artifact name to content

    Raises:
        SerializationError: If rendering fails or the format is unknown
    """
    if fmt is OutputFormat.SCRAPE_CONFIGS:
        return {single_name: render_scrape_configs(snapshot) + extra_content}

    if fmt is OutputFormat.MERGED_STATIC_CONFIGS:
        return {single_name: render_merged_static_configs(snapshot) + extra_content}

    if fmt is OutputFormat.STATIC_CONFIGS:
        return {
            expand_pattern(pattern, scrape_config.job_name): render_static_configs(scrape_config)
            for scrape_config in snapshot
        }

    raise SerializationError(f"unexpected output format '{fmt}'")


def count_targets(snapshot: Snapshot) -> int:
    return sum(
        len(sc.targets)
        for scrape_config in snapshot
        for sc in scrape_config.static_configs
    )


class Output(ABC):
    """
    Base class of all outputs.

    write_output either publishes the whole snapshot or raises; tracked
    artifact state is only replaced once every write of a cycle succeeded.
    """

    name = "output"

    def __init__(self, fmt: OutputFormat, metrics: Optional[SyncMetrics] = None):
        self.format = fmt
        self.metrics = metrics

    @abstractmethod
    def write_output(self, snapshot: Snapshot) -> None:
        """
        Publish a snapshot.

        Raises:
            SerializationError: If the snapshot cannot be rendered
            PersistenceError: If an artifact cannot be written or deleted
        """

    def _record_written(self, count: int) -> None:
        if self.metrics and count:
            self.metrics.record_written(self.name, count)

    def _record_deleted(self, count: int) -> None:
        if self.metrics and count:
            self.metrics.record_deleted(self.name, count)

    def _record_error(self, operation: str) -> None:
        if self.metrics:
            self.metrics.record_output_error(self.name, operation)
