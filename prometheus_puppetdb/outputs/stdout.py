"""Stdout output: prints the rendered configuration."""

import logging
import sys
from typing import Optional, TextIO

from prometheus_puppetdb.config import OutputFormat
from prometheus_puppetdb.models import Snapshot
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import (
    Output,
    render_merged_static_configs,
    render_scrape_configs,
    render_static_configs,
)

logger = logging.getLogger(__name__)


class StdoutOutput(Output):
    """Writes every snapshot to a text stream. Keeps no state between cycles."""

    name = "stdout"

    def __init__(
        self,
        fmt: OutputFormat,
        metrics: Optional[SyncMetrics] = None,
        stream: Optional[TextIO] = None
    ):
        super().__init__(fmt, metrics)
        self.stream = stream

    def write_output(self, snapshot: Snapshot) -> None:
        stream = self.stream or sys.stdout

        if self.format is OutputFormat.STATIC_CONFIGS:
            documents = [
                f"# job: {scrape_config.job_name}\n{render_static_configs(scrape_config)}"
                for scrape_config in snapshot
            ]
            text = "---\n".join(documents)
        elif self.format is OutputFormat.MERGED_STATIC_CONFIGS:
            text = render_merged_static_configs(snapshot)
        else:
            text = render_scrape_configs(snapshot)

        stream.write(text)
        stream.flush()
        self._record_written(1)
