"""
Poll Driver for PuppetDB Service Discovery

Runs fetch -> transform -> write cycles one after another, sleeping between
them. A failed cycle is logged and counted; the next cycle is the retry.
"""

import logging
import time
from typing import Callable, Optional

from prometheus_puppetdb.config import PrometheusSDConfig
from prometheus_puppetdb.errors import DecodeError, PersistenceError, SerializationError, TransportError
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import Output, count_targets
from prometheus_puppetdb.puppetdb.client import PuppetDBClient
from prometheus_puppetdb.utils.cycle_context import cycle_context

logger = logging.getLogger(__name__)


class PollDriver:
    """Sequential poll loop tying the PuppetDB client to one output."""

    def __init__(
        self,
        client: PuppetDBClient,
        output: Output,
        sd_cfg: Optional[PrometheusSDConfig] = None,
        interval: float = 5.0,
        metrics: Optional[SyncMetrics] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize poll driver.

        Args:
            client: PuppetDB client
            output: Output receiving every snapshot
            sd_cfg: Service discovery options
            interval: Seconds to sleep between cycles
            metrics: Optional self-metrics
            sleep: Sleep function (replaced in tests)
        """
        self.client = client
        self.output = output
        self.sd_cfg = sd_cfg or PrometheusSDConfig()
        self.interval = interval
        self.metrics = metrics
        self.sleep = sleep
        self.cycles = 0

    def run_once(self) -> bool:
        """
        Run one cycle.

        Returns:
            True if the snapshot was fetched and written
        """
        self.cycles += 1
        with cycle_context(cycle=self.cycles, output=self.output.name) as info:
            start = time.monotonic()
            status = "success"

            logger.debug(f"Starting cycle {self.cycles}")
            try:
                snapshot = self.client.get_scrape_configs(self.sd_cfg)
                if self.metrics:
                    self.metrics.record_snapshot(len(snapshot), count_targets(snapshot))
                self.output.write_output(snapshot)
            except (TransportError, DecodeError) as e:
                status = "fetch_error"
                logger.error(f"Failed to get scrape configs: {e}")
            except (SerializationError, PersistenceError) as e:
                status = "output_error"
                logger.error(f"Failed to write output: {e}")

            duration = time.monotonic() - start
            if self.metrics:
                self.metrics.record_cycle(status, duration)

            if status == "success":
                logger.info(
                    f"Cycle {self.cycles} completed in {duration:.3f}s",
                    extra={"duration": duration}
                )
            else:
                logger.debug(f"Cycle {info.correlation_id} ended with status {status}")

            return status == "success"

    def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Poll until interrupted, or for max_cycles cycles.

        Args:
            max_cycles: Stop after this many cycles (None runs forever)
        """
        logger.info(f"Polling PuppetDB every {self.interval}s")
        done = 0
        while max_cycles is None or done < max_cycles:
            self.run_once()
            done += 1
            if max_cycles is not None and done >= max_cycles:
                break
            self.sleep(self.interval)
