#!/usr/bin/env python3
"""
Prometheus scrape lists based on PuppetDB

Usage:
    prometheus-puppetdb --puppetdb-url https://puppetdb:8081 -o file --output-format static-configs
    prometheus-puppetdb --once
    prometheus-puppetdb --version
"""

import logging
import signal
import sys
from typing import List, Optional

from prometheus_puppetdb import __version__
from prometheus_puppetdb.config import build_parser, config_from_args
from prometheus_puppetdb.driver import PollDriver
from prometheus_puppetdb.errors import ConfigurationError, PersistenceError
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs import setup_output
from prometheus_puppetdb.puppetdb.client import PuppetDBClient
from prometheus_puppetdb.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CYCLE_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _interrupt(signum, frame):
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"Prometheus-puppetdb v{__version__}")
        return EXIT_OK

    setup_logging(args.log_level, args.json_logging)

    try:
        cfg = config_from_args(args)
        metrics = SyncMetrics()
        client = PuppetDBClient(cfg.puppetdb)
        output = setup_output(cfg.output, metrics)
    except (ConfigurationError, PersistenceError) as e:
        logger.error(f"Failed to set up: {e}")
        return EXIT_CONFIG_ERROR

    if cfg.metrics_port:
        metrics.start_server(cfg.metrics_port)

    driver = PollDriver(client, output, cfg.prometheus, cfg.sleep, metrics)
    signal.signal(signal.SIGTERM, _interrupt)

    try:
        if cfg.once:
            return EXIT_OK if driver.run_once() else EXIT_CYCLE_FAILED
        driver.run()
    except KeyboardInterrupt:
        logger.info("Caught a signal, bailing out")
    finally:
        client.close()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
