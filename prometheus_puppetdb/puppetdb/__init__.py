"""
PuppetDB Query Client Module

Usage:
    from prometheus_puppetdb.puppetdb import PuppetDBClient

    client = PuppetDBClient(cfg.puppetdb)
    snapshot = client.get_scrape_configs(cfg.prometheus)
"""

from prometheus_puppetdb.puppetdb.client import PuppetDBClient, render_query

__all__ = [
    "PuppetDBClient",
    "render_query",
]
