"""
Transformation Pipeline for PuppetDB Service Discovery

Turns decoded PuppetDB resources into Prometheus scrape configurations,
grouped by job name in first-seen order.
"""

import logging
from typing import Dict, Iterable, Optional

from prometheus_puppetdb.models import Resource, ScrapeConfig, Snapshot, StaticConfig

logger = logging.getLogger(__name__)

SCHEME_LABEL = "__scheme__"
SCHEME_PARAM_LABEL = "__param__scheme"
CERTNAME_LABEL = "certname"


def rewrite_scheme_for_proxy(labels: Dict[str, str]) -> Dict[str, str]:
    """
    Make Prometheus dial the proxy over plain HTTP.

    The original scheme is passed to the proxy as the `scheme` URL parameter.
    Labels without `__scheme__` are returned unchanged.

    Args:
        labels: Label mapping (not modified)

    Returns:
        New label mapping
    """
    rewritten = dict(labels)
    if SCHEME_LABEL in rewritten:
        rewritten[SCHEME_PARAM_LABEL] = rewritten[SCHEME_LABEL]
        rewritten[SCHEME_LABEL] = "http"
    return rewritten


def transform(resources: Iterable[Resource], proxy_url: Optional[str] = None) -> Snapshot:
    """
    Build the snapshot of scrape configurations for one poll cycle.

    Resources without targets are dropped. Each static config gets its own
    copy of the resource labels, with the `certname` label forced to the
    resource certname.

    Args:
        resources: Decoded resources in PuppetDB order
        proxy_url: Scraping proxy URL; empty or None disables the proxy rewrite

    Returns:
        Scrape configurations in first-seen job order
    """
    snapshot: Snapshot = []
    by_job: Dict[str, ScrapeConfig] = {}
    dropped = 0

    for resource in resources:
        if not resource.targets:
            dropped += 1
            continue

        scrape_config = by_job.get(resource.job_name)
        if scrape_config is None:
            scrape_config = ScrapeConfig(job_name=resource.job_name, proxy_url=proxy_url or None)
            by_job[resource.job_name] = scrape_config
            snapshot.append(scrape_config)

        labels = dict(resource.labels or {})
        if proxy_url:
            labels = rewrite_scheme_for_proxy(labels)
        labels[CERTNAME_LABEL] = resource.certname

        scrape_config.static_configs.append(
            StaticConfig(targets=list(resource.targets), labels=labels)
        )

    if dropped:
        logger.debug(f"Dropped {dropped} resources without targets")

    logger.info(f"Built {len(snapshot)} scrape configurations")
    return snapshot
