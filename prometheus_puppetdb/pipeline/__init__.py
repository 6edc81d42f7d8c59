"""
Transformation Pipeline Module

Usage:
    from prometheus_puppetdb.pipeline import transform

    snapshot = transform(resources, proxy_url="http://proxy:3128")
"""

from prometheus_puppetdb.pipeline.transform import rewrite_scheme_for_proxy, transform

__all__ = [
    "rewrite_scheme_for_proxy",
    "transform",
]
