"""
Prometheus service discovery based on PuppetDB.

Queries exported Prometheus::Scrape_job resources from PuppetDB and publishes
them as Prometheus scrape configurations on stdout, in files, in a Kubernetes
Secret or as Kubernetes external services.
"""

__version__ = "1.0.0"
