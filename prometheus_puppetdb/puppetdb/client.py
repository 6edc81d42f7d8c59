"""
PuppetDB Query Client for Service Discovery

Issues one templated PQL query per poll cycle and decodes the returned
resource list. TLS client authentication is supported through a client
certificate/key pair and a CA bundle.
"""

import logging
import os
from string import Template
from typing import Any, Dict, List, Mapping, Optional

import requests

from prometheus_puppetdb.config import PrometheusSDConfig, PuppetDBConfig
from prometheus_puppetdb.errors import ConfigurationError, DecodeError, TransportError
from prometheus_puppetdb.models import Resource, Snapshot
from prometheus_puppetdb.pipeline.transform import transform

logger = logging.getLogger(__name__)

QUERY_PATH = "/pdb/query/v4"


def render_query(query_template: str, parameters: Optional[Mapping[str, Any]] = None) -> str:
    """
    Substitute $name placeholders of a PQL query template.

    Values are inserted as-is; quoting is the template author's job.
    Unknown placeholders are left untouched.

    Args:
        query_template: PQL query with optional $name placeholders
        parameters: Values to substitute

    Returns:
        Rendered query string
    """
    if not parameters:
        return query_template
    return Template(query_template).safe_substitute(
        {key: str(value) for key, value in parameters.items()}
    )


class PuppetDBClient:
    """
    Client for the PuppetDB v4 query API.

    Provides methods to fetch exported scrape job resources and to turn them
    into Prometheus scrape configurations.
    """

    def __init__(self, cfg: PuppetDBConfig, session: Optional[requests.Session] = None):
        """
        Initialize PuppetDB client.

        Args:
            cfg: PuppetDB client configuration
            session: Optional pre-built HTTP session

        Raises:
            ConfigurationError: If the URL scheme or TLS material is invalid
        """
        self.url = cfg.url.rstrip('/')
        self.query = cfg.query
        self.timeout = cfg.timeout

        scheme = self.url.split("://", 1)[0] if "://" in self.url else ""
        if scheme not in ("http", "https"):
            raise ConfigurationError(f"'{scheme}' is not a valid http scheme")

        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

        if cfg.ssl_skip_verify:
            logger.warning("Skipping SSL certificate verification!")
            self.session.verify = False
        elif cfg.cacert_file:
            self._require_file(cfg.cacert_file, "CA certificate")
            self.session.verify = cfg.cacert_file

        if cfg.cert_file:
            self._require_file(cfg.cert_file, "client certificate")
            self._require_file(cfg.key_file, "client key")
            self.session.cert = (cfg.cert_file, cfg.key_file)
            logger.info("Using TLS client certificate authentication")

        logger.info(f"Initialized PuppetDB client for {self.url}")

    @staticmethod
    def _require_file(path: Optional[str], description: str) -> None:
        if not path or not os.path.isfile(path):
            raise ConfigurationError(f"Failed to load {description}: {path!r} is not a file")

    def fetch(self, query_template: str, parameters: Optional[Mapping[str, Any]] = None) -> List[Resource]:
        """
        Run a query and decode the resource list.

        Args:
            query_template: PQL query template
            parameters: Values for $name placeholders

        Returns:
            Resources in PuppetDB order

        Raises:
            TransportError: On connection, TLS or HTTP status failure
            DecodeError: If the response does not match the resource schema
        """
        query = render_query(query_template, parameters)
        endpoint = f"{self.url}{QUERY_PATH}"

        logger.debug(f"Querying PuppetDB: {query}")
        try:
            response = self.session.post(endpoint, json={"query": query}, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.SSLError as e:
            raise TransportError(f"TLS handshake with {endpoint} failed: {e}") from e
        except requests.exceptions.HTTPError as e:
            raise TransportError(f"PuppetDB returned an error status: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"HTTP request to {endpoint} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(f"Failed to decode PuppetDB response as JSON: {e}") from e

        resources = self.decode_resources(payload)
        logger.info(f"Fetched {len(resources)} resources from PuppetDB")
        return resources

    def decode_resources(self, payload: Any) -> List[Resource]:
        """
        Decode a PuppetDB response body.

        Raises:
            DecodeError: If the payload is not a list of resource objects
        """
        if not isinstance(payload, list):
            raise DecodeError(f"Expected a JSON array of resources, got {type(payload).__name__}")

        resources = []
        for i, item in enumerate(payload):
            try:
                resources.append(Resource.from_dict(item))
            except DecodeError as e:
                raise DecodeError(f"Invalid resource at index {i}: {e}") from e

        return resources

    def get_scrape_configs(
        self,
        sd_cfg: Optional[PrometheusSDConfig] = None,
        parameters: Optional[Dict[str, Any]] = None
    ) -> Snapshot:
        """
        Fetch resources with the configured query and transform them.

        Args:
            sd_cfg: Service discovery options (proxy URL)
            parameters: Values for query placeholders

        Returns:
            Snapshot of scrape configurations
        """
        proxy_url = sd_cfg.proxy_url if sd_cfg else None
        resources = self.fetch(self.query, parameters)
        return transform(resources, proxy_url)

    def close(self) -> None:
        self.session.close()
