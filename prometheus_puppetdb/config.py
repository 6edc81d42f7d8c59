"""
Configuration for PuppetDB Service Discovery

Configuration is an explicit dataclass tree handed to each component's
constructor. Every option can be given as a command line flag; its default is
read from the matching PROMETHEUS_PUPPETDB_* environment variable.
"""

import argparse
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlsplit

from prometheus_puppetdb.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_QUERY = (
    "resources[certname, parameters] "
    "{ type = 'Prometheus::Scrape_job' and exported = true }"
)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class OutputMethod(Enum):
    """Where the rendered configuration is published."""
    STDOUT = "stdout"
    FILE = "file"
    K8S_SECRET = "k8s-secret"
    K8S_EXTERNAL_SERVICE = "k8s-external-service"


class OutputFormat(Enum):
    """Shape of the rendered configuration."""
    SCRAPE_CONFIGS = "scrape-configs"
    STATIC_CONFIGS = "static-configs"
    MERGED_STATIC_CONFIGS = "merged-static-configs"


@dataclass
class PuppetDBConfig:
    """PuppetDB client options."""
    url: str = "http://puppetdb:8080"
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    cacert_file: Optional[str] = None
    ssl_skip_verify: bool = False
    query: str = DEFAULT_QUERY
    timeout: float = 30.0


@dataclass
class PrometheusSDConfig:
    """Options applied while building scrape configurations."""
    proxy_url: Optional[str] = None


@dataclass
class FileOutputConfig:
    filename: str = "puppetdb.yml"
    filename_pattern: str = "puppetdb-*.yml"
    directory: str = "/etc/prometheus"


@dataclass
class K8sSecretOutputConfig:
    secret_name: str = "prometheus-puppetdb"
    namespace: Optional[str] = None
    object_labels: Dict[str, str] = field(
        default_factory=lambda: {"app.kubernetes.io/name": "prometheus-puppetdb"}
    )
    secret_key: str = "puppetdb.yml"
    secret_key_pattern: str = "puppetdb-*.yml"
    extra_config_secret_name: Optional[str] = None
    extra_config_secret_key: Optional[str] = None


@dataclass
class K8sExternalServiceOutputConfig:
    namespace: Optional[str] = None
    object_labels: Dict[str, str] = field(
        default_factory=lambda: {"app.kubernetes.io/name": "prometheus-puppetdb"}
    )


@dataclass
class OutputConfig:
    """Output selection and per-output options."""
    method: OutputMethod = OutputMethod.STDOUT
    format: OutputFormat = OutputFormat.SCRAPE_CONFIGS
    file: FileOutputConfig = field(default_factory=FileOutputConfig)
    k8s_secret: K8sSecretOutputConfig = field(default_factory=K8sSecretOutputConfig)
    k8s_external_service: K8sExternalServiceOutputConfig = field(
        default_factory=K8sExternalServiceOutputConfig
    )


@dataclass
class Config:
    """Top-level configuration."""
    sleep: float = 5.0
    puppetdb: PuppetDBConfig = field(default_factory=PuppetDBConfig)
    prometheus: PrometheusSDConfig = field(default_factory=PrometheusSDConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    log_level: str = "INFO"
    json_logging: bool = False
    metrics_port: int = 0
    once: bool = False

    def validate(self) -> None:
        """
        Validate cross-field constraints.

        Raises:
            ConfigurationError: If the configuration cannot work
        """
        scheme = urlsplit(self.puppetdb.url).scheme
        if scheme not in ("http", "https"):
            raise ConfigurationError(f"'{scheme}' is not a valid http scheme for PuppetDB URL")

        if self.puppetdb.cert_file and not self.puppetdb.key_file:
            raise ConfigurationError("A key file is required when a client certificate is set")

        if self.sleep <= 0:
            raise ConfigurationError("Sleep duration must be positive")

        if self.output.format is OutputFormat.STATIC_CONFIGS:
            if self.output.method is OutputMethod.FILE and "*" not in self.output.file.filename_pattern:
                raise ConfigurationError("File name pattern must contain a '*' placeholder")
            if (self.output.method is OutputMethod.K8S_SECRET
                    and "*" not in self.output.k8s_secret.secret_key_pattern):
                raise ConfigurationError("Secret key pattern must contain a '*' placeholder")

        if self.metrics_port < 0:
            raise ConfigurationError("Metrics port must not be negative")


def parse_duration(value: str) -> float:
    """
    Parse a duration such as "5s", "1m30s" or "250ms" into seconds.

    A bare number is read as seconds.

    Raises:
        ConfigurationError: If the value is not a duration
    """
    text = str(value).strip()
    if not text:
        raise ConfigurationError("Empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return total


def parse_labels(value: Optional[str]) -> Dict[str, str]:
    """
    Parse "key:value,key2:value2" into a label mapping.

    Raises:
        ConfigurationError: If an entry has no ':' separator
    """
    labels: Dict[str, str] = {}
    if not value:
        return labels

    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, label_value = entry.partition(":")
        if not sep or not key:
            raise ConfigurationError(f"Invalid label definition: {entry!r}")
        labels[key.strip()] = label_value.strip()

    return labels


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"PROMETHEUS_PUPPETDB_{name}", default)


def _env_bool(name: str) -> bool:
    return (_env(name, "false") or "").lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser with environment-driven defaults."""
    parser = argparse.ArgumentParser(
        prog="prometheus-puppetdb",
        description="Prometheus scrape lists based on PuppetDB",
    )
    parser.add_argument("-V", "--version", action="store_true", help="Display version")
    parser.add_argument("-s", "--sleep", default=_env("SLEEP", "5s"),
                        help="Sleep time between queries (e.g. 5s, 1m)")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--log-level", default=_env("LOG_LEVEL", "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--json-logging", action="store_true", default=_env_bool("JSON_LOGGING"),
                        help="Emit structured JSON log lines")
    parser.add_argument("--metrics-port", type=int, default=int(_env("METRICS_PORT", "0")),
                        help="Expose self-metrics on this port (0 disables)")

    puppetdb = parser.add_argument_group("PuppetDB Client Options")
    puppetdb.add_argument("-u", "--puppetdb-url", default=_env("URL", "http://puppetdb:8080"),
                          help="PuppetDB base URL")
    puppetdb.add_argument("-x", "--puppetdb-cert-file", default=_env("CERT_FILE"),
                          help="A PEM encoded certificate file")
    puppetdb.add_argument("-y", "--puppetdb-key-file", default=_env("KEY_FILE"),
                          help="A PEM encoded private key file")
    puppetdb.add_argument("-z", "--puppetdb-cacert-file", default=_env("CACERT_FILE"),
                          help="A PEM encoded CA's certificate file")
    puppetdb.add_argument("-k", "--puppetdb-ssl-skip-verify", action="store_true",
                          default=_env_bool("SSL_SKIP_VERIFY"), help="Skip SSL verification")
    puppetdb.add_argument("-q", "--puppetdb-query", default=_env("QUERY", DEFAULT_QUERY),
                          help="PuppetDB query")
    puppetdb.add_argument("--puppetdb-timeout", type=float, default=float(_env("TIMEOUT", "30")),
                          help="PuppetDB request timeout in seconds")

    prometheus = parser.add_argument_group("Prometheus Service Discovery Options")
    prometheus.add_argument("--prometheus-proxy-url", default=_env("PROXY_URL"),
                            help="Prometheus target scraping proxy URL")

    output = parser.add_argument_group("Output Configuration")
    output.add_argument("-o", "--output-method", default=_env("OUTPUT_METHOD", "stdout"),
                        choices=[m.value for m in OutputMethod], help="Output method")
    output.add_argument("--output-format", default=_env("OUTPUT_FORMAT", "scrape-configs"),
                        choices=[f.value for f in OutputFormat], help="Output format")
    output.add_argument("-f", "--output-file-filename", default=_env("FILENAME", "puppetdb.yml"),
                        help="Output filename")
    output.add_argument("--output-file-filename-pattern",
                        default=_env("FILENAME_PATTERN", "puppetdb-*.yml"),
                        help="Output filename pattern ('*' is the placeholder)")
    output.add_argument("--output-file-directory", default=_env("DIRECTORY", "/etc/prometheus"),
                        help="Output directory")
    output.add_argument("--output-k8s-namespace", default=_env("K8S_NAMESPACE"),
                        help="Kubernetes namespace")
    output.add_argument("--output-k8s-object-labels",
                        default=_env("K8S_OBJECT_LABELS", "app.kubernetes.io/name:prometheus-puppetdb"),
                        help="Labels to add to Kubernetes objects (key:value,...)")
    output.add_argument("--output-k8s-secret-name", default=_env("K8S_SECRET_NAME", "prometheus-puppetdb"),
                        help="Kubernetes secret name")
    output.add_argument("--output-k8s-secret-key", default=_env("K8S_SECRET_KEY", "puppetdb.yml"),
                        help="Kubernetes secret key")
    output.add_argument("--output-k8s-secret-key-pattern",
                        default=_env("K8S_SECRET_KEY_PATTERN", "puppetdb-*.yml"),
                        help="Kubernetes secret key pattern ('*' is the placeholder)")
    output.add_argument("--output-k8s-extra-config-secret-name",
                        default=_env("K8S_EXTRA_CONFIG_SECRET_NAME"),
                        help="Secret holding extra configuration appended to the output")
    output.add_argument("--output-k8s-extra-config-secret-key",
                        default=_env("K8S_EXTRA_CONFIG_SECRET_KEY"),
                        help="Key of the extra configuration secret")

    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    """
    Build and validate a Config from parsed arguments.

    Raises:
        ConfigurationError: If a value is invalid
    """
    try:
        method = OutputMethod(args.output_method)
        fmt = OutputFormat(args.output_format)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    object_labels = parse_labels(args.output_k8s_object_labels)

    cfg = Config(
        sleep=parse_duration(args.sleep),
        puppetdb=PuppetDBConfig(
            url=args.puppetdb_url.rstrip("/"),
            cert_file=args.puppetdb_cert_file or None,
            key_file=args.puppetdb_key_file or None,
            cacert_file=args.puppetdb_cacert_file or None,
            ssl_skip_verify=args.puppetdb_ssl_skip_verify,
            query=args.puppetdb_query,
            timeout=args.puppetdb_timeout,
        ),
        prometheus=PrometheusSDConfig(proxy_url=args.prometheus_proxy_url or None),
        output=OutputConfig(
            method=method,
            format=fmt,
            file=FileOutputConfig(
                filename=args.output_file_filename,
                filename_pattern=args.output_file_filename_pattern,
                directory=args.output_file_directory,
            ),
            k8s_secret=K8sSecretOutputConfig(
                secret_name=args.output_k8s_secret_name,
                namespace=args.output_k8s_namespace or None,
                object_labels=dict(object_labels),
                secret_key=args.output_k8s_secret_key,
                secret_key_pattern=args.output_k8s_secret_key_pattern,
                extra_config_secret_name=args.output_k8s_extra_config_secret_name or None,
                extra_config_secret_key=args.output_k8s_extra_config_secret_key or None,
            ),
            k8s_external_service=K8sExternalServiceOutputConfig(
                namespace=args.output_k8s_namespace or None,
                object_labels=dict(object_labels),
            ),
        ),
        log_level=args.log_level,
        json_logging=args.json_logging,
        metrics_port=args.metrics_port,
        once=args.once,
    )
    cfg.validate()
    return cfg
