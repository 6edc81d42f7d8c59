"""
Resource Model for PuppetDB Service Discovery

Canonical in-memory representation of PuppetDB scrape job resources and the
Prometheus scrape/static configurations derived from them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from prometheus_puppetdb.errors import DecodeError

logger = logging.getLogger(__name__)


class TargetsFormat(Enum):
    """Shapes accepted for the `targets` parameter of a scrape job."""
    ABSENT = "absent"
    STRING = "string"
    STRING_LIST = "string_list"
    STRUCT_LIST = "struct_list"


@dataclass(frozen=True)
class Resource:
    """
    One exported scrape job resource as returned by PuppetDB.

    Attributes:
        certname: Certname of the node exporting the resource
        job_name: Prometheus job the targets belong to
        targets: Ordered "host:port" targets
        labels: Labels attached to every target
    """

    certname: str
    job_name: str
    targets: Tuple[str, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, item: Any) -> "Resource":
        """
        Decode a single PuppetDB resource object.

        Args:
            item: Decoded JSON object with `certname` and `parameters`

        Returns:
            Resource instance

        Raises:
            DecodeError: If the object does not match the resource schema
        """
        if not isinstance(item, dict):
            raise DecodeError(f"Resource must be an object, got {type(item).__name__}")

        certname = item.get("certname")
        if not isinstance(certname, str):
            raise DecodeError(f"Resource has no string certname: {item!r}")

        parameters = item.get("parameters")
        if not isinstance(parameters, dict):
            raise DecodeError(f"Resource {certname} has no parameters object")

        job_name = parameters.get("job_name")
        if not isinstance(job_name, str):
            raise DecodeError(f"Resource {certname} has no string job_name")

        return cls(
            certname=certname,
            job_name=job_name,
            targets=decode_targets(parameters.get("targets"), certname),
            labels=decode_labels(parameters.get("labels"), certname),
        )


@dataclass
class StaticConfig:
    """Prometheus static configuration: a target list sharing one label set."""

    targets: List[str]
    labels: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targets": list(self.targets),
            "labels": {key: self.labels[key] for key in sorted(self.labels)},
        }


@dataclass
class ScrapeConfig:
    """Prometheus scrape configuration grouping all static configs of a job."""

    job_name: str
    proxy_url: Optional[str] = None
    static_configs: List[StaticConfig] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"job_name": self.job_name}
        if self.proxy_url:
            data["proxy_url"] = self.proxy_url
        data["static_configs"] = [sc.to_dict() for sc in self.static_configs]
        return data


# One poll cycle's output, in first-seen job order
Snapshot = List[ScrapeConfig]


def detect_targets_format(value: Any) -> TargetsFormat:
    """
    Classify the JSON shape of a `targets` parameter.

    Args:
        value: Raw decoded JSON value

    Returns:
        Matching TargetsFormat

    Raises:
        DecodeError: If the shape is not one of the accepted formats
    """
    if value is None:
        return TargetsFormat.ABSENT
    if isinstance(value, str):
        return TargetsFormat.STRING
    if isinstance(value, list):
        if all(isinstance(entry, str) for entry in value):
            return TargetsFormat.STRING_LIST
        if all(isinstance(entry, dict) for entry in value):
            return TargetsFormat.STRUCT_LIST
        raise DecodeError("targets array mixes strings and non-strings")
    raise DecodeError(f"Unsupported targets type: {type(value).__name__}")


def decode_targets(value: Any, certname: str = "") -> Tuple[str, ...]:
    """
    Decode a `targets` parameter into an ordered tuple of "host:port" strings.

    Older scrape job definitions exported a single string or a list of
    objects carrying a `target` or `url` key; both are still accepted.

    Raises:
        DecodeError: If the value cannot be decoded
    """
    fmt = detect_targets_format(value)

    if fmt is TargetsFormat.ABSENT:
        return ()
    if fmt is TargetsFormat.STRING:
        return (value,)
    if fmt is TargetsFormat.STRING_LIST:
        return tuple(value)

    targets = []
    for entry in value:
        if isinstance(entry.get("target"), str):
            targets.append(entry["target"])
        elif isinstance(entry.get("url"), str):
            targets.append(_target_from_url(entry["url"]))
        else:
            raise DecodeError(
                f"Target object of {certname or 'resource'} has neither target nor url: {entry!r}"
            )

    logger.debug(f"Decoded {len(targets)} legacy struct targets for {certname}")
    return tuple(targets)


def decode_labels(value: Any, certname: str = "") -> Dict[str, str]:
    """
    Decode a `labels` parameter into a string-to-string mapping.

    Raises:
        DecodeError: If labels are not an object of strings
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"Labels of {certname or 'resource'} must be an object")

    for key, label_value in value.items():
        if not isinstance(label_value, str):
            raise DecodeError(
                f"Label {key!r} of {certname or 'resource'} is not a string: {label_value!r}"
            )

    return dict(value)


def _target_from_url(url: str) -> str:
    netloc = urlsplit(url).netloc if "://" in url else url.split("/", 1)[0]
    if not netloc:
        raise DecodeError(f"Cannot extract host:port from target url {url!r}")
    return netloc
