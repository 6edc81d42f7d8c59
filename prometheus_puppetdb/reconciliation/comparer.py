"""
Object Comparer for PuppetDB Service Discovery Reconciliation

Read-before-write comparison between the Kubernetes objects an output wants
and the ones already stored in the cluster. Objects are compared on the
handful of fields this tool owns, so that unrelated server-side defaults do
not trigger an update and resource versions only move on real changes.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ObjectComparer:
    """
    Compares desired and existing Endpoints/Service objects.

    Objects are plain dictionaries in Kubernetes API (camelCase) form.
    """

    def endpoints_fields(self, endpoints: Dict[str, Any]) -> Dict[str, Any]:
        """
        Extract the owned fields of an Endpoints object.

        Returns:
            Dictionary with ip, port and port_name (None when absent)
        """
        subset = self._first(endpoints.get("subsets"))
        address = self._first(subset.get("addresses")) if subset else {}
        port = self._first(subset.get("ports")) if subset else {}

        return {
            "ip": address.get("ip"),
            "port": self._normalize_port(port.get("port")),
            "port_name": port.get("name"),
        }

    def service_fields(self, service: Dict[str, Any]) -> Dict[str, Any]:
        """
        Extract the owned fields of a Service object.

        Returns:
            Dictionary with external_name, port and port_name
        """
        spec = service.get("spec") or {}
        port = self._first(spec.get("ports"))

        return {
            "external_name": spec.get("externalName"),
            "port": self._normalize_port(port.get("port")),
            "port_name": port.get("name"),
        }

    def compare_fields_detailed(self, desired: Dict[str, Any], existing: Dict[str, Any]) -> List[str]:
        """
        List the owned fields whose values differ.

        Args:
            desired: Fields of the object we want
            existing: Fields of the object in the cluster

        Returns:
            Sorted names of differing fields (empty when equal)
        """
        differing = [
            name for name in desired
            if desired[name] != existing.get(name)
        ]
        if differing:
            logger.debug(f"Differing fields: {differing}")
        return sorted(differing)

    def endpoints_equal(self, desired: Dict[str, Any], existing: Dict[str, Any]) -> bool:
        return not self.compare_fields_detailed(
            self.endpoints_fields(desired),
            self.endpoints_fields(existing),
        )

    def service_equal(self, desired: Dict[str, Any], existing: Dict[str, Any]) -> bool:
        return not self.compare_fields_detailed(
            self.service_fields(desired),
            self.service_fields(existing),
        )

    @staticmethod
    def _first(items: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        if not items:
            return {}
        return items[0] or {}

    @staticmethod
    def _normalize_port(value: Any) -> Optional[int]:
        # Ports may come back as strings from some API proxies
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
