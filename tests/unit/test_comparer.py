"""
Unit tests for reconciliation comparer module.

Tests read-before-write comparison of Endpoints and Service objects.
"""

import pytest


def endpoints(ip="10.0.0.1", port=9103, name="puppetdb-10-0-0-1-9103", **metadata):
    return {
        "metadata": dict(name=name, **metadata),
        "subsets": [{
            "addresses": [{"ip": ip}],
            "ports": [{"name": name, "port": port, "protocol": "TCP"}],
        }],
    }


def service(external_name="10.0.0.1", port=9103, name="puppetdb-10-0-0-1-9103", **metadata):
    return {
        "metadata": dict(name=name, **metadata),
        "spec": {
            "type": "ExternalName",
            "externalName": external_name,
            "ports": [{"name": name, "port": port, "protocol": "TCP"}],
        },
    }


class TestObjectComparer:
    """Test owned-field comparison."""

    @pytest.fixture
    def comparer(self):
        """Create an ObjectComparer instance."""
        from prometheus_puppetdb.reconciliation.comparer import ObjectComparer
        return ObjectComparer()

    def test_identical_endpoints_are_equal(self, comparer):
        assert comparer.endpoints_equal(endpoints(), endpoints()) is True

    def test_server_fields_ignored(self, comparer):
        """Test resourceVersion and other server-side metadata do not matter."""
        existing = endpoints(resourceVersion="42", uid="abc")

        assert comparer.endpoints_equal(endpoints(), existing) is True

    def test_changed_ip_is_not_equal(self, comparer):
        assert comparer.endpoints_equal(endpoints(ip="10.0.0.2"), endpoints()) is False

    def test_changed_port_is_not_equal(self, comparer):
        assert comparer.endpoints_equal(endpoints(port=9100), endpoints()) is False

    def test_string_port_normalized(self, comparer):
        assert comparer.endpoints_equal(endpoints(), endpoints(port="9103")) is True

    def test_empty_existing_endpoints(self, comparer):
        """Test an Endpoints object without subsets differs."""
        assert comparer.endpoints_equal(endpoints(), {"metadata": {"name": "x"}}) is False

    def test_service_equal(self, comparer):
        assert comparer.service_equal(service(), service(resourceVersion="7")) is True

    def test_changed_external_name(self, comparer):
        assert comparer.service_equal(service(external_name="host.example.com"), service()) is False

    def test_compare_fields_detailed(self, comparer):
        desired = comparer.service_fields(service(external_name="b", port=80))
        existing = comparer.service_fields(service())

        assert comparer.compare_fields_detailed(desired, existing) == ["external_name", "port"]
