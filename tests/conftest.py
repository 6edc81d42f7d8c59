"""
Pytest configuration and shared fixtures for unit and integration tests.

Provides PuppetDB response payloads, decoded snapshots and in-memory
Kubernetes API clients so that no test needs a live PuppetDB or cluster.
"""

import pytest
from unittest.mock import Mock
from prometheus_client import CollectorRegistry

from fakes import fake_clients, unreachable_clients
from prometheus_puppetdb.models import Resource
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.pipeline.transform import transform
from prometheus_puppetdb.utils.cycle_context import clear_cycle


PUPPETDB_RESPONSE = [
    {
        "certname": "server-1.example.com",
        "parameters": {
            "job_name": "node-exporter",
            "targets": ["server-1.example.com:9100"],
            "labels": {"environment": "production", "team": "team-1"},
        },
    },
    {
        "certname": "server-1.example.com",
        "parameters": {
            "job_name": "apache-exporter",
            "targets": ["server-1.example.com:9117"],
            "labels": {"environment": "production", "team": "team-2"},
        },
    },
    {
        "certname": "server-2.example.com",
        "parameters": {
            "job_name": "node-exporter",
            "targets": ["server-2.example.com:9100"],
            "labels": {"environment": "development", "team": "team-1"},
        },
    },
]


@pytest.fixture
def puppetdb_response():
    """Raw PuppetDB resource list for two servers and two jobs."""
    return [dict(item, parameters=dict(item["parameters"])) for item in PUPPETDB_RESPONSE]


@pytest.fixture
def resources(puppetdb_response):
    """Decoded resources of the sample response."""
    return [Resource.from_dict(item) for item in puppetdb_response]


@pytest.fixture
def snapshot(resources):
    """Snapshot built from the sample resources."""
    return transform(resources)


@pytest.fixture
def metrics():
    """SyncMetrics on a private registry."""
    return SyncMetrics(registry=CollectorRegistry())


@pytest.fixture
def kube_clients():
    """In-memory Kubernetes API clients."""
    return fake_clients()


@pytest.fixture
def unreachable_kube_clients():
    """Kubernetes API clients whose API server refuses connections."""
    return unreachable_clients()


@pytest.fixture
def mock_session(puppetdb_response):
    """requests.Session double answering every query with the sample response."""
    session = Mock()
    session.headers = {}
    response = Mock()
    response.json.return_value = puppetdb_response
    response.raise_for_status.return_value = None
    session.post.return_value = response
    return session


@pytest.fixture(autouse=True)
def clean_cycle_context():
    """Ensure no cycle context leaks between tests."""
    clear_cycle()
    yield
    clear_cycle()
