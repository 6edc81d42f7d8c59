"""
Unit tests for pipeline transform module.
"""

from prometheus_puppetdb.models import Resource
from prometheus_puppetdb.outputs.base import render_scrape_configs
from prometheus_puppetdb.pipeline.transform import rewrite_scheme_for_proxy, transform


class TestTransform:
    """Test grouping of resources into scrape configurations."""

    def test_groups_by_job_in_first_seen_order(self, resources):
        """Test the two-server sample yields node-exporter then apache-exporter."""
        snapshot = transform(resources)

        assert [sc.job_name for sc in snapshot] == ["node-exporter", "apache-exporter"]
        assert len(snapshot[0].static_configs) == 2
        assert len(snapshot[1].static_configs) == 1

    def test_certname_label_injected(self, resources):
        snapshot = transform(resources)

        node = snapshot[0].static_configs
        assert node[0].labels["certname"] == "server-1.example.com"
        assert node[1].labels["certname"] == "server-2.example.com"
        assert node[1].targets == ["server-2.example.com:9100"]

    def test_certname_overrides_resource_label(self):
        """Test a certname label exported by the resource is overwritten."""
        resource = Resource("real", "job", ("a:1",), {"certname": "fake"})

        snapshot = transform([resource])

        assert snapshot[0].static_configs[0].labels["certname"] == "real"

    def test_resources_without_targets_dropped(self):
        """Test no scrape configuration is produced for a job without targets."""
        resources = [
            Resource("a", "empty", (), {}),
            Resource("b", "node", ("b:9100",), {}),
        ]

        snapshot = transform(resources)

        assert [sc.job_name for sc in snapshot] == ["node"]

    def test_empty_input(self):
        assert transform([]) == []

    def test_input_not_mutated(self, resources):
        """Test transformed labels are copies of the resource labels."""
        snapshot = transform(resources)
        snapshot[0].static_configs[0].labels["team"] = "changed"

        assert resources[0].labels["team"] == "team-1"
        assert "certname" not in resources[0].labels

    def test_rendered_yaml_is_deterministic(self, resources):
        """Test label insertion order does not change the published bytes."""
        reordered = [
            Resource(r.certname, r.job_name, r.targets, dict(reversed(list(r.labels.items()))))
            for r in resources
        ]

        first = render_scrape_configs(transform(resources))

        assert render_scrape_configs(transform(resources)) == first
        assert render_scrape_configs(transform(reordered)) == first

    def test_proxy_url_set_on_every_scrape_config(self, resources):
        snapshot = transform(resources, proxy_url="http://proxy:3128")

        assert all(sc.proxy_url == "http://proxy:3128" for sc in snapshot)

    def test_empty_proxy_url_disables_rewrite(self):
        resource = Resource("a", "job", ("a:1",), {"__scheme__": "https"})

        snapshot = transform([resource], proxy_url="")

        assert snapshot[0].proxy_url is None
        assert snapshot[0].static_configs[0].labels["__scheme__"] == "https"

    def test_proxy_rewrites_scheme(self):
        resource = Resource("a", "job", ("a:1",), {"__scheme__": "https"})

        labels = transform([resource], proxy_url="http://proxy:3128")[0].static_configs[0].labels

        assert labels["__scheme__"] == "http"
        assert labels["__param__scheme"] == "https"


class TestRewriteSchemeForProxy:
    """Test the proxy scheme rewrite."""

    def test_without_scheme_label_unchanged(self):
        assert rewrite_scheme_for_proxy({"team": "a"}) == {"team": "a"}

    def test_returns_copy(self):
        labels = {"__scheme__": "https"}

        rewritten = rewrite_scheme_for_proxy(labels)

        assert labels == {"__scheme__": "https"}
        assert rewritten == {"__scheme__": "http", "__param__scheme": "https"}
