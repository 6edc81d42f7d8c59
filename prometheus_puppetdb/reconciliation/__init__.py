"""
Reconciliation Module for PuppetDB Service Discovery

This module provides utilities for converging published artifacts (files,
Secret keys, Kubernetes objects) onto the snapshot of the current poll cycle.

Main components:
- differ: set-difference garbage collection of artifacts
- comparer: read-before-write comparison of Kubernetes objects

Usage:
    from prometheus_puppetdb.reconciliation import ArtifactTracker, ObjectComparer

    # Delete artifacts the current cycle no longer produces
    tracker = ArtifactTracker("file")
    deleted = tracker.reconcile(current_paths, delete=os.remove)

    # Skip updates that would not change anything
    comparer = ObjectComparer()
    if not comparer.service_equal(desired_service, existing_service):
        ...
"""

from prometheus_puppetdb.reconciliation.comparer import ObjectComparer
from prometheus_puppetdb.reconciliation.differ import ArtifactDiffer, ArtifactTracker

__all__ = [
    "ObjectComparer",
    "ArtifactDiffer",
    "ArtifactTracker",
]
