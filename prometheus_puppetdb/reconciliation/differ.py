"""
Artifact Differ for PuppetDB Service Discovery Reconciliation

Set-difference garbage collection shared by every stateful output. An
artifact is whatever one output writes per unit of configuration: a file
path, a Secret data key, or a Kubernetes object name.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Set

logger = logging.getLogger(__name__)


class ArtifactDiffer:
    """
    Compares previously published artifacts with the currently desired ones.

    Stale artifacts (published but no longer desired) are removed by the
    owning output; the name index lets outputs look up listed objects.
    """

    def find_stale(self, previous: Iterable[str], current: Iterable[str]) -> List[str]:
        """
        Find artifacts that were published but are no longer desired.

        Args:
            previous: Artifacts published by the previous cycle
            current: Artifacts desired by the current cycle

        Returns:
            Sorted list of stale artifacts
        """
        stale = set(previous) - set(current)
        return sorted(stale)

    def build_name_index(self, objects: Iterable[Any], name_getter: Callable[[Any], str]) -> Dict[str, Any]:
        """
        Build a name -> object index for fast lookups.

        Args:
            objects: Objects to index
            name_getter: Callable extracting the name of one object

        Returns:
            Dictionary mapping name to object

        Raises:
            ValueError: If an object has no name
        """
        index = {}

        for i, obj in enumerate(objects):
            name = name_getter(obj)
            if not name:
                raise ValueError(f"Object at index {i} has no name: {obj!r}")
            index[name] = obj

        return index


class ArtifactTracker:
    """
    Remembers the artifacts written by the previous successful cycle.

    The tracked set starts empty, is replaced wholesale by commit() and is
    only merged by remember(). Callers commit once every write and
    deletion of the cycle has succeeded, and remember what a failed cycle
    already wrote so the next successful one can clean it up.
    """

    def __init__(self, output_name: str):
        self.output_name = output_name
        self.differ = ArtifactDiffer()
        self._previous: Set[str] = set()

    @property
    def previous(self) -> Set[str]:
        return set(self._previous)

    def stale(self, current: Iterable[str]) -> List[str]:
        """Artifacts of the previous cycle that the current one no longer has."""
        return self.differ.find_stale(self._previous, current)

    def reconcile(self, current: Iterable[str], delete: Callable[[str], None]) -> List[str]:
        """
        Delete stale artifacts, then commit the current set.

        Args:
            current: Artifacts written by this cycle
            delete: Callable removing one artifact; exceptions propagate and
                leave the tracked set untouched

        Returns:
            The deleted artifacts
        """
        current = set(current)
        stale = self.stale(current)

        for artifact in stale:
            delete(artifact)
            logger.info(f"Removed stale artifact {artifact}", extra={"output": self.output_name, "artifact": artifact})

        self.commit(current)
        return stale

    def commit(self, current: Iterable[str]) -> None:
        self._previous = set(current)

    def remember(self, written: Iterable[str]) -> None:
        """Add artifacts written by a cycle that failed before it could commit."""
        self._previous |= set(written)
