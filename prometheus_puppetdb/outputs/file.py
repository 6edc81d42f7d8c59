"""
File Output for PuppetDB Service Discovery

Writes the rendered configuration into a directory watched by Prometheus
file_sd / config reload. Files are replaced atomically so a reader never sees
a half-written file, and files of jobs that disappeared are removed.
"""

import logging
import os
from typing import Optional

from prometheus_puppetdb.config import FileOutputConfig, OutputFormat
from prometheus_puppetdb.errors import PersistenceError
from prometheus_puppetdb.models import Snapshot
from prometheus_puppetdb.monitoring.metrics import SyncMetrics
from prometheus_puppetdb.outputs.base import Output, render_artifacts
from prometheus_puppetdb.reconciliation.differ import ArtifactTracker

logger = logging.getLogger(__name__)


class FileOutput(Output):
    """
    Output writing one file per artifact.

    Artifacts are full paths; the tracker remembers the paths written by the
    previous successful cycle.
    """

    name = "file"

    def __init__(
        self,
        cfg: FileOutputConfig,
        fmt: OutputFormat,
        metrics: Optional[SyncMetrics] = None
    ):
        """
        Initialize file output.

        Args:
            cfg: File output configuration
            fmt: Output format
            metrics: Optional self-metrics

        Raises:
            PersistenceError: If the output directory cannot be created
        """
        super().__init__(fmt, metrics)
        self.directory = cfg.directory
        self.filename = cfg.filename
        self.filename_pattern = cfg.filename_pattern
        self.tracker = ArtifactTracker(self.name)

        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create output directory {self.directory}: {e}") from e

        logger.info(f"Writing {fmt.value} to {self.directory}")

    def write_output(self, snapshot: Snapshot) -> None:
        artifacts = render_artifacts(snapshot, self.format, self.filename, self.filename_pattern)

        written = []
        try:
            for filename, content in artifacts.items():
                path = os.path.join(self.directory, filename)
                self._write_atomic(path, content)
                written.append(path)
        except PersistenceError:
            self.tracker.remember(written)
            raise

        self._record_written(len(written))
        deleted = self.tracker.reconcile(written, self._remove)
        self._record_deleted(len(deleted))

    def _write_atomic(self, path: str, content: str) -> None:
        """
        Replace a file in one step.

        Raises:
            PersistenceError: If any step fails; the temp file is removed
        """
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            self._record_error("write")
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise PersistenceError(f"Failed to write {path}: {e}") from e

        logger.debug(f"Wrote {path}", extra={"output": self.name, "artifact": path})

    def _remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug(f"Stale file {path} already gone")
        except OSError as e:
            self._record_error("delete")
            raise PersistenceError(f"Failed to remove {path}: {e}") from e
