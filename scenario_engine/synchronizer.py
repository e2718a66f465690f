"""
Index Synchronizer

The only component that mutates the artifact tree. A generation stages its
file changes in a ChangeSet; the synchronizer renders both catalogs for the
post-change state, then writes everything under an exclusive lock with the
catalogs last. Any I/O failure restores the snapshot of every touched file.
"""

import logging
from typing import Dict, List, Optional, Tuple

from scenario_engine.catalog import CatalogIndex
from scenario_engine.config import EngineConfig
from scenario_engine.error_handling import ArtifactIOError, ErrorType
from scenario_engine.filesystem import ChangeSet, LocalFileSystem, OverlayFileSystem
from scenario_engine.schemas import Convention, Notice

logger = logging.getLogger(__name__)


class IndexSynchronizer:
    """
    Applies staged changes and keeps the catalogs consistent with the tree.

    Usage:
        sync = IndexSynchronizer(fs, config)
        index, notice = sync.ensure_consistent(convention)
        ...
        written = sync.apply_atomically(changes, convention)
    """

    def __init__(self, fs: LocalFileSystem, config: EngineConfig):
        self.fs = fs
        self.config = config

    @property
    def catalog_paths(self) -> Tuple[str, str]:
        return self.config.paths.features_catalog, self.config.paths.steps_catalog

    def render_catalogs(self, view, convention: Convention) -> Dict[str, str]:
        """
        Render both catalogs purely from the files on a view.

        Args:
            view: LocalFileSystem or OverlayFileSystem
            convention: Active convention (recorded in the catalog headers)

        Returns:
            Catalog path -> content
        """
        index = CatalogIndex.from_tree(view, self.config, convention)
        features_path, steps_path = self.catalog_paths
        return {
            features_path: index.render_features(self.config.thresholds.max_catalog_lines),
            steps_path: index.render_steps(),
        }

    def stage_catalogs(self, changes: ChangeSet, convention: Convention) -> None:
        """Render catalogs for the staged state and add them to the change set."""
        overlay = OverlayFileSystem(self.fs, changes)
        for path, content in self.render_catalogs(overlay, convention).items():
            changes.stage_write(path, content)

    def apply_atomically(self, changes: ChangeSet, convention: Convention) -> List[str]:
        """
        Write a change set and both catalogs as one unit.

        Order: artifact writes, artifact deletions, then both catalogs. The
        whole sequence runs under the artifact-root lock.

        Args:
            changes: Staged artifact mutations
            convention: Active convention

        Returns:
            Paths written or deleted, in application order

        Raises:
            ArtifactIOError: On any write failure (all touched files restored)
        """
        self.stage_catalogs(changes, convention)
        catalogs = set(self.catalog_paths)
        artifact_writes = [path for path in sorted(changes.writes) if path not in catalogs]
        deletions = sorted(changes.deletions)
        ordered = artifact_writes + deletions + [p for p in self.catalog_paths if p in changes.writes]

        with self.fs.lock(self.config.paths.lock_file):
            snapshot = self._snapshot(ordered)
            applied: List[str] = []
            try:
                for path in ordered:
                    if path in changes.deletions:
                        if self.fs.is_file(path):
                            self.fs.delete(path)
                    else:
                        self.fs.write_text(path, changes.writes[path])
                    applied.append(path)
            except OSError as e:
                logger.error("Write failed after %d of %d files; rolling back", len(applied), len(ordered))
                self._restore(snapshot, applied + [path])
                raise ArtifactIOError(
                    f"Failed to write {path}: {e}",
                    context={"path": path, "rolled_back": len(applied) + 1},
                    original_error=e,
                ) from e

        logger.info("Applied %d file changes", len(applied))
        return applied

    def rebuild(self, convention: Convention) -> CatalogIndex:
        """
        Discard catalog content and re-derive it from the feature and step files.

        Idempotent: with no tree change, a second rebuild writes identical bytes.
        """
        changes = ChangeSet()
        self.apply_atomically(changes, convention)
        return CatalogIndex.from_tree(self.fs, self.config, convention)

    def ensure_consistent(
        self,
        convention: Convention,
        write: bool = True
    ) -> Tuple[CatalogIndex, Optional[Notice]]:
        """
        Load the catalogs and rebuild them when they drifted from the tree.

        Args:
            convention: Active convention
            write: Persist the rebuild (False for dry runs)

        Returns:
            (index to use for this invocation, drift notice or None)
        """
        index = CatalogIndex.load(self.fs, self.config)
        diff = index.diff(self.fs, self.config)
        if not diff.has_drift:
            return index, None

        detail = ", ".join((diff.stale_entries + diff.missing_entries)[:5])
        logger.warning(
            "Catalog drift detected (%d stale, %d missing): %s",
            len(diff.stale_entries), len(diff.missing_entries), detail,
        )
        if write:
            index = self.rebuild(convention)
        else:
            index = CatalogIndex.from_tree(self.fs, self.config, convention)
        notice = Notice(
            kind=ErrorType.DRIFT.value,
            message=(
                f"Catalogs rebuilt from the artifact tree "
                f"({len(diff.stale_entries)} stale, {len(diff.missing_entries)} missing entries)"
            ),
        )
        return index, notice

    def _snapshot(self, paths: List[str]) -> Dict[str, Optional[str]]:
        snapshot: Dict[str, Optional[str]] = {}
        for path in paths:
            try:
                snapshot[path] = self.fs.read_text(path) if self.fs.is_file(path) else None
            except OSError as e:
                raise ArtifactIOError(
                    f"Cannot snapshot {path} before writing: {e}",
                    context={"path": path},
                    original_error=e,
                ) from e
        return snapshot

    def _restore(self, snapshot: Dict[str, Optional[str]], paths: List[str]) -> None:
        for path in reversed(paths):
            original = snapshot.get(path)
            try:
                if original is None:
                    if self.fs.is_file(path):
                        self.fs.delete(path)
                else:
                    self.fs.write_text(path, original)
            except OSError as e:
                logger.error("Rollback of %s failed: %s", path, e)
