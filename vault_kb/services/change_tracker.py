"""
Change tracker reconciling vault file events into a pending change set.
"""

import threading
from typing import Dict, List

from ..models.core import ChangeSet, VaultFile
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class ChangeTracker:
    """Accumulate created, modified, renamed and deleted vault files until a sync drains them.

    Events must be recorded in the order the watcher delivers them. Changed files are kept by
    identity, so a file object that was renamed is tracked once under its latest path.

    The rename handling is a best-effort heuristic, not a fully ordered merge: when a file is
    deleted and another file is renamed onto the deleted path before the deletion is drained,
    the rename resurrects that path and the pending deletion is dropped.
    """

    def __init__(self):
        """Initialize an empty change tracker."""
        self._lock = threading.Lock()
        self._changed: Dict[int, VaultFile] = {}  # insertion ordered, keyed by id()
        self._deleted: Dict[str, None] = {}

    def record_create(self, file: VaultFile) -> None:
        with self._lock:
            self._changed[id(file)] = file
            self._deleted.pop(file.path, None)
        logger.debug(f'Recorded create: {file.path}')

    def record_modify(self, file: VaultFile) -> None:
        with self._lock:
            self._changed[id(file)] = file
            self._deleted.pop(file.path, None)
        logger.debug(f'Recorded modify: {file.path}')

    def record_rename(self, file: VaultFile, old_path: str) -> None:
        """
        Record that a file now lives at ``file.path`` instead of ``old_path``.

        Args:
            file: The renamed file, already carrying its new path
            old_path: The path the file had before the rename
        """
        with self._lock:
            self._changed[id(file)] = file

            # A file was deleted and another renamed onto its path before the delete was drained
            if file.path in self._deleted:
                del self._deleted[file.path]
                logger.debug(f'Rename onto pending deletion resurrected {file.path}')
                return

            self._deleted[old_path] = None
        logger.debug(f'Recorded rename: {old_path} -> {file.path}')

    def record_delete(self, file: VaultFile) -> None:
        with self._lock:
            self._changed.pop(id(file), None)
            self._deleted[file.path] = None
        logger.debug(f'Recorded delete: {file.path}')

    def changed_files(self) -> List[VaultFile]:
        with self._lock:
            return list(self._changed.values())

    def deleted_paths(self) -> List[str]:
        with self._lock:
            return list(self._deleted)

    def drain(self) -> ChangeSet:
        """
        Atomically take every pending change and leave the tracker empty.

        Returns:
            ChangeSet holding the changed files and deleted paths recorded so far
        """
        with self._lock:
            change_set = ChangeSet(changed_files=list(self._changed.values()), deleted_paths=list(self._deleted))
            self._changed.clear()
            self._deleted.clear()

        logger.debug(f'Drained {len(change_set.changed_files)} changed files and '
                     f'{len(change_set.deleted_paths)} deleted paths')
        return change_set
