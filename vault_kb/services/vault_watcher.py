"""
Filesystem watcher feeding vault events into the change tracker.

Uses watchdog to observe the vault directory. One VaultFile object is kept per path so a
rename moves the same identity to its new path.
"""

import os
import threading
from pathlib import Path, PurePosixPath
from typing import Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..models.core import VaultFile
from ..utils.logging_config import get_logger
from .change_tracker import ChangeTracker

logger = get_logger(__name__)


class VaultEventHandler(FileSystemEventHandler):
    """Translate watchdog events into ChangeTracker records, in delivery order."""

    def __init__(self, tracker: ChangeTracker, vault_root: Path):
        super().__init__()
        self.tracker = tracker
        self.vault_root = vault_root.resolve()
        self._files: Dict[str, VaultFile] = {}
        self._lock = threading.Lock()

    def _rel_path(self, abs_path) -> Optional[str]:
        """Vault-relative POSIX path, or None for paths outside the vault or inside hidden folders."""
        try:
            rel_path = Path(os.fsdecode(abs_path)).resolve().relative_to(self.vault_root)
        except ValueError:
            return None

        posix_path = PurePosixPath(*rel_path.parts)
        if any(part.startswith('.') for part in posix_path.parts):
            return None
        return str(posix_path)

    def _file_for(self, path: str) -> VaultFile:
        with self._lock:
            file = self._files.get(path)
            if file is None:
                file = VaultFile(path=path, vault_root=self.vault_root)
                self._files[path] = file
            return file

    def record_existing(self) -> int:
        """
        Record every file currently in the vault as created.

        Returns:
            Number of files recorded
        """
        count = 0
        for abs_path in sorted(self.vault_root.rglob('*')):
            if not abs_path.is_file():
                continue
            path = self._rel_path(abs_path)
            if path is not None:
                self.tracker.record_create(self._file_for(path))
                count += 1
        return count

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = self._rel_path(event.src_path)
        if path is not None:
            self.tracker.record_create(self._file_for(path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = self._rel_path(event.src_path)
        if path is not None:
            self.tracker.record_modify(self._file_for(path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        old_path = self._rel_path(event.src_path)
        new_path = self._rel_path(event.dest_path)

        if new_path is None:
            # Moved out of the vault or into a hidden folder
            if old_path is not None:
                self.on_deleted_path(old_path)
            return
        if old_path is None:
            self.tracker.record_create(self._file_for(new_path))
            return

        with self._lock:
            file = self._files.pop(old_path, None) or VaultFile(path=old_path, vault_root=self.vault_root)
            file.path = new_path
            self._files[new_path] = file
        self.tracker.record_rename(file, old_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = self._rel_path(event.src_path)
        if path is not None:
            self.on_deleted_path(path)

    def on_deleted_path(self, path: str) -> None:
        with self._lock:
            file = self._files.pop(path, None) or VaultFile(path=path, vault_root=self.vault_root)
        self.tracker.record_delete(file)


class VaultWatcher:
    """Run a watchdog observer over the vault directory."""

    def __init__(self, tracker: ChangeTracker, vault_path: str):
        """
        Initialize the watcher.

        Args:
            tracker: Tracker receiving the events
            vault_path: Root directory of the vault
        """
        self.vault_root = Path(vault_path)
        self.handler = VaultEventHandler(tracker, self.vault_root)
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.vault_root), recursive=True)
        self._observer.start()
        logger.info(f'Watching vault {self.vault_root}')

    def scan(self) -> int:
        """Queue the files already in the vault; the observer only reports later changes."""
        count = self.handler.record_existing()
        logger.info(f'Queued {count} existing files from {self.vault_root}')
        return count

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info('Stopped watching vault')
