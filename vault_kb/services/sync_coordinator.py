"""
Sync coordinator driving change-set syncs against a knowledge base to completion.
"""

import threading
from dataclasses import replace
from enum import Enum
from typing import Callable, Iterable, List, Optional

from ..models.core import SyncInformation, SyncJob, SyncStatus, VaultFile
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import to_iso_str
from .change_tracker import ChangeTracker
from .knowledge_base import KnowledgeBase

logger = get_logger(__name__)

# Receives the terminal (or starting) status of a sync and a human-readable notice
SyncObserver = Callable[[SyncStatus, str], None]

SYNC_NOTICES = {
    SyncStatus.IN_PROGRESS: 'Syncing Knowledge Base started',
    SyncStatus.SUCCEED: 'Knowledge Base sync succeeded',
    SyncStatus.FAILED: 'Knowledge Base sync failed',
}


class AlreadySyncingError(Exception):
    """Raised when a sync is requested while another one is in flight."""
    pass


class SyncState(str, Enum):
    """Coordinator lifecycle; a finished job returns the coordinator to IDLE."""
    IDLE = 'IDLE'
    SYNC_REQUESTED = 'SYNC_REQUESTED'
    IN_PROGRESS = 'IN_PROGRESS'


class SyncCoordinator:
    """Turn pending vault changes into a tracked sync job and poll it until it finishes.

    At most one sync is in flight per coordinator. The change set is drained before the
    backend call starts, so edits made during a slow upload land in the next sync. A failed
    start loses the drained changes; the next full resync recovers them.
    """

    def __init__(self,
                 tracker: ChangeTracker,
                 knowledge_base: KnowledgeBase,
                 poll_interval: float = 10.0,
                 excluded_folders: Iterable[str] = (),
                 excluded_file_extensions: Iterable[str] = (),
                 sync_information: Optional[SyncInformation] = None,
                 on_sync_information: Optional[Callable[[SyncInformation], None]] = None):
        """
        Initialize the sync coordinator.

        Args:
            tracker: Change tracker to drain
            knowledge_base: Backend receiving the changes
            poll_interval: Seconds between status polls
            excluded_folders: Vault folders never synced
            excluded_file_extensions: File extensions (without dot) never synced
            sync_information: Previously persisted sync bookkeeping
            on_sync_information: Called with a copy whenever the bookkeeping changes
        """
        self.tracker = tracker
        self.knowledge_base = knowledge_base
        self.poll_interval = poll_interval
        self.excluded_folders = [folder.strip('/') for folder in excluded_folders if folder.strip('/')]
        self.excluded_file_extensions = {extension.lstrip('.').lower() for extension in excluded_file_extensions}
        self.on_sync_information = on_sync_information

        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._job: Optional[SyncJob] = None
        self._info = sync_information or SyncInformation()
        self._observers: List[SyncObserver] = []

        self._poll_stop: Optional[threading.Event] = None
        self._poller: Optional[threading.Thread] = None
        self._periodic_stop: Optional[threading.Event] = None
        self._periodic: Optional[threading.Thread] = None

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def job(self) -> Optional[SyncJob]:
        """The current or most recent sync job."""
        with self._lock:
            return replace(self._job) if self._job else None

    @property
    def sync_information(self) -> SyncInformation:
        with self._lock:
            return replace(self._info)

    def add_observer(self, observer: SyncObserver) -> None:
        self._observers.append(observer)

    def is_excluded_path(self, path: str) -> bool:
        return any(path == folder or path.startswith(f'{folder}/') for folder in self.excluded_folders)

    def is_excluded_file(self, file: VaultFile) -> bool:
        return file.extension in self.excluded_file_extensions or self.is_excluded_path(file.path)

    def start_sync(self, all_vault: bool = False) -> SyncJob:
        """
        Drain pending changes and start a sync on the knowledge base.

        Args:
            all_vault: Accepted for full resync requests; currently syncs pending changes only

        Returns:
            The started SyncJob, IN_PROGRESS

        Raises:
            AlreadySyncingError: If a sync is already requested or in progress
        """
        with self._lock:
            if self._state is not SyncState.IDLE:
                raise AlreadySyncingError('Knowledge Base already syncing')
            self._state = SyncState.SYNC_REQUESTED

        if all_vault:
            logger.info('Full vault sync requested; syncing pending changes')

        change_set = self.tracker.drain()
        changed_files = [file for file in change_set.changed_files if not self.is_excluded_file(file)]
        deleted_paths = [path for path in change_set.deleted_paths if not self.is_excluded_path(path)]
        logger.info(f'Starting sync of {len(changed_files)} changed files and {len(deleted_paths)} deletions')

        try:
            sync_id = self.knowledge_base.start_sync(changed_files, deleted_paths)
        except Exception as e:
            logger.error(f'Error starting sync: {e}')
            with self._lock:
                self._state = SyncState.IDLE
            raise

        job = SyncJob(sync_id=sync_id)
        with self._lock:
            self._job = job
            self._state = SyncState.IN_PROGRESS
        self._update_information(last_sync=to_iso_str(), is_syncing=True, sync_id=sync_id)

        self._start_polling()
        self._notify(SyncStatus.IN_PROGRESS)
        return replace(job)

    def get_sync_status(self, sync_id: str) -> SyncStatus:
        """On-demand status check, independent of the polling loop."""
        return self.knowledge_base.get_sync_status(sync_id)

    def resume(self) -> bool:
        """
        Resume polling a sync recorded as in flight by a previous run.

        Returns:
            True if polling was resumed
        """
        with self._lock:
            if self._state is not SyncState.IDLE or not (self._info.is_syncing and self._info.sync_id):
                return False
            self._job = SyncJob(sync_id=self._info.sync_id)
            self._state = SyncState.IN_PROGRESS

        logger.info(f'Resuming sync {self._info.sync_id}')
        self._start_polling()
        return True

    def poll_once(self) -> bool:
        """
        Check the in-flight job once.

        Returns:
            True when there is nothing left to poll
        """
        with self._lock:
            job = self._job
            if job is None or self._state is not SyncState.IN_PROGRESS:
                return True

        status = self.knowledge_base.get_sync_status(job.sync_id)
        if status is SyncStatus.IN_PROGRESS:
            return False

        with self._lock:
            # Another poll already finished this job
            if self._job is not job or job.status.is_terminal:
                return True
            job.status = status
            self._state = SyncState.IDLE

        if status is SyncStatus.SUCCEED:
            self._update_information(is_syncing=False, last_successful_sync=to_iso_str())
        else:
            self._update_information(is_syncing=False)

        logger.info(f'Sync {job.sync_id} finished with status {status.value}')
        self._notify(status)
        return True

    def _start_polling(self) -> None:
        stop = threading.Event()
        self._poll_stop = stop
        self._poller = threading.Thread(target=self._poll_loop, args=(stop, ), name='sync-status-poller', daemon=True)
        self._poller.start()

    def _poll_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.poll_interval):
            try:
                if self.poll_once():
                    return
            except Exception as e:
                logger.warning(f'Sync status check failed, will retry: {e}')

    def start_periodic_sync(self, interval_seconds: float) -> None:
        """Trigger a sync every ``interval_seconds`` until stop() is called."""
        stop = threading.Event()
        self._periodic_stop = stop
        self._periodic = threading.Thread(target=self._periodic_loop,
                                          args=(stop, interval_seconds),
                                          name='periodic-sync',
                                          daemon=True)
        self._periodic.start()

    def _periodic_loop(self, stop: threading.Event, interval_seconds: float) -> None:
        while not stop.wait(interval_seconds):
            try:
                self.start_sync()
            except AlreadySyncingError as e:
                logger.info(f'Skipping periodic sync: {e}')
            except Exception as e:
                logger.error(f'Periodic sync failed: {e}')

    def stop(self) -> None:
        """Stop the polling and periodic sync threads."""
        for event in (self._poll_stop, self._periodic_stop):
            if event is not None:
                event.set()
        for thread in (self._poller, self._periodic):
            if thread is not None and thread is not threading.current_thread():
                thread.join()

    def _update_information(self, **changes) -> None:
        with self._lock:
            self._info = replace(self._info, **changes)
            info = replace(self._info)
        if self.on_sync_information is not None:
            self.on_sync_information(info)

    def _notify(self, status: SyncStatus) -> None:
        notice = SYNC_NOTICES[status]
        for observer in list(self._observers):
            try:
                observer(status, notice)
            except Exception as e:
                logger.warning(f'Sync observer failed: {e}')
