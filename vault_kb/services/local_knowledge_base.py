"""
Local knowledge base: in-memory vector store, pluggable embedding and generation models.
"""

import threading
import uuid
from typing import Dict, Iterator, List, Optional

from ..models.core import EmbeddingRecord, QueryResponse, SyncStatus, VaultFile
from ..utils.logging_config import get_logger
from ..utils.text_splitter import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, split_text
from .query_pipeline import EmbeddingBackend, GenerationBackend, QueryPipeline
from .vector_store import VectorStore

logger = get_logger(__name__)

INDEXED_EXTENSIONS = ('md', )
PROGRESS_LOG_EVERY = 10


class LocalKnowledgeBase:
    """Knowledge base indexing notes into a local VectorStore and answering through QueryPipeline."""

    allow_query_when_not_synced = False

    def __init__(self,
                 embedder: EmbeddingBackend,
                 generator: GenerationBackend,
                 dimension: Optional[int] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 chunk_overlap: int = DEFAULT_CHUNK_OVERLAP):
        """
        Initialize the local knowledge base.

        Args:
            embedder: Embedding model used for chunks and queries
            generator: Generation model streaming answers
            dimension: Embedding dimension, or None to lock it on the first insert
            chunk_size: Maximum chunk length in characters
            chunk_overlap: Characters shared by consecutive chunks
        """
        self.embedder = embedder
        self.vector_store = VectorStore(dimension)
        self.pipeline = QueryPipeline(self.vector_store, embedder, generator)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

        self._lock = threading.Lock()
        self._sync_statuses: Dict[str, SyncStatus] = {}
        self._workers: Dict[str, threading.Thread] = {}

        logger.info('Initialized LocalKnowledgeBase')

    def start_sync(self, changed_files: List[VaultFile], deleted_paths: List[str]) -> str:
        """
        Index changes on a worker thread.

        Args:
            changed_files: Files created, modified or renamed since the last sync
            deleted_paths: Paths deleted since the last sync

        Returns:
            Sync id to poll with get_sync_status
        """
        sync_id = str(uuid.uuid4())
        worker = threading.Thread(target=self._run_sync,
                                  args=(sync_id, list(changed_files), list(deleted_paths)),
                                  name=f'local-sync-{sync_id[:8]}',
                                  daemon=True)
        with self._lock:
            self._sync_statuses[sync_id] = SyncStatus.IN_PROGRESS
            self._workers[sync_id] = worker

        worker.start()
        return sync_id

    def wait_for_sync(self, sync_id: str, timeout: Optional[float] = None) -> SyncStatus:
        """Block until a sync worker finishes, then return its status."""
        with self._lock:
            worker = self._workers.get(sync_id)
        if worker is not None:
            worker.join(timeout)
        return self.get_sync_status(sync_id)

    def get_sync_status(self, sync_id: str) -> SyncStatus:
        with self._lock:
            return self._sync_statuses.get(sync_id, SyncStatus.FAILED)

    def _run_sync(self, sync_id: str, changed_files: List[VaultFile], deleted_paths: List[str]) -> None:
        try:
            self._sync_knowledge_base(changed_files, deleted_paths)
            status = SyncStatus.SUCCEED
        except Exception as e:
            logger.error(f'Sync {sync_id} of local knowledge base failed: {e}')
            status = SyncStatus.FAILED

        with self._lock:
            self._sync_statuses[sync_id] = status
            self._workers.pop(sync_id, None)

    def _sync_knowledge_base(self, changed_files: List[VaultFile], deleted_paths: List[str]) -> None:
        self.vector_store.delete(deleted_paths)

        total = len(changed_files)
        for done, file in enumerate(changed_files, start=1):
            if file.extension in INDEXED_EXTENSIONS:
                self._index_file(file)

            if done % PROGRESS_LOG_EVERY == 0:
                logger.info(f'Local knowledge base sync progress: {100 * done / total:.2f}%')

        logger.info(f'Local knowledge base synced {total} changed files and {len(deleted_paths)} deletions')

    def _index_file(self, file: VaultFile) -> None:
        """Replace a file's chunks in the store. Unreadable files are skipped with a warning."""
        try:
            content = file.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f'Skipping {file.path}: {e}')
            return

        chunks = split_text(content, self.chunk_size, self.chunk_overlap)
        vectors = self.embedder.embed_batch([f'SOURCE: {file.path}\n\n{chunk}' for chunk in chunks])

        self.vector_store.delete([file.path])
        self.vector_store.add_vectors(
            [EmbeddingRecord(vector=vector, source_key=file.path, text=chunk) for vector, chunk in zip(vectors, chunks)])
        logger.debug(f'Indexed {len(chunks)} chunks from {file.path}')

    def query_stream(self, text: str, chat_id: str, number_of_results: int = 5) -> Iterator[QueryResponse]:
        return self.pipeline.query_stream(text, chat_id, number_of_results)

    def delete_all_data(self) -> None:
        self.vector_store.clear()
        logger.info('Deleted all local knowledge base data')
