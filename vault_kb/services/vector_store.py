"""
In-memory vector store with brute-force cosine similarity search.
"""

import threading
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..models.core import EmbeddingRecord, QueryResult
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class DimensionMismatchError(Exception):
    """Raised when a vector length differs from the store dimension."""
    pass


class EmptyStoreError(Exception):
    """Raised when querying a store that holds no vectors."""
    pass


def cosine_similarity(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of ``vector`` against every row of ``matrix``.

    Similarity against a zero vector is defined as 0 rather than NaN.

    Args:
        matrix: 2-D array of stored vectors, one per row
        vector: 1-D query vector

    Returns:
        1-D array of similarities, one per row
    """
    dots = matrix @ vector
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    similarities = np.zeros_like(dots)
    np.divide(dots, norms, out=similarities, where=norms != 0)
    return similarities


class VectorStore:
    """Embedding index over vault chunks.

    Records are owned by the store: callers only ever get copies back. Adding the same record
    twice stores two entries; nothing is deduplicated. The dimension is locked either at
    construction or by the first inserted vector.
    """

    def __init__(self, dimension: Optional[int] = None):
        """
        Initialize an empty vector store.

        Args:
            dimension: Expected vector length, or None to take it from the first insert
        """
        self._lock = threading.Lock()
        self._dimension = dimension
        self._records: List[EmbeddingRecord] = []

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def add_vectors(self, records: Sequence[EmbeddingRecord]) -> None:
        """
        Add records to the store.

        The whole batch is validated before anything is stored.

        Args:
            records: Records to add

        Raises:
            DimensionMismatchError: If a vector length differs from the store dimension
        """
        with self._lock:
            dimension = self._dimension
            for record in records:
                if dimension is None:
                    dimension = len(record.vector)
                if len(record.vector) != dimension:
                    raise DimensionMismatchError(
                        f'Vector dimension mismatch for {record.source_key}. Expected {dimension}, got {len(record.vector)}')

            self._dimension = dimension
            self._records.extend(
                EmbeddingRecord(vector=list(record.vector), source_key=record.source_key, text=record.text) for record in records)

        logger.debug(f'Added {len(records)} vectors to store')

    def query(self, vector: Sequence[float], k: int = 5) -> List[QueryResult]:
        """
        Find the k stored records most similar to a vector.

        Args:
            vector: Query vector
            k: Maximum number of results to return

        Returns:
            min(k, stored count) results sorted by descending similarity

        Raises:
            EmptyStoreError: If the store holds no vectors
            DimensionMismatchError: If the query vector length differs from the store dimension
        """
        with self._lock:
            if not self._records:
                raise EmptyStoreError('Vector store is empty')

            if len(vector) != self._dimension:
                raise DimensionMismatchError(
                    f'Query vector dimension mismatch. Expected {self._dimension}, got {len(vector)}')

            matrix = np.array([record.vector for record in self._records], dtype=np.float64)
            records = list(self._records)

        similarities = cosine_similarity(matrix, np.asarray(vector, dtype=np.float64))

        # Stable sort keeps insertion order between equal similarities
        order = np.argsort(-similarities, kind='stable')[:max(k, 0)]
        return [
            QueryResult(source_key=records[i].source_key, similarity=float(similarities[i]), text=records[i].text)
            for i in order
        ]

    def delete(self, source_keys: Iterable[str]) -> None:
        """
        Remove every record whose source key is in ``source_keys``.

        Args:
            source_keys: Source keys to remove; unknown keys are ignored
        """
        keys = set(source_keys)
        if not keys:
            return

        with self._lock:
            before = len(self._records)
            self._records = [record for record in self._records if record.source_key not in keys]
            removed = before - len(self._records)

        logger.debug(f'Deleted {removed} vectors for {len(keys)} source keys')

    def clear(self) -> None:
        """Remove every record, keeping the locked dimension."""
        with self._lock:
            self._records = []
