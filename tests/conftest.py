"""
Shared pytest fixtures for vault_kb tests.

Provides mock embedding, generation and knowledge base backends so no model server or AWS
account is needed.
"""

import hashlib
import threading
from typing import Dict, Iterator, List, Optional

import pytest

from vault_kb.models.core import ChatMessage, QueryResponse, SyncStatus, VaultFile


class MockEmbedder:
    """
    Deterministic mock embedding backend.

    Generates consistent embeddings from the text hash; fixed vectors can be registered for
    exact texts or for texts containing a keyword.
    """

    dimension = 16

    def __init__(self):
        self.embed_calls: List[str] = []
        self.batch_calls: List[List[str]] = []
        self.keyword_vectors: Dict[str, List[float]] = {}

    def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        for keyword, vector in self.keyword_vectors.items():
            if keyword in text:
                return list(vector)
        digest = hashlib.md5(text.encode()).hexdigest()
        return [int(digest[i:i + 2], 16) / 255.0 for i in range(0, 32, 2)]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        return [self.embed(text) for text in texts]


class FailingEmbedder(MockEmbedder):
    """Embedding backend that is always unavailable."""

    def embed(self, text: str) -> List[float]:
        raise RuntimeError("embedding backend unavailable")


class ScriptedGenerator:
    """Mock generation backend replaying scripted chunks, one script per call."""

    def __init__(self, *scripts: Optional[List[str]]):
        self.scripts = list(scripts)
        self.calls: List[tuple] = []

    def generate_stream(self, system_prompt: str, messages: List[ChatMessage]) -> Optional[Iterator[str]]:
        self.calls.append((system_prompt, list(messages)))
        script = self.scripts.pop(0) if self.scripts else ["ok"]
        if script is None:
            return None
        return iter(script)


class FakeKnowledgeBase:
    """In-memory knowledge base whose sync status is set by the test."""

    def __init__(self, allow_query_when_not_synced: bool = True):
        self.allow_query_when_not_synced = allow_query_when_not_synced
        self.status = SyncStatus.IN_PROGRESS
        self.start_calls: List[tuple] = []
        self.status_calls: List[str] = []
        self.start_error: Optional[Exception] = None
        self.responses: List[QueryResponse] = []
        self.query_error: Optional[Exception] = None
        self.stream_error: Optional[Exception] = None
        self.deleted = False
        self._lock = threading.Lock()

    def start_sync(self, changed_files: List[VaultFile], deleted_paths: List[str]) -> str:
        if self.start_error is not None:
            raise self.start_error
        with self._lock:
            self.start_calls.append(([file.path for file in changed_files], list(deleted_paths)))
            return f"sync-{len(self.start_calls)}"

    def get_sync_status(self, sync_id: str) -> SyncStatus:
        with self._lock:
            self.status_calls.append(sync_id)
            return self.status

    def query_stream(self, text: str, chat_id: str, number_of_results: int = 5) -> Iterator[QueryResponse]:
        if self.query_error is not None:
            raise self.query_error
        yield from self.responses
        if self.stream_error is not None:
            raise self.stream_error

    def delete_all_data(self) -> None:
        self.deleted = True


@pytest.fixture
def mock_embedder():
    """Create a fresh MockEmbedder instance."""
    return MockEmbedder()


@pytest.fixture
def fake_kb():
    return FakeKnowledgeBase()


@pytest.fixture
def vault(tmp_path):
    """A small vault with notes, a nested folder and a non-markdown file."""
    (tmp_path / "notes").mkdir()
    (tmp_path / "a.md").write_text("Alpha note about apples.", encoding="utf-8")
    (tmp_path / "b.md").write_text("Beta note about bananas.", encoding="utf-8")
    (tmp_path / "notes" / "c.md").write_text("Gamma note about cherries.", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG\r\n")
    return tmp_path
