"""
Tests for LocalKnowledgeBase indexing and querying.
"""

import pytest

from vault_kb.models.core import SyncStatus, VaultFile
from vault_kb.services.knowledge_base import KnowledgeBase
from vault_kb.services.local_knowledge_base import LocalKnowledgeBase
from vault_kb.services.vector_store import EmptyStoreError

from tests.conftest import FailingEmbedder, ScriptedGenerator


def keys(kb):
    return sorted({result.source_key for result in kb.vector_store.query([1.0] * 16, k=1000)})


def sync(kb, changed, deleted=()):
    sync_id = kb.start_sync(changed, list(deleted))
    return kb.wait_for_sync(sync_id, timeout=5)


@pytest.fixture
def local_kb(mock_embedder):
    return LocalKnowledgeBase(mock_embedder, ScriptedGenerator(["Apples are red[1]."]), chunk_size=100, chunk_overlap=20)


class TestSync:

    def test_satisfies_protocol(self, local_kb):
        assert isinstance(local_kb, KnowledgeBase)
        assert local_kb.allow_query_when_not_synced is False

    def test_indexes_markdown_only(self, local_kb, vault):
        files = [VaultFile(path, vault) for path in ("a.md", "b.md", "notes/c.md", "image.png")]

        assert sync(local_kb, files) == SyncStatus.SUCCEED
        assert keys(local_kb) == ["a.md", "b.md", "notes/c.md"]

    def test_chunks_embedded_with_source_header(self, local_kb, mock_embedder, vault):
        sync(local_kb, [VaultFile("a.md", vault)])

        assert mock_embedder.batch_calls == [["SOURCE: a.md\n\nAlpha note about apples."]]
        result = local_kb.vector_store.query([1.0] * 16, k=1)[0]
        assert result.text == "Alpha note about apples."

    def test_reindex_replaces_old_chunks(self, local_kb, vault):
        note = VaultFile("a.md", vault)
        sync(local_kb, [note])
        (vault / "a.md").write_text("word " * 100, encoding="utf-8")
        sync(local_kb, [note])

        texts = [r.text for r in local_kb.vector_store.query([1.0] * 16, k=1000) if r.source_key == "a.md"]
        assert len(texts) > 1
        assert "Alpha note about apples." not in texts

    def test_deleted_paths_removed(self, local_kb, vault):
        sync(local_kb, [VaultFile("a.md", vault), VaultFile("b.md", vault)])
        assert sync(local_kb, [], ["a.md"]) == SyncStatus.SUCCEED

        assert keys(local_kb) == ["b.md"]

    def test_unreadable_file_skipped(self, local_kb, vault):
        files = [VaultFile("missing.md", vault), VaultFile("b.md", vault)]

        assert sync(local_kb, files) == SyncStatus.SUCCEED
        assert keys(local_kb) == ["b.md"]

    def test_embedding_failure_fails_sync(self, vault):
        kb = LocalKnowledgeBase(FailingEmbedder(), ScriptedGenerator())

        assert sync(kb, [VaultFile("a.md", vault)]) == SyncStatus.FAILED

    def test_unknown_sync_id(self, local_kb):
        assert local_kb.get_sync_status("nope") == SyncStatus.FAILED

    def test_delete_all_data(self, local_kb, vault):
        sync(local_kb, [VaultFile("a.md", vault)])
        local_kb.delete_all_data()

        assert len(local_kb.vector_store) == 0


class TestQuery:

    def test_query_before_sync_fails(self, local_kb):
        with pytest.raises(EmptyStoreError):
            list(local_kb.query_stream("What about apples?", "chat-1"))

    def test_query_returns_text_then_citation(self, local_kb, vault):
        sync(local_kb, [VaultFile("a.md", vault)])

        responses = list(local_kb.query_stream("What about apples?", "chat-1", 3))

        assert responses[0].text == "Apples are red[1]."
        citation = responses[1].citations[0]
        assert citation.references[0].file_name == "a.md"
        assert (citation.message_part.start, citation.message_part.end) == (0, 14)
