"""
Tests for VaultKnowledgeService notices and state handling.
"""

import json
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path

import pytest
import requests
from botocore.exceptions import ProfileNotFound

from vault_kb.models.core import (Citation, CitationReference, MessagePart, QueryResponse, SyncInformation, SyncStatus,
                                  VaultFile)
from vault_kb.services.bedrock_knowledge_base import BedrockKnowledgeBase
from vault_kb.services.local_knowledge_base import LocalKnowledgeBase
from vault_kb.services.query_pipeline import NoGenerationStreamError
from vault_kb.services.vault_service import VaultKnowledgeService, VaultKnowledgeServiceError
from vault_kb.services.vector_store import EmptyStoreError
from vault_kb.utils.config import load_config
from vault_kb.utils.ollama_client import OllamaError
from vault_kb.utils.sync_state import save_sync_information

from tests.conftest import FakeKnowledgeBase, MockEmbedder, ScriptedGenerator


@pytest.fixture
def app_config(vault):
    base = load_config()
    sync = replace(base.sync,
                   vault_path=str(vault),
                   poll_interval_seconds=60,
                   excluded_folders=[],
                   excluded_file_extensions=[],
                   state_path=str(vault / ".vault_kb" / "sync_state.json"))
    return replace(base, sync=sync)


@pytest.fixture
def make_service(app_config):
    services = []

    def factory(kb, config=None):
        service = VaultKnowledgeService(config or app_config, knowledge_base=kb)
        services.append(service)
        return service

    yield factory
    for service in services:
        service.stop()


class TestSync:

    def test_sync_started_notice_and_state_file(self, make_service, app_config, fake_kb, vault):
        service = make_service(fake_kb)
        service.tracker.record_create(VaultFile("a.md", vault))

        notice = service.sync()

        assert notice == "Syncing Knowledge Base started (sync-1)"
        assert "Syncing Knowledge Base started" in service.notices
        state = json.loads((vault / ".vault_kb" / "sync_state.json").read_text(encoding="utf-8"))
        assert state["is_syncing"] is True
        assert state["sync_id"] == "sync-1"

    def test_second_sync_reported_as_notice(self, make_service, fake_kb):
        service = make_service(fake_kb)
        service.sync()

        notice = service.sync()

        assert notice.startswith("Error syncing Knowledge Base")
        assert "already syncing" in notice
        assert len(fake_kb.start_calls) == 1

    def test_sync_status(self, make_service, fake_kb, vault):
        service = make_service(fake_kb)
        service.sync()
        service.tracker.record_create(VaultFile("b.md", vault))

        status = service.sync_status()

        assert status["state"] == "IN_PROGRESS"
        assert status["status"] == "IN_PROGRESS"
        assert status["sync_id"] == "sync-1"
        assert status["pending_changes"] == 1
        assert status["last_successful_sync"] is None

    def test_state_restored_and_resumed(self, make_service, app_config, vault):
        first = make_service(FakeKnowledgeBase())
        first.sync()
        first.stop()

        kb = FakeKnowledgeBase()
        kb.status = SyncStatus.SUCCEED
        second = make_service(kb)
        assert second.coordinator.resume() is True
        assert second.coordinator.poll_once() is True

        assert kb.status_calls == ["sync-1"]
        assert second.sync_status()["last_successful_sync"] is not None

    def test_aws_client_creation_error_is_notice(self, make_service, vault):

        @contextmanager
        def scope(config):
            raise ProfileNotFound(profile="no-such-profile")
            yield

        config = load_config().bedrock_knowledge_base
        service = make_service(BedrockKnowledgeBase(replace(config, profile="no-such-profile"), client_scope=scope))
        service.tracker.record_create(VaultFile("a.md", vault))

        notice = service.sync()

        assert notice.startswith("Error syncing Knowledge Base")
        assert "no-such-profile" in notice
        assert service.sync_status()["state"] == "IDLE"


class TestQuery:

    def test_blocked_until_first_successful_sync(self, make_service):
        kb = FakeKnowledgeBase(allow_query_when_not_synced=False)
        service = make_service(kb)

        assert service.can_query() is False
        with pytest.raises(VaultKnowledgeServiceError):
            service.query("Hello", service.new_chat())

        kb.status = SyncStatus.SUCCEED
        service.sync()
        service.coordinator.poll_once()
        assert service.can_query() is True

    def test_query_collects_text_and_citations(self, make_service, fake_kb):
        citation = Citation(message_part=MessagePart(start=0, end=5), references=[CitationReference("a.md", "Alpha")])
        fake_kb.responses = [QueryResponse(text="Alpha"), QueryResponse(text="[1]."), QueryResponse("", [citation])]
        service = make_service(fake_kb)

        result = service.query("What is alpha?", "chat-1")

        assert result == {
            "chat_id": "chat-1",
            "text": "Alpha[1].",
            "citations": [{
                "start": 0,
                "end": 5,
                "references": [{
                    "file_name": "a.md",
                    "text": "Alpha"
                }]
            }],
        }

    @pytest.mark.parametrize("error", [NoGenerationStreamError("down"), EmptyStoreError("empty")])
    def test_backend_errors_become_notices(self, make_service, fake_kb, error):
        fake_kb.query_error = error
        service = make_service(fake_kb)

        with pytest.raises(VaultKnowledgeServiceError) as excinfo:
            service.query("Hello", "chat-1")

        assert str(excinfo.value).startswith("Error querying Knowledge Base")
        assert service.notices[-1] == str(excinfo.value)

    def test_saved_success_does_not_unlock_in_memory_index(self, make_service, app_config):
        save_sync_information(Path(app_config.sync.state_path),
                              SyncInformation(last_sync="2026-01-01T00:00:00Z", last_successful_sync="2026-01-01T00:00:00Z"))
        service = make_service(FakeKnowledgeBase(allow_query_when_not_synced=False))

        assert service.sync_status()["last_successful_sync"] == "2026-01-01T00:00:00Z"
        assert service.can_query() is False

    @pytest.mark.parametrize("error", [
        OllamaError("Ollama stream interrupted: connection reset"),
        requests.exceptions.ChunkedEncodingError("connection reset mid-stream"),
    ])
    def test_stream_broken_after_partial_text(self, make_service, fake_kb, error):
        fake_kb.responses = [QueryResponse(text="partial")]
        fake_kb.stream_error = error
        service = make_service(fake_kb)

        result = service.query("Hello", "chat-1")

        assert result["text"] == "partial"
        assert result["notice"].startswith("Error querying Knowledge Base")
        assert "connection reset" in result["notice"]
        assert service.notices[-1] == result["notice"]


class TestExistingNotes:

    def test_first_sync_indexes_existing_notes(self, make_service, app_config):
        config = replace(app_config, sync=replace(app_config.sync, poll_interval_seconds=0.05))
        kb = LocalKnowledgeBase(MockEmbedder(), ScriptedGenerator(["Apples", "[1]."]))
        service = make_service(kb, config)
        finished = threading.Event()
        service.coordinator.add_observer(lambda status, notice: status.is_terminal and finished.set())

        service.start()
        notice = service.sync()

        assert notice.startswith("Syncing Knowledge Base started")
        assert finished.wait(5)
        assert service.notices[-1] == "Knowledge Base sync succeeded"
        indexed = {result.source_key for result in kb.vector_store.query([1.0] * MockEmbedder.dimension, k=100)}
        assert sorted(indexed) == ["a.md", "b.md", "notes/c.md"]
        assert service.can_query() is True

        result = service.query("Tell me about apples", service.new_chat())
        assert result["text"] == "Apples[1]."

    def test_restart_requeues_existing_notes(self, make_service, app_config):
        first = make_service(FakeKnowledgeBase(allow_query_when_not_synced=False))
        first.start()
        first.stop()

        second = make_service(FakeKnowledgeBase(allow_query_when_not_synced=False))
        second.start()

        assert second.sync_status()["pending_changes"] == 4
        assert second.can_query() is False

    def test_new_chat_ids_are_unique(self, make_service, fake_kb):
        service = make_service(fake_kb)
        assert service.new_chat() != service.new_chat()

    def test_delete_all_data(self, make_service, fake_kb):
        service = make_service(fake_kb)

        assert service.delete_all_data() == "Knowledge Base data deleted"
        assert fake_kb.deleted is True
