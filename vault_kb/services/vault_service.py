"""
Vault knowledge service wiring change tracking, syncing and querying for one vault.

This is the boundary where knowledge base errors become user-visible notices.
"""

import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import Citation, SyncInformation, SyncStatus
from ..utils.bedrock_embed import BedrockEmbedError
from ..utils.bedrock_llm import BedrockLLMError
from ..utils.config import AppConfig
from ..utils.kendra_index import KnowledgeBaseLookupError
from ..utils.logging_config import get_logger
from ..utils.ollama_client import OllamaError
from ..utils.s3_transfer import BatchTransferError
from ..utils.sync_state import load_sync_information, save_sync_information
from .bedrock_knowledge_base import NoRemoteResponseError
from .change_tracker import ChangeTracker
from .knowledge_base import KnowledgeBase, create_knowledge_base
from .query_pipeline import NoGenerationStreamError
from .sync_coordinator import AlreadySyncingError, SyncCoordinator
from .vault_watcher import VaultWatcher
from .vector_store import DimensionMismatchError, EmptyStoreError

logger = get_logger(__name__)

NOTICE_ERRORS = (AlreadySyncingError, DimensionMismatchError, EmptyStoreError, NoGenerationStreamError,
                 NoRemoteResponseError, BatchTransferError, KnowledgeBaseLookupError, BedrockEmbedError, BedrockLLMError, OllamaError,
                 requests.RequestException, BotoCoreError, ClientError)


class VaultKnowledgeServiceError(Exception):
    """Custom exception carrying a user-visible notice."""
    pass


def citation_to_dict(citation: Citation) -> Dict[str, Any]:
    return {
        'start': citation.message_part.start,
        'end': citation.message_part.end,
        'references': [{
            'file_name': reference.file_name,
            'text': reference.text
        } for reference in citation.references],
    }


class VaultKnowledgeService:
    """Owns the tracker, knowledge base, sync coordinator and watcher of one vault."""

    def __init__(self, app_config: AppConfig, knowledge_base: Optional[KnowledgeBase] = None):
        """
        Initialize the service.

        Args:
            app_config: Application configuration
            knowledge_base: Knowledge base to use instead of the configured provider

        Raises:
            UnknownProviderError: If the configured provider is not recognised
        """
        self.config = app_config
        self.knowledge_base = knowledge_base or create_knowledge_base(app_config)
        self.tracker = ChangeTracker()
        self.watcher = VaultWatcher(self.tracker, app_config.sync.vault_path)
        self.notices: List[str] = []
        self._synced_this_run = False

        self.state_path = Path(app_config.sync.state_path) if app_config.sync.state_path else None
        sync_information = load_sync_information(self.state_path) if self.state_path else SyncInformation()

        self.coordinator = SyncCoordinator(self.tracker,
                                           self.knowledge_base,
                                           poll_interval=app_config.sync.poll_interval_seconds,
                                           excluded_folders=app_config.sync.excluded_folders,
                                           excluded_file_extensions=app_config.sync.excluded_file_extensions,
                                           sync_information=sync_information,
                                           on_sync_information=self._save_sync_information)
        self.coordinator.add_observer(self._on_sync_status)

        logger.info('Initialized VaultKnowledgeService')

    def _save_sync_information(self, info: SyncInformation) -> None:
        if self.state_path is None:
            return
        try:
            save_sync_information(self.state_path, info)
        except OSError as e:
            logger.warning(f'Failed to save sync state: {e}')

    def _on_sync_status(self, status: SyncStatus, notice: str) -> None:
        if status == SyncStatus.SUCCEED:
            self._synced_this_run = True
        self._notice(notice)

    def _notice(self, message: str) -> str:
        logger.info(f'Notice: {message}')
        self.notices.append(message)
        return message

    def start(self) -> None:
        """Watch the vault, queue its existing notes, resume any in-flight sync and schedule periodic syncs."""
        self.watcher.start()
        self.watcher.scan()
        self.coordinator.resume()
        self.coordinator.start_periodic_sync(self.config.sync.sync_frequency_minutes * 60)

    def stop(self) -> None:
        self.coordinator.stop()
        self.watcher.stop()

    def sync(self, all_vault: bool = False) -> str:
        """
        Start a sync, reporting the outcome as a notice.

        Args:
            all_vault: Forwarded to the coordinator; full resync is not distinguished yet

        Returns:
            Notice describing the outcome
        """
        self._notice('Starting Knowledge Base syncing...')
        try:
            job = self.coordinator.start_sync(all_vault=all_vault)
        except NOTICE_ERRORS as e:
            return self._notice(f'Error syncing Knowledge Base: {e}')
        return f'Syncing Knowledge Base started ({job.sync_id})'

    def sync_status(self) -> Dict[str, Any]:
        info = self.coordinator.sync_information
        job = self.coordinator.job
        return {
            'state': self.coordinator.state.value,
            'sync_id': info.sync_id,
            'status': job.status.value if job else None,
            'is_syncing': info.is_syncing,
            'last_sync': info.last_sync,
            'last_successful_sync': info.last_successful_sync,
            'pending_changes': len(self.tracker.changed_files()),
            'pending_deletions': len(self.tracker.deleted_paths()),
        }

    def can_query(self) -> bool:
        """
        Whether queries are accepted.

        Knowledge bases that refuse queries before a sync keep their index in memory, so only a
        sync that succeeded in this process counts; the saved last_successful_sync does not.
        """
        if self.knowledge_base.allow_query_when_not_synced:
            return True
        return self._synced_this_run

    def new_chat(self) -> str:
        return str(uuid.uuid4())

    def query(self, text: str, chat_id: str, number_of_results: int = 5) -> Dict[str, Any]:
        """
        Run one chat turn to completion.

        Args:
            text: The user's message
            chat_id: Chat id, see new_chat
            number_of_results: Number of chunks to retrieve

        Returns:
            Dictionary with the answer text and its citations, plus a notice if the
            stream broke off after some text was received

        Raises:
            VaultKnowledgeServiceError: With a notice if the turn failed before any text arrived
        """
        if not self.can_query():
            raise VaultKnowledgeServiceError(self._notice('Knowledge Base is not synced yet; run a sync first'))

        chunks = []
        citations = []
        try:
            for response in self.knowledge_base.query_stream(text, chat_id, number_of_results):
                chunks.append(response.text)
                citations.extend(citation_to_dict(citation) for citation in response.citations)
        except NOTICE_ERRORS as e:
            notice = self._notice(f'Error querying Knowledge Base: {e}')
            if not chunks:
                raise VaultKnowledgeServiceError(notice)
            # Text already streamed is kept
            return {'chat_id': chat_id, 'text': ''.join(chunks), 'citations': citations, 'notice': notice}

        return {'chat_id': chat_id, 'text': ''.join(chunks), 'citations': citations}

    def delete_all_data(self) -> str:
        try:
            self.knowledge_base.delete_all_data()
        except NOTICE_ERRORS as e:
            return self._notice(f'Error deleting Knowledge Base: {e}')
        return self._notice('Knowledge Base data deleted')
