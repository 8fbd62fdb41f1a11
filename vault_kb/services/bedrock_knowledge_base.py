"""
Managed Amazon Bedrock knowledge base backed by a Kendra index fed from S3.
"""

import re
from typing import Any, Callable, ContextManager, Dict, Iterator, List
from urllib.parse import unquote

from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import Citation, CitationReference, MessagePart, QueryResponse, SyncStatus, VaultFile
from ..utils.aws_clients import AwsClients, aws_clients
from ..utils.config import BedrockKnowledgeBaseConfig
from ..utils.kendra_index import KendraIndex
from ..utils.logging_config import get_logger
from ..utils.s3_transfer import BatchTransferError, delete_keys, list_keys, transfer_changes

logger = get_logger(__name__)

IN_PROGRESS_JOB_STATUSES = {'SYNCING', 'SYNCING_INDEXING'}
FAILED_JOB_STATUSES = {'FAILED', 'ABORTED'}

S3_HTTPS_URL = re.compile(r'^https://s3\.[a-z0-9-]+\.amazonaws')


class NoRemoteResponseError(Exception):
    """Raised when the managed knowledge base does not answer."""
    pass


def reference_file_name(location: Dict[str, Any]) -> str:
    """
    Recover the vault path from a retrieved reference location.

    Kendra URIs are either path-style S3 URLs (https://s3.<region>.amazonaws.com/<bucket>/<key>)
    or virtual-hosted URLs (https://<bucket>.s3.../<key>); S3 locations are s3://<bucket>/<key>.
    """
    uri = location.get('kendraDocumentLocation', {}).get('uri') or location.get('s3Location', {}).get('uri') or ''
    if not uri:
        return ''

    start_index = 4 if S3_HTTPS_URL.match(uri) else 3
    return unquote('/'.join(uri.split('/')[start_index:]))


def citation_event_to_citation(event: Dict[str, Any]) -> Citation:
    """Convert a retrieve-and-generate citation event into a Citation."""
    if 'generatedResponsePart' not in event and 'retrievedReferences' not in event:
        event = event.get('citation', {})

    span = event.get('generatedResponsePart', {}).get('textResponsePart', {}).get('span', {})
    references = [
        CitationReference(file_name=reference_file_name(reference.get('location', {})),
                          text=reference.get('content', {}).get('text'))
        for reference in event.get('retrievedReferences', [])
    ]
    return Citation(message_part=MessagePart(start=span.get('start', 0), end=span.get('end', 0)), references=references)


class BedrockKnowledgeBase:
    """Knowledge base delegating indexing, retrieval and citations to Amazon Bedrock.

    Only the chat id to Bedrock session id mapping is kept locally.
    """

    allow_query_when_not_synced = True

    def __init__(self,
                 config: BedrockKnowledgeBaseConfig,
                 batch_size: int = 25,
                 client_scope: Callable[[BedrockKnowledgeBaseConfig], ContextManager[AwsClients]] = aws_clients):
        """
        Initialize the Bedrock knowledge base.

        Args:
            config: Knowledge base configuration
            batch_size: Files per S3 transfer batch
            client_scope: Context manager factory acquiring AWS clients for one call
        """
        self.config = config
        self.batch_size = batch_size
        self.client_scope = client_scope
        self.index = KendraIndex(config)
        self.chat_to_session_id: Dict[str, str] = {}

        logger.info(f'Initialized BedrockKnowledgeBase for knowledge base: {config.knowledge_base_id}')

    def start_sync(self, changed_files: List[VaultFile], deleted_paths: List[str]) -> str:
        """
        Push changes to the data source bucket and start indexing.

        Args:
            changed_files: Files created, modified or renamed since the last sync
            deleted_paths: Paths deleted since the last sync

        Returns:
            Sync id covering every data source job

        Raises:
            BatchTransferError: If some uploads or deletions failed
            NoRemoteResponseError: If an AWS call failed
        """
        try:
            with self.client_scope(self.config) as clients:
                bucket_name = self.index.bucket_name(clients)
                transfer_changes(clients.s3, bucket_name, changed_files, deleted_paths, self.batch_size)
                return self.index.start_sync(clients)
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Error starting Bedrock knowledge base sync: {e}')
            raise NoRemoteResponseError(f'Bedrock knowledge base sync failed: {e}')

    def get_sync_status(self, sync_id: str) -> SyncStatus:
        """
        Combine the data source job statuses of a sync.

        Raises:
            NoRemoteResponseError: If an AWS call failed
        """
        try:
            with self.client_scope(self.config) as clients:
                statuses = set(self.index.sync_job_statuses(clients, sync_id))
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Error reading sync status for {sync_id}: {e}')
            raise NoRemoteResponseError(f'Bedrock knowledge base status check failed: {e}')

        if statuses & IN_PROGRESS_JOB_STATUSES:
            return SyncStatus.IN_PROGRESS
        if statuses & FAILED_JOB_STATUSES:
            return SyncStatus.FAILED
        return SyncStatus.SUCCEED

    def query_stream(self, text: str, chat_id: str, number_of_results: int = 5) -> Iterator[QueryResponse]:
        """
        Stream an answer generated by Bedrock from the knowledge base.

        Args:
            text: The user's message
            chat_id: Chat the turn belongs to; mapped to a Bedrock session
            number_of_results: Number of chunks Bedrock retrieves

        Yields:
            QueryResponse elements carrying text chunks or Bedrock citations

        Raises:
            NoRemoteResponseError: If Bedrock returns no stream, before anything is yielded, or
                if the stream fails part way
        """
        session_id = self.chat_to_session_id.get(chat_id)
        request: Dict[str, Any] = {
            'input': {
                'text': text
            },
            'retrieveAndGenerateConfiguration': {
                'type': 'KNOWLEDGE_BASE',
                'knowledgeBaseConfiguration': {
                    'knowledgeBaseId': self.config.knowledge_base_id,
                    'modelArn': self.config.model_arn,
                    'retrievalConfiguration': {
                        'vectorSearchConfiguration': {
                            'numberOfResults': number_of_results
                        }
                    },
                },
            },
        }
        if session_id:
            request['sessionId'] = session_id

        try:
            with self.client_scope(self.config) as clients:
                response = clients.bedrock_agent_runtime.retrieve_and_generate_stream(**request)
                stream = response.get('stream')
                if not stream:
                    logger.error('No response stream received from Bedrock Runtime')
                    raise NoRemoteResponseError('No response stream from Bedrock Runtime')

                self.chat_to_session_id[chat_id] = response.get('sessionId') or session_id or ''

                for event in stream:
                    output = event.get('output')
                    citation = event.get('citation')
                    if output is None and citation is None:
                        continue

                    yield QueryResponse(text=(output or {}).get('text', ''),
                                        citations=[citation_event_to_citation(citation)] if citation else [])
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Bedrock Runtime request failed: {e}')
            raise NoRemoteResponseError(f'Bedrock Runtime response failed: {e}')

    def delete_all_data(self) -> None:
        """
        Remove every object from the data source bucket; the next sync empties the index.

        Raises:
            BatchTransferError: If some deletions failed
            NoRemoteResponseError: If an AWS call failed
        """
        try:
            with self.client_scope(self.config) as clients:
                bucket_name = self.index.bucket_name(clients)
                keys = list_keys(clients.s3, bucket_name)
                failed = delete_keys(clients.s3, bucket_name, keys, self.batch_size)
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Error deleting Bedrock knowledge base data: {e}')
            raise NoRemoteResponseError(f'Bedrock knowledge base deletion failed: {e}')

        if failed:
            raise BatchTransferError(failed, len(keys))
        logger.info(f'Deleted {len(keys)} objects from bucket {bucket_name}')
