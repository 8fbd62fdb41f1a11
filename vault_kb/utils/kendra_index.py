"""
Helpers resolving and syncing the Kendra index behind a Bedrock knowledge base.
"""

import time
from typing import Any, Callable, Dict, List, Tuple

from .aws_clients import AwsClients
from .config import BedrockKnowledgeBaseConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Joins the per-data-source ids of one sync into a single sync id
SYNC_ID_SEPARATOR = '|'


class KnowledgeBaseLookupError(Exception):
    """Raised when the knowledge base layout cannot be resolved."""
    pass


class KendraIndex:
    """Kendra-backed knowledge base lookups, with short-lived caching of static descriptions."""

    def __init__(self, config: BedrockKnowledgeBaseConfig):
        """
        Initialize the index helper.

        Args:
            config: Knowledge base configuration (id and cache TTL)
        """
        self.config = config
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def _cached(self, key: str, loader: Callable[[], Any]) -> Any:
        now = time.monotonic()
        hit = self._cache.get(key)
        if hit is not None and hit[0] > now:
            logger.debug(f'Using cached {key}')
            return hit[1]

        value = loader()
        self._cache[key] = (now + self.config.cache_ttl_seconds, value)
        return value

    def index_id(self, clients: AwsClients) -> str:
        """
        Resolve the Kendra index id from the knowledge base configuration.

        Raises:
            KnowledgeBaseLookupError: If the knowledge base is not Kendra-backed
        """
        knowledge_base_id = self.config.knowledge_base_id
        knowledge_base = self._cached(
            f'kb-{knowledge_base_id}',
            lambda: clients.bedrock_agent.get_knowledge_base(knowledgeBaseId=knowledge_base_id).get('knowledgeBase', {}))

        index_arn = (knowledge_base.get('knowledgeBaseConfiguration', {}).get('kendraKnowledgeBaseConfiguration',
                                                                               {}).get('kendraIndexArn', ''))
        if '/' not in index_arn:
            raise KnowledgeBaseLookupError(f'Knowledge base {knowledge_base_id} is not backed by a Kendra index')
        return index_arn.split('/')[1]

    def data_source_ids(self, clients: AwsClients, index_id: str) -> List[str]:
        summaries = self._cached(f'list-{index_id}',
                                 lambda: clients.kendra.list_data_sources(IndexId=index_id).get('SummaryItems', []))

        ids = [summary.get('Id') for summary in summaries]
        if not all(ids):
            raise KnowledgeBaseLookupError(f'Data source without id in Kendra index {index_id}')
        return ids

    def bucket_name(self, clients: AwsClients) -> str:
        """
        Find the S3 bucket feeding the index.

        Raises:
            KnowledgeBaseLookupError: If no data source is backed by S3
        """
        index_id = self.index_id(clients)
        for data_source_id in self.data_source_ids(clients, index_id):
            description = clients.kendra.describe_data_source(Id=data_source_id, IndexId=index_id)
            configuration = description.get('Configuration', {})

            bucket_name = configuration.get('S3Configuration', {}).get('BucketName')
            if not bucket_name:
                template = configuration.get('TemplateConfiguration', {}).get('Template') or {}
                bucket_name = (template.get('connectionConfiguration', {}).get('repositoryEndpointMetadata',
                                                                               {}).get('BucketName'))
            if bucket_name:
                return bucket_name

        raise KnowledgeBaseLookupError(f'No S3 bucket found for Kendra index {index_id}')

    def start_sync(self, clients: AwsClients) -> str:
        """
        Start a sync job on every data source of the index.

        Returns:
            Data source ids joined with SYNC_ID_SEPARATOR
        """
        index_id = self.index_id(clients)
        data_source_ids = self.data_source_ids(clients, index_id)
        for data_source_id in data_source_ids:
            clients.kendra.start_data_source_sync_job(Id=data_source_id, IndexId=index_id)
            logger.info(f'Started sync job for data source {data_source_id}')

        return SYNC_ID_SEPARATOR.join(data_source_ids)

    def sync_job_statuses(self, clients: AwsClients, sync_id: str) -> List[str]:
        """
        Latest sync job status of every data source in a sync id.

        A data source without job history counts as succeeded.
        """
        index_id = self.index_id(clients)
        statuses = []
        for data_source_id in sync_id.split(SYNC_ID_SEPARATOR):
            history = clients.kendra.list_data_source_sync_jobs(Id=data_source_id, IndexId=index_id,
                                                                MaxResults=1).get('History', [])
            statuses.append(history[0].get('Status', 'SUCCEEDED') if history else 'SUCCEEDED')
        return statuses
