"""
Knowledge base contract and provider selection.

Variants are independent classes that satisfy the same structural protocol; no base class
is shared between them.
"""

from enum import Enum
from typing import Iterator, List, Protocol, runtime_checkable

from ..models.core import QueryResponse, SyncStatus, VaultFile
from ..utils.config import AppConfig
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class UnknownProviderError(Exception):
    """Raised when the configured provider has no knowledge base implementation."""
    pass


class KnowledgeBaseProvider(str, Enum):
    """Available knowledge base backends."""
    AWS_BEDROCK = 'aws-bedrock'  # Managed Bedrock knowledge base
    OLLAMA = 'ollama'  # Local vector store, Ollama models
    BEDROCK_MODELS = 'bedrock-models'  # Local vector store, Bedrock models


@runtime_checkable
class KnowledgeBase(Protocol):
    """Operations every knowledge base variant provides."""

    allow_query_when_not_synced: bool

    def start_sync(self, changed_files: List[VaultFile], deleted_paths: List[str]) -> str:
        """Start indexing the given changes and return a sync id."""
        ...

    def get_sync_status(self, sync_id: str) -> SyncStatus:
        ...

    def query_stream(self, text: str, chat_id: str, number_of_results: int = 5) -> Iterator[QueryResponse]:
        """Answer one chat turn as a stream of text chunks and citations."""
        ...

    def delete_all_data(self) -> None:
        ...


def create_knowledge_base(app_config: AppConfig) -> KnowledgeBase:
    """
    Build the knowledge base selected by ``app_config.provider``.

    Args:
        app_config: Application configuration

    Returns:
        A knowledge base variant

    Raises:
        UnknownProviderError: If the provider value is not recognised
    """
    try:
        provider = KnowledgeBaseProvider(app_config.provider)
    except ValueError:
        raise UnknownProviderError(f'Unknown provider: {app_config.provider}')

    logger.info(f'Creating knowledge base for provider: {provider.value}')

    if provider is KnowledgeBaseProvider.AWS_BEDROCK:
        from .bedrock_knowledge_base import BedrockKnowledgeBase
        return BedrockKnowledgeBase(app_config.bedrock_knowledge_base, batch_size=app_config.sync.batch_size)

    from .local_knowledge_base import LocalKnowledgeBase

    if provider is KnowledgeBaseProvider.OLLAMA:
        from ..utils.ollama_client import OllamaEmbed, OllamaLLM
        embedder = OllamaEmbed(app_config.ollama)
        generator = OllamaLLM(app_config.ollama)
    else:
        from ..utils.bedrock_embed import BedrockEmbed
        from ..utils.bedrock_llm import BedrockLLM
        embedder = BedrockEmbed(app_config.bedrock_embed)
        generator = BedrockLLM(app_config.bedrock_llm)

    return LocalKnowledgeBase(embedder,
                              generator,
                              dimension=embedder.dimension,
                              chunk_size=app_config.sync.chunk_size,
                              chunk_overlap=app_config.sync.chunk_overlap)
