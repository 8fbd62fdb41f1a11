"""
Retrieval-augmented query pipeline producing a streamed, cited answer.
"""

from enum import Enum
from typing import Dict, Iterator, List, Optional, Protocol, runtime_checkable

from ..models.core import ChatMessage, CitationReference, QueryResponse
from ..utils.logging_config import get_logger
from .citation_aligner import CitationAligner
from .prompts import SYSTEM_PROMPT, user_prompt
from .vector_store import VectorStore

logger = get_logger(__name__)


class NoGenerationStreamError(Exception):
    """Raised when the generation backend yields no stream for a turn."""
    pass


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Turns text into embedding vectors."""

    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        ...


@runtime_checkable
class GenerationBackend(Protocol):
    """Streams a model answer for a conversation."""

    def generate_stream(self, system_prompt: str, messages: List[ChatMessage]) -> Optional[Iterator[str]]:
        ...


class TurnState(str, Enum):
    """Stages of a single chat turn."""
    RECEIVED = 'RECEIVED'
    EMBEDDING = 'EMBEDDING'
    RETRIEVING = 'RETRIEVING'
    GENERATING = 'GENERATING'
    CITATION_EXTRACTION = 'CITATION_EXTRACTION'
    DONE = 'DONE'


def _enter(chat_id: str, state: TurnState) -> None:
    logger.debug(f'Chat {chat_id}: {state.value}')


class QueryPipeline:
    """Answer questions over the vector store, keeping a running history per chat.

    Concurrent turns on the same chat id are not supported.
    """

    def __init__(self,
                 vector_store: VectorStore,
                 embedder: EmbeddingBackend,
                 generator: GenerationBackend,
                 aligner: Optional[CitationAligner] = None):
        """
        Initialize the query pipeline.

        Args:
            vector_store: Store to retrieve chunks from
            embedder: Backend used to embed the conversation
            generator: Backend streaming the answer
            aligner: Citation aligner, a fresh one if None
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.generator = generator
        self.aligner = aligner or CitationAligner()
        self.chat_history: Dict[str, List[ChatMessage]] = {}

        logger.info('Initialized QueryPipeline')

    def history(self, chat_id: str) -> List[ChatMessage]:
        return list(self.chat_history.get(chat_id, []))

    def query_stream(self, text: str, chat_id: str, number_of_results: int = 5) -> Iterator[QueryResponse]:
        """
        Run one conversational turn.

        Text chunks are yielded as soon as the model produces them, with no citations. Once the
        answer is complete, one extra response with empty text is yielded per citation marker.

        Args:
            text: The user's message
            chat_id: Chat the turn belongs to
            number_of_results: Number of chunks to retrieve

        Yields:
            QueryResponse elements in emission order

        Raises:
            NoGenerationStreamError: If the backend yields no stream, before anything is yielded
        """
        _enter(chat_id, TurnState.RECEIVED)

        user_message = ChatMessage(role='user', text=text)
        history = self.chat_history.get(chat_id, []) + [user_message]

        # Retrieval reflects the whole conversation, not only the latest message
        _enter(chat_id, TurnState.EMBEDDING)
        query_text = '\n\n'.join(f'{message.role}: {message.text}' for message in history)
        query_vector = self.embedder.embed(query_text)

        _enter(chat_id, TurnState.RETRIEVING)
        results = self.vector_store.query(query_vector, number_of_results)
        references = [CitationReference(file_name=result.source_key, text=result.text) for result in results]
        logger.debug(f'Chat {chat_id}: retrieved {len(references)} chunks')

        _enter(chat_id, TurnState.GENERATING)
        prompt_messages = history[:-1] + [ChatMessage(role='user', text=user_prompt(text, references))]
        try:
            stream = self.generator.generate_stream(SYSTEM_PROMPT, prompt_messages)
        except Exception as e:
            logger.error(f'Chat {chat_id}: generation backend failed to start: {e}')
            raise NoGenerationStreamError(f'No response stream from generation backend: {e}')

        if stream is None:
            logger.error(f'Chat {chat_id}: no response stream from generation backend')
            raise NoGenerationStreamError('No response stream from generation backend')

        self.chat_history[chat_id] = history

        chunks = []
        for chunk in stream:
            chunks.append(chunk)
            yield QueryResponse(text=chunk, citations=[])

        _enter(chat_id, TurnState.CITATION_EXTRACTION)
        answer = ''.join(chunks)
        for citation in self.aligner.align(answer, references):
            yield QueryResponse(text='', citations=[citation])

        self.chat_history[chat_id].append(ChatMessage(role='assistant', text=answer))
        _enter(chat_id, TurnState.DONE)
