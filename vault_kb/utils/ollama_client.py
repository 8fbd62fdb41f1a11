"""
Ollama embedding and chat clients over the local HTTP API.
"""

import json
import random
import time
from typing import Any, Dict, Iterator, List, Optional

import requests

from ..models.core import ChatMessage
from .config import OllamaConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class OllamaError(Exception):
    """Custom exception for Ollama errors."""
    pass


class _OllamaBase:
    """Shared request handling for Ollama endpoints."""

    def __init__(self, config: OllamaConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.base_url.rstrip('/')
        self.session = session or requests.Session()

    def _post_with_retry(self, endpoint: str, payload: Dict[str, Any], stream: bool = False) -> requests.Response:
        """
        POST to an Ollama endpoint with retry logic.

        Args:
            endpoint: API path such as '/api/embed'
            payload: JSON request body
            stream: Whether to stream the response body

        Returns:
            The successful response

        Raises:
            OllamaError: If all retry attempts fail
        """
        url = f'{self.base_url}{endpoint}'

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Ollama {endpoint} request attempt {attempt + 1}/{self.config.retry_attempts}')
                response = self.session.post(url, json=payload, stream=stream, timeout=(10, self.config.request_timeout))
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                logger.warning(f'Ollama {endpoint} attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise OllamaError(f'Cannot reach Ollama at {self.base_url} after {self.config.retry_attempts} attempts: {e}')

        raise OllamaError(f'Ollama {endpoint} failed after {self.config.retry_attempts} attempts')


class OllamaEmbed(_OllamaBase):
    """Embedding client for an Ollama embedding model."""

    def __init__(self, config: OllamaConfig, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self.model = config.embedding_model
        self.dimension = config.dimension
        logger.info(f'Initialized Ollama Embed client with model: {self.model}')

    def embed(self, text: str) -> List[float]:
        """Embed a single query text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts with one request.

        Args:
            texts: Texts to embed

        Returns:
            One embedding per text, in order

        Raises:
            OllamaError: If the request fails or returns the wrong number of embeddings
        """
        if not texts:
            return []

        response = self._post_with_retry('/api/embed', {'model': self.model, 'input': texts})
        embeddings = response.json().get('embeddings', [])
        if len(embeddings) != len(texts):
            raise OllamaError(f'Expected {len(texts)} embeddings from Ollama, got {len(embeddings)}')
        return embeddings

    def health_check(self) -> bool:
        try:
            return len(self.embed('test')) == self.dimension
        except Exception as e:
            logger.error(f'Ollama Embed health check failed: {e}')
            return False


class OllamaLLM(_OllamaBase):
    """Streaming chat client for an Ollama generation model."""

    def __init__(self, config: OllamaConfig, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self.model = config.generation_model
        logger.info(f'Initialized Ollama LLM client with model: {self.model}')

    def generate_stream(self, system_prompt: str, messages: List[ChatMessage]) -> Optional[Iterator[str]]:
        """
        Start a streamed chat completion.

        Args:
            system_prompt: System prompt for the conversation
            messages: Chat history ending with the current user message

        Returns:
            Iterator over text chunks

        Raises:
            OllamaError: If the stream cannot be opened
        """
        payload = {
            'model': self.model,
            'stream': True,
            'messages': [{'role': 'system', 'content': system_prompt}] +
                        [{'role': message.role, 'content': message.text} for message in messages],
        }
        response = self._post_with_retry('/api/chat', payload, stream=True)
        return self._iter_text(response)

    def _iter_text(self, response: requests.Response) -> Iterator[str]:
        with response:
            try:
                yield from self._iter_lines(response)
            except requests.RequestException as e:
                logger.error(f'Ollama stream interrupted: {e}')
                raise OllamaError(f'Ollama stream interrupted: {e}')

    def _iter_lines(self, response: requests.Response) -> Iterator[str]:
        for line in response.iter_lines(decode_unicode=True):
            if not line:
                continue
            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f'Skipping malformed Ollama stream line: {line[:80]}')
                continue

            if chunk.get('error'):
                raise OllamaError(f"Ollama generation failed: {chunk['error']}")

            text = chunk.get('message', {}).get('content', '')
            if text:
                yield text

            if chunk.get('done', False):
                logger.debug(f"Ollama streamed {chunk.get('eval_count', 0)} tokens")
                break

    def health_check(self) -> bool:
        try:
            stream = self.generate_stream("Respond with just 'OK'.", [ChatMessage(role='user', text='Hi')])
            return stream is not None and len(''.join(stream).strip()) > 0
        except Exception as e:
            logger.error(f'Ollama LLM health check failed: {e}')
            return False
