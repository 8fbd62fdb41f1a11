"""
Amazon Bedrock embedding client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockEmbedConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Cohere accepts at most this many texts per request
COHERE_MAX_BATCH = 96


class BedrockEmbedError(Exception):
    """Custom exception for Bedrock embedding errors."""
    pass


class BedrockEmbed:
    """Amazon Bedrock embedding client with retry logic and error handling."""

    def __init__(self, config: BedrockEmbedConfig, client=None):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
            client: Optional pre-built bedrock-runtime client
        """
        self.config = config
        self.model_id = config.model_id
        self.dimension = config.dimension

        # Create Bedrock runtime client
        self.bedrock = client or boto3.client(service_name='bedrock-runtime', region_name=config.region)

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    def _call_with_retry(self, data: dict) -> dict:
        """
        Make a Bedrock API call with retry logic.

        Args:
            data: Request data dictionary

        Returns:
            Response dictionary from Bedrock API

        Raises:
            BedrockEmbedError: If all retry attempts fail
        """
        body = json.dumps(data)

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{self.config.retry_attempts}')

                response = self.bedrock.invoke_model(body=body,
                                                     modelId=self.model_id,
                                                     accept='application/json',
                                                     contentType='application/json')

                result = json.loads(response.get('body').read())
                logger.debug('Bedrock Embed request successful')
                return result

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock Embed: {e}')
                raise BedrockEmbedError(f'Unexpected Bedrock Embed error: {e}')

        raise BedrockEmbedError(f'Bedrock Embed failed after {self.config.retry_attempts} attempts')

    def _embed_titan(self, text: str) -> List[float]:
        data = {'inputText': text, 'dimensions': self.dimension}
        response = self._call_with_retry(data)
        return response.get('embedding', [0.0] * self.dimension)

    def _embed_cohere(self, texts: List[str], input_type: str) -> List[List[float]]:
        if self.dimension != 1024:
            raise BedrockEmbedError(f'Cohere models only support 1024 dimensions, got {self.dimension}')

        vectors = []
        for start in range(0, len(texts), COHERE_MAX_BATCH):
            batch = texts[start:start + COHERE_MAX_BATCH]
            response = self._call_with_retry({'input_type': input_type, 'texts': batch})
            embeddings = response.get('embeddings', [])
            if len(embeddings) != len(batch):
                raise BedrockEmbedError(f'Expected {len(batch)} embeddings, got {len(embeddings)}')
            vectors.extend(embeddings)
        return vectors

    def embed(self, text: str) -> List[float]:
        """
        Generate the embedding of a query text.

        Args:
            text: Text to embed

        Returns:
            List of embedding values

        Raises:
            BedrockEmbedError: If embedding generation fails
        """
        if not text or not text.strip():
            logger.warning('Empty text provided for query embedding')
            return [0.0] * self.dimension

        try:
            if 'titan' in self.model_id.lower():
                return self._embed_titan(text)
            elif 'cohere' in self.model_id.lower():
                return self._embed_cohere([text], 'search_query')[0]
            else:
                raise BedrockEmbedError(f'Unsupported model for query embedding: {self.model_id}')

        except BedrockEmbedError:
            raise
        except Exception as e:
            logger.error(f'Error generating query embedding: {e}')
            raise BedrockEmbedError(f'Query embedding failed: {e}')

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for document chunks.

        Args:
            texts: Chunk texts to embed

        Returns:
            One embedding per text, in order

        Raises:
            BedrockEmbedError: If embedding generation fails
        """
        if not texts:
            return []

        try:
            if 'titan' in self.model_id.lower():
                # Titan embeds one text per request
                return [self._embed_titan(text) if text.strip() else [0.0] * self.dimension for text in texts]
            elif 'cohere' in self.model_id.lower():
                return self._embed_cohere(texts, 'search_document')
            else:
                raise BedrockEmbedError(f'Unsupported model for document embedding: {self.model_id}')

        except BedrockEmbedError:
            raise
        except Exception as e:
            logger.error(f'Error generating document embeddings: {e}')
            raise BedrockEmbedError(f'Document embedding failed: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed('test')
            return len(test_embedding) == self.dimension

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
