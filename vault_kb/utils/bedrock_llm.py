"""
Amazon Bedrock LLM client wrapper with streaming, retry logic and error handling.
"""

import random
import time
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import ChatMessage
from .config import BedrockLLMConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class BedrockLLMError(Exception):
    """Custom exception for Bedrock LLM errors."""
    pass


def to_converse_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """
    Convert chat messages to the Bedrock converse format.

    Converse requires alternating roles, so consecutive messages with the same role
    (e.g. a question whose answer was abandoned) are merged.

    Args:
        messages: Chat history ending with the current user message

    Returns:
        List of message dictionaries in Bedrock format
    """
    converse_messages: List[Dict[str, Any]] = []
    for message in messages:
        role = 'assistant' if message.role == 'assistant' else 'user'
        if converse_messages and converse_messages[-1]['role'] == role:
            converse_messages[-1]['content'].append({'text': message.text})
        else:
            converse_messages.append({'role': role, 'content': [{'text': message.text}]})
    return converse_messages


class BedrockLLM:
    """Amazon Bedrock LLM client with retry logic and error handling."""

    def __init__(self, config: BedrockLLMConfig, client=None):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
            client: Optional pre-built bedrock-runtime client
        """
        self.config = config
        self.model_id = config.model_id

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = client or boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=600,
                read_timeout=600,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def generate_stream(self,
                        system_prompt: str,
                        messages: List[ChatMessage],
                        max_tokens: Optional[int] = None,
                        temperature: Optional[float] = None) -> Optional[Iterator[str]]:
        """
        Start a streamed generation.

        Only opening the stream is retried; once chunks flow, errors propagate to the consumer.

        Args:
            system_prompt: System prompt for the conversation
            messages: Chat history ending with the current user message
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)

        Returns:
            Iterator over text chunks, or None if Bedrock returned no stream

        Raises:
            BedrockLLMError: If all retry attempts fail
        """
        inf_params = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': temperature if temperature is not None else self.config.temperature,
        }

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{self.config.retry_attempts}')

                stream = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                              messages=to_converse_messages(messages),
                                                              system=[{'text': system_prompt}],
                                                              inferenceConfig=inf_params).get('stream')

                if stream is None:
                    logger.error('No response stream received from Bedrock LLM')
                    return None

                return self._iter_text(stream)

            except (ClientError, BotoCoreError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

        raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts')

    def _iter_text(self, stream) -> Iterator[str]:
        length = 0
        try:
            for event in stream:
                if 'contentBlockDelta' in event:
                    text = event['contentBlockDelta']['delta'].get('text', '')
                    if text:
                        length += len(text)
                        yield text
                if 'metadata' in event:
                    logger.debug(f"Bedrock LLM usage: {event['metadata'].get('usage')}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f'Bedrock LLM stream failed after {length} characters: {e}')
            raise BedrockLLMError(f'Bedrock LLM stream interrupted: {e}')

        logger.debug(f'Bedrock LLM response streamed successfully (length: {length})')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            stream = self.generate_stream(system_prompt="You are a helpful assistant. Respond with just 'OK'.",
                                          messages=[ChatMessage(role='user', text='Hi')],
                                          max_tokens=10,
                                          temperature=0.0)
            return stream is not None and len(''.join(stream).strip()) > 0

        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
