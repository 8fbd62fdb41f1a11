"""
Scoped acquisition of AWS clients with freshly loaded credentials.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

import boto3

from .config import BedrockKnowledgeBaseConfig
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AwsClients:
    """Clients needed to sync and query a managed Bedrock knowledge base."""
    bedrock_agent: Any
    bedrock_agent_runtime: Any
    kendra: Any
    s3: Any

    def close(self) -> None:
        for client in (self.bedrock_agent, self.bedrock_agent_runtime, self.kendra, self.s3):
            client.close()


@contextmanager
def aws_clients(config: BedrockKnowledgeBaseConfig) -> Iterator[AwsClients]:
    """
    Build a client bundle from a new session, so credentials are re-read for every call.

    Args:
        config: Knowledge base configuration holding profile and region

    Yields:
        AwsClients sharing one session; closed when the block exits
    """
    session = boto3.Session(profile_name=config.profile or None, region_name=config.region)
    clients = AwsClients(bedrock_agent=session.client('bedrock-agent'),
                         bedrock_agent_runtime=session.client('bedrock-agent-runtime'),
                         kendra=session.client('kendra'),
                         s3=session.client('s3'))
    logger.debug(f'Acquired AWS clients for region {config.region}')
    try:
        yield clients
    finally:
        clients.close()
