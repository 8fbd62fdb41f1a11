"""
Configuration management for knowledge base providers, model clients and vault syncing.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_list(value: str) -> List[str]:
    """Split a comma separated setting into a list of non-empty, stripped items."""
    return [item.strip() for item in value.split(',') if item.strip()]


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockKnowledgeBaseConfig:
    """Configuration for a managed Amazon Bedrock knowledge base."""
    profile: str
    region: str
    knowledge_base_id: str
    model_arn: str
    cache_ttl_seconds: int = 30


@dataclass
class OllamaConfig:
    """Configuration for a local Ollama server."""
    base_url: str
    generation_model: str
    embedding_model: str
    dimension: int
    request_timeout: float
    retry_attempts: int
    retry_delay: float


@dataclass
class SyncConfig:
    """Configuration for vault change tracking and syncing."""
    vault_path: str
    poll_interval_seconds: float
    sync_frequency_minutes: float
    excluded_folders: List[str] = field(default_factory=list)
    excluded_file_extensions: List[str] = field(default_factory=list)
    batch_size: int = 25
    chunk_size: int = 1000
    chunk_overlap: int = 200
    state_path: str = ''


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    provider: str
    bedrock_knowledge_base: BedrockKnowledgeBaseConfig
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    ollama: OllamaConfig
    sync: SyncConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Managed knowledge base configuration
    bedrock_kb_config = BedrockKnowledgeBaseConfig(profile=os.getenv('AWS_PROFILE', ''),
                                                   region=os.getenv('BEDROCK_KB_AWS_REGION', 'us-west-2'),
                                                   knowledge_base_id=os.getenv('BEDROCK_KB_ID', ''),
                                                   model_arn=os.getenv('BEDROCK_KB_MODEL_ARN', ''),
                                                   cache_ttl_seconds=int(os.getenv('BEDROCK_KB_CACHE_TTL_SECONDS', '30')))

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '4096')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    # Ollama configuration
    ollama_config = OllamaConfig(base_url=os.getenv('OLLAMA_BASE_URL', 'http://localhost:11434'),
                                 generation_model=os.getenv('OLLAMA_GENERATION_MODEL', 'llama3.2'),
                                 embedding_model=os.getenv('OLLAMA_EMBEDDING_MODEL', 'nomic-embed-text'),
                                 dimension=int(os.getenv('OLLAMA_EMBEDDING_DIMENSION', '768')),
                                 request_timeout=float(os.getenv('OLLAMA_REQUEST_TIMEOUT', '120')),
                                 retry_attempts=int(os.getenv('OLLAMA_RETRY_ATTEMPTS', '3')),
                                 retry_delay=float(os.getenv('OLLAMA_RETRY_DELAY', '1.0')))

    # Sync configuration
    sync_config = SyncConfig(vault_path=os.getenv('VAULT_PATH', '.'),
                             poll_interval_seconds=float(os.getenv('SYNC_POLL_INTERVAL_SECONDS', '10')),
                             sync_frequency_minutes=float(os.getenv('SYNC_FREQUENCY_MINUTES', '60')),
                             excluded_folders=_split_list(os.getenv('SYNC_EXCLUDED_FOLDERS', '')),
                             excluded_file_extensions=_split_list(os.getenv('SYNC_EXCLUDED_FILE_EXTENSIONS', '')),
                             batch_size=int(os.getenv('SYNC_BATCH_SIZE', '25')),
                             chunk_size=int(os.getenv('SYNC_CHUNK_SIZE', '1000')),
                             chunk_overlap=int(os.getenv('SYNC_CHUNK_OVERLAP', '200')),
                             state_path=os.getenv('SYNC_STATE_PATH', ''))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'stdio'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     provider=os.getenv('KNOWLEDGE_BASE_PROVIDER', 'ollama'),
                     bedrock_knowledge_base=bedrock_kb_config,
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     ollama=ollama_config,
                     sync=sync_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
