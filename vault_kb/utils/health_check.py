"""
Health check utilities for the application.
"""

from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import aws_clients
from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import AppConfig, config
from .kendra_index import KendraIndex, KnowledgeBaseLookupError
from .logging_config import get_logger
from .ollama_client import OllamaEmbed, OllamaLLM

logger = get_logger(__name__)


def check_health(app_config: AppConfig = config) -> bool:
    """Check the health of the configured provider's components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(app_config)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def _check_knowledge_base(app_config: AppConfig) -> Dict[str, Any]:
    kb_config = app_config.bedrock_knowledge_base
    status = {'service': 'Amazon Bedrock Knowledge Base', 'knowledge_base_id': kb_config.knowledge_base_id}
    try:
        with aws_clients(kb_config) as clients:
            index_id = KendraIndex(kb_config).index_id(clients)
        status.update(healthy=True, index_id=index_id)
    except (ClientError, BotoCoreError, KnowledgeBaseLookupError) as e:
        status.update(healthy=False, error=str(e))
    return status


def get_health_status(app_config: AppConfig = config) -> Dict[str, Any]:
    """Get detailed health status of the components used by the configured provider.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}
    provider = app_config.provider

    if provider == 'aws-bedrock':
        health_status['bedrock_knowledge_base'] = _check_knowledge_base(app_config)

    elif provider == 'ollama':
        try:
            llm = OllamaLLM(app_config.ollama)
            health_status['ollama_llm'] = {
                'healthy': llm.health_check(),
                'service': 'Ollama LLM',
                'model': app_config.ollama.generation_model
            }
        except Exception as e:
            health_status['ollama_llm'] = {'healthy': False, 'service': 'Ollama LLM', 'error': str(e)}

        try:
            embed = OllamaEmbed(app_config.ollama)
            health_status['ollama_embed'] = {
                'healthy': embed.health_check(),
                'service': 'Ollama Embed',
                'model': app_config.ollama.embedding_model
            }
        except Exception as e:
            health_status['ollama_embed'] = {'healthy': False, 'service': 'Ollama Embed', 'error': str(e)}

    else:
        try:
            llm = BedrockLLM(app_config.bedrock_llm)
            health_status['bedrock_llm'] = {
                'healthy': llm.health_check(),
                'service': 'Amazon Bedrock LLM',
                'model': app_config.bedrock_llm.model_id
            }
        except Exception as e:
            health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

        try:
            embed = BedrockEmbed(app_config.bedrock_embed)
            health_status['bedrock_embed'] = {
                'healthy': embed.health_check(),
                'service': 'Amazon Bedrock Embed',
                'model': app_config.bedrock_embed.model_id
            }
        except Exception as e:
            health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    return health_status


def get_system_info(app_config: AppConfig = config) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'VaultKB',
        'version': '1.0.0',
        'configuration': {
            'provider': app_config.provider,
            'vault_path': app_config.sync.vault_path,
            'sync_frequency_minutes': app_config.sync.sync_frequency_minutes,
            'excluded_folders': app_config.sync.excluded_folders,
        },
        'health_status': get_health_status(app_config)
    }
