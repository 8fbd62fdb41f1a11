"""
MCP Interface Layer using fastmcp to expose the vault knowledge base to agents.
"""
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from .services.vault_service import VaultKnowledgeService, VaultKnowledgeServiceError
from .utils.config import config
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Vault Knowledge Base')
_service: Optional[VaultKnowledgeService] = None


def get_service() -> VaultKnowledgeService:
    """Build and start the vault service on first use."""
    global _service
    if _service is None:
        service = VaultKnowledgeService(config)
        service.start()
        _service = service
    return _service


def stop_service() -> None:
    global _service
    if _service is not None:
        _service.stop()
        _service = None


@mcp.tool()
def sync_knowledge_base(all_vault: bool = False) -> str:
    """Sync vault changes made since the last sync into the knowledge base.

    Args:
        all_vault: Request a full vault resync

    Returns:
        Notice describing whether the sync started
    """
    return get_service().sync(all_vault=all_vault)


@mcp.tool()
def get_sync_status() -> Dict[str, Any]:
    """Report the current sync state, last sync times and pending changes."""
    return get_service().sync_status()


@mcp.tool()
def new_chat() -> str:
    """Start a new chat and return its id."""
    return get_service().new_chat()


@mcp.tool()
def query_knowledge_base(text: str, chat_id: str, number_of_results: int = 5) -> Dict[str, Any]:
    """Ask a question about the vault.

    Args:
        text: The question
        chat_id: Chat id from new_chat; earlier turns of the chat are used as context
        number_of_results: Number of note chunks to retrieve (default: 5)

    Returns:
        Dictionary with the answer text and its citations, plus a notice if the
        answer was cut short

    Raises:
        Exception: If the question could not be answered
    """
    if not text or not text.strip():
        raise ValueError('Question text is required')
    if not chat_id or not chat_id.strip():
        raise ValueError('Chat ID is required')

    try:
        result = get_service().query(text, chat_id, number_of_results)
        logger.debug(f'MCP query returned {len(result["citations"])} citations for chat {chat_id}')
        return result
    except VaultKnowledgeServiceError as e:
        logger.error(f'Knowledge base error in MCP query: {e}')
        raise Exception(f'Knowledge base query failed: {e}')


@mcp.tool()
def health() -> Dict[str, Any]:
    """Report configuration and health of the knowledge base components."""
    return get_system_info(config)


def main() -> None:
    """Run the MCP server with the configured transport."""
    get_service()
    try:
        if config.mcp.transport == 'stdio':
            mcp.run(transport='stdio')
        else:
            mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
    finally:
        stop_service()


if __name__ == '__main__':
    main()
