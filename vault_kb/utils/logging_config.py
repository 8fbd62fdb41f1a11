"""
Centralized logging configuration for the vault knowledge base.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

# Client library loggers held at WARNING or above
QUIET_LOGGERS = ('botocore', 'boto3', 'urllib3', 'watchdog')


def _level(config: Optional[AppConfig]) -> int:
    if config is None:
        from .config import config as default_config
        config = default_config
    return getattr(logging, config.log_level.upper(), logging.INFO)


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Setup centralized logging configuration.

    Logs go to stderr so that a stdio MCP transport keeps stdout for protocol traffic.

    Args:
        config: AppConfig instance, uses default if None
    """
    level = _level(config)
    logging.basicConfig(level=level,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s',
                        handlers=[logging.StreamHandler(sys.stderr)])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Get a logger at the configured level.

    Args:
        name: Logger name (usually __name__)
        config: AppConfig instance, uses default if None
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(config))
    return logger
