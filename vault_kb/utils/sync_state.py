"""
JSON persistence of sync bookkeeping between runs.
"""

import json
from dataclasses import asdict
from pathlib import Path

from ..models.core import SyncInformation
from .logging_config import get_logger

logger = get_logger(__name__)


def load_sync_information(path: Path) -> SyncInformation:
    """Load sync information, falling back to a fresh record when the file is missing or unreadable."""
    if not path.exists():
        return SyncInformation()

    try:
        data = json.loads(path.read_text(encoding='utf-8'))
        return SyncInformation(last_sync=data.get('last_sync'),
                               last_successful_sync=data.get('last_successful_sync'),
                               is_syncing=bool(data.get('is_syncing', False)),
                               sync_id=data.get('sync_id', ''))
    except (OSError, ValueError) as e:
        logger.warning(f'Ignoring unreadable sync state {path}: {e}')
        return SyncInformation()


def save_sync_information(path: Path, info: SyncInformation) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(info), indent=2), encoding='utf-8')
    logger.debug(f'Saved sync state to {path}')
