"""
Core data models for vault syncing and knowledge base querying.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional


@dataclass(eq=False)
class VaultFile:
    """A note in the vault, compared by identity rather than by path.

    The same object follows a file through renames, so the path is mutable.
    """
    path: str  # Vault-relative POSIX path
    vault_root: Optional[Path] = None

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip('.').lower()

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def read(self) -> str:
        """Read the note content from disk."""
        root = self.vault_root if self.vault_root is not None else Path('.')
        return (root / self.path).read_text(encoding='utf-8')


@dataclass
class ChangeSet:
    """Pending changes drained from the change tracker."""
    changed_files: List[VaultFile] = field(default_factory=list)
    deleted_paths: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.changed_files and not self.deleted_paths


class SyncStatus(str, Enum):
    """Status of a sync job."""
    IN_PROGRESS = 'IN_PROGRESS'
    SUCCEED = 'SUCCEED'
    FAILED = 'FAILED'

    @property
    def is_terminal(self) -> bool:
        return self is not SyncStatus.IN_PROGRESS


@dataclass
class SyncJob:
    """A sync started against a knowledge base backend."""
    sync_id: str
    status: SyncStatus = SyncStatus.IN_PROGRESS


@dataclass
class SyncInformation:
    """Sync bookkeeping persisted between runs."""
    last_sync: Optional[str] = None  # ISO timestamp of the last started sync
    last_successful_sync: Optional[str] = None
    is_syncing: bool = False
    sync_id: str = ''


@dataclass
class EmbeddingRecord:
    """A chunk embedding stored in the local vector store."""
    vector: List[float]
    source_key: str  # Vault path the chunk was cut from
    text: str


@dataclass
class QueryResult:
    """A copy of a stored record returned from a similarity query."""
    source_key: str
    similarity: float
    text: str = ''


@dataclass
class CitationReference:
    """A source backing a cited part of an answer."""
    file_name: str
    text: Optional[str] = None


@dataclass
class MessagePart:
    """Character offsets into the final assistant message, end exclusive."""
    start: int
    end: int


@dataclass
class Citation:
    """A span of the assistant message and the references that support it."""
    message_part: MessagePart
    references: List[CitationReference] = field(default_factory=list)


@dataclass
class QueryResponse:
    """One element of a query stream: a text chunk and/or citations."""
    text: str
    citations: List[Citation] = field(default_factory=list)


@dataclass
class ChatMessage:
    """A single message of a chat history."""
    role: str  # 'user' or 'assistant'
    text: str

