"""
Core subpackage for the knowledge module.

Contains types, exceptions, and logging utilities.
"""

from .types import (
    SourceKind,
    DataSource,
    EmbeddingRecord,
    KnowledgeResult,
    IngestJob,
)
from .exceptions import (
    KnowledgeError,
    KnowledgeConfigError,
    KnowledgeBackendError,
    KnowledgeIndexError,
    KnowledgeSourceError,
    KnowledgeStorageError,
)

__all__ = [
    # Types
    "SourceKind",
    "DataSource",
    "EmbeddingRecord",
    "KnowledgeResult",
    "IngestJob",
    # Exceptions
    "KnowledgeError",
    "KnowledgeConfigError",
    "KnowledgeBackendError",
    "KnowledgeIndexError",
    "KnowledgeSourceError",
    "KnowledgeStorageError",
]
