"""
Knowledge ingestion and retrieval for the buddy developer assistant.

Turns local files, directory trees and web pages into embeddings, keeps them
in an embedded similarity-indexed store and answers nearest-neighbour
queries for retrieval-augmented prompts.

Submodules:
- core: Types, exceptions, logging utilities
- config: YAML configuration and the models table
- providers: Embedding backends (OpenAI, Ollama) and the shared handle
- vector: SQLite vector store and cosine ranking
- ingest: Source enumeration and the concurrent ingestion pipeline
- store: KnowledgeStore facade and builder
- cli: ``buddy-knowledge`` command
"""

from .core.types import DataSource, EmbeddingRecord, KnowledgeResult
from .core.exceptions import (
    KnowledgeError,
    KnowledgeConfigError,
    KnowledgeBackendError,
    KnowledgeIndexError,
    KnowledgeSourceError,
    KnowledgeStorageError,
)
from .config import KnowledgeConfig, load_config
from .ingest import SourceSpec, IngestReport
from .store import KnowledgeStore, KnowledgeStoreBuilder

__version__ = "0.1.0"

__all__ = [
    "DataSource",
    "EmbeddingRecord",
    "KnowledgeResult",
    "KnowledgeError",
    "KnowledgeConfigError",
    "KnowledgeBackendError",
    "KnowledgeIndexError",
    "KnowledgeSourceError",
    "KnowledgeStorageError",
    "KnowledgeConfig",
    "load_config",
    "SourceSpec",
    "IngestReport",
    "KnowledgeStore",
    "KnowledgeStoreBuilder",
]
