"""
KnowledgeStore facade.

The one entry point the rest of the assistant talks to: embed text, store
records, run similarity queries and bulk-ingest sources.
"""

import logging
from typing import List, Optional

from .config.config_loader import ConnectionMode, KnowledgeConfig
from .core.exceptions import KnowledgeIndexError
from .core.types import EmbeddingRecord, KnowledgeResult
from .ingest.pipeline import IngestReport, PipelineConfig, ingest
from .ingest.sources import SourceSpec
from .providers.factory import build_embedding_handle
from .providers.handle import EmbeddingHandle
from .vector.store import VectorStore


logger = logging.getLogger(__name__)


class KnowledgeStore:
    """
    Knowledge store over one embedding handle and one vector store.

    The handle and the store are shared by every caller, including all
    pipeline workers of an ingest run.

    Example:
        >>> store = KnowledgeStoreBuilder(load_config()).build()
        >>> store.ingest(SourceSpec.directory("docs"))
        >>> for result in store.query_knowledge("how do I deploy?", limit=3):
        ...     print(result.data_source, result.distance)
    """

    def __init__(
        self,
        handle: EmbeddingHandle,
        vector_store: VectorStore,
        pipeline_config: Optional[PipelineConfig] = None,
    ):
        if handle.dimension() != vector_store.dimension:
            raise KnowledgeIndexError(
                f"Embedding dimension {handle.dimension()} does not match "
                f"index dimension {vector_store.dimension}",
                expected=vector_store.dimension,
                actual=handle.dimension(),
            )
        self.handle = handle
        self.vector_store = vector_store
        self.pipeline_config = pipeline_config or PipelineConfig()

    def get_embedding(self, text: str) -> List[float]:
        """
        Compute the embedding of ``text`` with the configured backend.

        Raises:
            KnowledgeBackendError: If the backend call fails
        """
        return self.handle.compute_embedding(text)

    def store_knowledge(self, record: EmbeddingRecord) -> None:
        """
        Insert or overwrite a record keyed by its data source.

        Raises:
            KnowledgeIndexError: If the embedding width does not match the index
            KnowledgeStorageError: If the write fails
        """
        self.vector_store.upsert(record)

    def query_knowledge(self, text: str, limit: int = 10) -> List[KnowledgeResult]:
        """
        Find the stored records most similar to ``text``.

        Args:
            text: Query text
            limit: Maximum number of results

        Returns:
            Up to ``limit`` results, most similar first
        """
        embedding = self.get_embedding(text)
        results = self.vector_store.query(embedding, limit)
        logger.debug(f"Query returned {len(results)} results (limit {limit})")
        return results

    def ingest(self, spec: SourceSpec, run_id: Optional[str] = None, session=None) -> IngestReport:
        """
        Embed and store everything a source yields.

        Args:
            spec: Source to ingest
            run_id: Optional run identifier
            session: Optional requests session for URL sources

        Returns:
            IngestReport for the run

        Raises:
            KnowledgeSourceError: If a directory is missing or a URL cannot be fetched
        """
        return ingest(self, spec, self.pipeline_config, run_id=run_id, session=session)

    def close(self) -> None:
        self.vector_store.close()

    def __enter__(self) -> "KnowledgeStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class KnowledgeStoreBuilder:
    """
    Builds a KnowledgeStore from configuration.

    Fails fast with KnowledgeConfigError on an unknown embedding model and
    with KnowledgeIndexError when the existing index has another dimension.
    """

    def __init__(self, config: KnowledgeConfig):
        self.config = config
        self._connection_mode: Optional[ConnectionMode] = None
        self._model_name: Optional[str] = None
        self._handle: Optional[EmbeddingHandle] = None

    def connection_mode(self, mode: ConnectionMode) -> "KnowledgeStoreBuilder":
        self._connection_mode = ConnectionMode.parse(mode)
        return self

    def model(self, model_name: str) -> "KnowledgeStoreBuilder":
        self._model_name = model_name
        return self

    def embedding_handle(self, handle: EmbeddingHandle) -> "KnowledgeStoreBuilder":
        """Use an existing handle (shares its backend) instead of building one."""
        self._handle = handle
        return self

    def build(self) -> KnowledgeStore:
        handle = self._handle.clone() if self._handle else build_embedding_handle(
            self.config, self._model_name
        )
        mode = self._connection_mode or self.config.connection_mode
        vector_store = VectorStore.for_data_dir(self.config.data_dir, handle.dimension(), mode)
        return KnowledgeStore(handle, vector_store, PipelineConfig.from_config(self.config))
