"""
Core data types for the knowledge module.

Identities, stored records, query results and ingest jobs as dataclasses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .exceptions import KnowledgeSourceError


class SourceKind(str, Enum):
    """Kind of a knowledge source. The value is the stored key prefix."""
    CONTEXT = "Context"
    INTERNET = "Internet"
    LOCAL_FILES = "LocalFiles"


@dataclass(frozen=True)
class DataSource:
    """
    Tagged identity of a knowledge item.

    The string form ``<Kind>.<value>`` is the primary key of the item in the
    vector store, so ingesting the same logical source twice overwrites the
    earlier record instead of duplicating it.

    Attributes:
        kind: Source kind (Context, Internet, LocalFiles)
        value: Path or URL identifying the item within its kind
    """
    kind: SourceKind
    value: str

    @classmethod
    def context(cls, path: str) -> "DataSource":
        """Identity for a file loaded as project context."""
        return cls(SourceKind.CONTEXT, str(path))

    @classmethod
    def internet(cls, url: str) -> "DataSource":
        """Identity for a fetched web page."""
        return cls(SourceKind.INTERNET, url)

    @classmethod
    def local_files(cls, path: str) -> "DataSource":
        """Identity for a file added from the local filesystem."""
        return cls(SourceKind.LOCAL_FILES, str(path))

    @classmethod
    def parse(cls, key: str) -> "DataSource":
        """
        Parse the stored string form back into a DataSource.

        Args:
            key: String produced by ``str(data_source)``

        Returns:
            The matching DataSource

        Raises:
            ValueError: If the key has no known kind prefix
        """
        prefix, sep, value = key.partition(".")
        if not sep:
            raise ValueError(f"Not a data source key: {key!r}")
        try:
            kind = SourceKind(prefix)
        except ValueError:
            raise ValueError(f"Unknown data source kind: {prefix!r}") from None
        return cls(kind, value)

    def __str__(self) -> str:
        return f"{self.kind.value}.{self.value}"


@dataclass
class EmbeddingRecord:
    """
    A knowledge item together with its embedding.

    Attributes:
        data_source: Identity of the item (primary key)
        embedding: Fixed-length float vector; its length must match the
            dimension declared on the store's similarity index
        content: Optional raw text of the item
        metadata: Optional free-form metadata string
    """
    data_source: DataSource
    embedding: List[float]
    content: Optional[str] = None
    metadata: Optional[str] = None

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass
class KnowledgeResult:
    """
    One ranked hit from a similarity query.

    Attributes:
        distance: Cosine distance to the query (0.0 = identical direction)
        data_source: Identity of the matched item
        content: Stored raw text, if any
        metadata: Stored metadata, if any
    """
    distance: float
    data_source: DataSource
    content: Optional[str] = None
    metadata: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "distance": self.distance,
            "data_source": str(self.data_source),
            "content": self.content,
            "metadata": self.metadata,
        }


@dataclass
class IngestJob:
    """
    Unit of work carried by the ingestion channel.

    A job either carries its content or a loader that reads it on the
    worker, so a read failure counts against that job alone.

    Attributes:
        data_source: Identity the stored record will be keyed by
        content: Text to embed and store
        metadata: Optional metadata stored with the record
        loader: Callable returning the content when it is not yet read
    """
    data_source: DataSource
    content: Optional[str] = None
    metadata: Optional[str] = None
    loader: Optional[Callable[[], str]] = field(default=None, repr=False, compare=False)

    def read_content(self) -> str:
        """Return the content, calling the loader on first use."""
        if self.content is None:
            if self.loader is None:
                raise KnowledgeSourceError(f"Job for {self.data_source} has neither content nor loader")
            self.content = self.loader()
        return self.content
