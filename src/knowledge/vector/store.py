"""
Vector Store - embedded SQLite persistence for knowledge embeddings.

One database file per data directory
(``<data_dir>/knowledge/knowledge_db.sqlite3``) holding:

- ``context_embeddings``: one row per data source, keyed by its string form
- ``similarity_index``: the declared index (field, dimension, metric)

The index dimension is pinned on first open. Every record and query vector
is checked against it.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from ..config.config_loader import ConnectionMode
from ..core.exceptions import KnowledgeIndexError, KnowledgeStorageError
from ..core.types import DataSource, EmbeddingRecord, KnowledgeResult
from ..core.utils import compute_content_hash
from .search import top_k_nearest


logger = logging.getLogger(__name__)


DATABASE_NAMESPACE = "knowledge"
DATABASE_NAME = "knowledge_db"
TABLE_NAME = "context_embeddings"
INDEX_NAME = "context_embeddings_embedding_idx"
INDEX_FIELD = "embedding"
INDEX_METRIC = "cosine"

# Seconds a writer waits on a locked database before failing
BUSY_TIMEOUT_SECS = 30.0


def database_path(data_dir: Union[str, Path]) -> Path:
    """Location of the knowledge database inside a data directory."""
    return Path(data_dir) / DATABASE_NAMESPACE / f"{DATABASE_NAME}.sqlite3"


class VectorStore:
    """
    Similarity-indexed store of knowledge embeddings.

    In ``ON_DEMAND`` mode each operation opens its own connection and closes
    it afterwards. In ``PERSISTENT`` mode each thread opens one connection and
    reuses it for every later operation; SQLite serializes writers and WAL
    gives every reader a consistent snapshot. Connections of threads that
    have exited are closed the next time a new thread connects.

    Example:
        >>> store = VectorStore.for_data_dir("/tmp/buddy", dimension=1536)
        >>> store.upsert(record)
        >>> store.query(vector, k=5)
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        dimension: int,
        mode: ConnectionMode = ConnectionMode.PERSISTENT,
    ):
        """
        Open the store and declare the similarity index.

        Args:
            db_path: Path of the SQLite database file
            dimension: Vector width D of the index
            mode: Connection lifetime

        Raises:
            KnowledgeIndexError: If the index exists with a different dimension
            KnowledgeStorageError: If the database cannot be opened
        """
        if not isinstance(dimension, int) or dimension <= 0:
            raise KnowledgeIndexError(f"Index dimension must be a positive integer, got {dimension!r}")

        self.db_path = Path(db_path)
        self.dimension = dimension
        self.mode = ConnectionMode.parse(mode)

        # Persistent connections keyed by owning thread
        self._thread_conns: Dict[threading.Thread, sqlite3.Connection] = {}
        self._registry_lock = threading.Lock()

        # Open once up front so index and storage errors surface here
        conn = self._connect()
        if self.mode == ConnectionMode.ON_DEMAND:
            conn.close()
        else:
            self._thread_conns[threading.current_thread()] = conn

        logger.debug(f"Opened vector store {self.db_path} (dimension {dimension}, mode {self.mode.value})")

    @classmethod
    def for_data_dir(
        cls,
        data_dir: Union[str, Path],
        dimension: int,
        mode: ConnectionMode = ConnectionMode.PERSISTENT,
    ) -> "VectorStore":
        """Open the store at its standard location under ``data_dir``."""
        return cls(database_path(data_dir), dimension, mode)

    # =========================================================================
    # Connections
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        """Open a connection and make sure schema and index are declared."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=BUSY_TIMEOUT_SECS,
                isolation_level=None,
                check_same_thread=False,
            )
        except (OSError, sqlite3.Error) as e:
            raise KnowledgeStorageError(f"Cannot open knowledge database {self.db_path}: {e}") from e

        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema(conn)
        except KnowledgeIndexError:
            conn.close()
            raise
        except sqlite3.Error as e:
            conn.close()
            raise KnowledgeStorageError(f"Cannot initialize knowledge database {self.db_path}: {e}") from e

        return conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                data_source TEXT PRIMARY KEY,
                embedding TEXT NOT NULL,
                content TEXT,
                metadata TEXT,
                content_sha256 TEXT,
                updated_utc TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS similarity_index (
                name TEXT PRIMARY KEY,
                table_name TEXT NOT NULL,
                field TEXT NOT NULL,
                dimension INTEGER NOT NULL,
                metric TEXT NOT NULL,
                created_utc TEXT NOT NULL
            )
        """)
        self._declare_index(conn)

    def _declare_index(self, conn: sqlite3.Connection) -> None:
        """
        Declare the similarity index.

        A no-op when it already exists with the same dimension.

        Raises:
            KnowledgeIndexError: If it exists with a different dimension
        """
        conn.execute(
            """
            INSERT OR IGNORE INTO similarity_index
                (name, table_name, field, dimension, metric, created_utc)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                INDEX_NAME,
                TABLE_NAME,
                INDEX_FIELD,
                self.dimension,
                INDEX_METRIC,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        row = conn.execute(
            "SELECT dimension FROM similarity_index WHERE name = ?", (INDEX_NAME,)
        ).fetchone()

        if row["dimension"] != self.dimension:
            raise KnowledgeIndexError(
                f"Similarity index {INDEX_NAME} is declared with dimension "
                f"{row['dimension']}, cannot redeclare with {self.dimension}",
                expected=row["dimension"],
                actual=self.dimension,
            )

    def _persistent_connection(self) -> sqlite3.Connection:
        thread = threading.current_thread()
        conn = self._thread_conns.get(thread)
        if conn is None:
            conn = self._connect()
            with self._registry_lock:
                self._close_exited_connections()
                self._thread_conns[thread] = conn
        return conn

    def _close_exited_connections(self) -> None:
        """Close connections owned by threads that are no longer running."""
        for thread in [t for t in self._thread_conns if not t.is_alive()]:
            self._thread_conns.pop(thread).close()
            logger.debug(f"Closed connection of exited thread {thread.name}")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self.mode == ConnectionMode.ON_DEMAND:
            conn = self._connect()
            try:
                yield conn
            finally:
                conn.close()
        else:
            yield self._persistent_connection()

    def close(self) -> None:
        """Close any persistent connections."""
        with self._registry_lock:
            while self._thread_conns:
                _, conn = self._thread_conns.popitem()
                conn.close()

    def __enter__(self) -> "VectorStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    def _check_dimension(self, vector: List[float], what: str) -> None:
        if len(vector) != self.dimension:
            raise KnowledgeIndexError(
                f"{what} has dimension {len(vector)}, index expects {self.dimension}",
                expected=self.dimension,
                actual=len(vector),
            )

    def upsert(self, record: EmbeddingRecord) -> None:
        """
        Insert or overwrite the record keyed by its data source.

        The write is a single statement, so a concurrent reader sees either
        the old row or the new one.

        Raises:
            KnowledgeIndexError: If the embedding width does not match the index
            KnowledgeStorageError: If the write fails
        """
        self._check_dimension(record.embedding, f"Embedding for {record.data_source}")

        key = str(record.data_source)
        params = (
            key,
            json.dumps([float(x) for x in record.embedding]),
            record.content,
            record.metadata,
            compute_content_hash(record.content) if record.content is not None else None,
            datetime.now(timezone.utc).isoformat(),
        )

        with self._connection() as conn:
            try:
                conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME}
                        (data_source, embedding, content, metadata, content_sha256, updated_utc)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(data_source) DO UPDATE SET
                        embedding = excluded.embedding,
                        content = excluded.content,
                        metadata = excluded.metadata,
                        content_sha256 = excluded.content_sha256,
                        updated_utc = excluded.updated_utc
                    """,
                    params,
                )
            except sqlite3.Error as e:
                raise KnowledgeStorageError(f"Failed to upsert {key}: {e}") from e

        logger.debug(f"Upserted knowledge record {key}")

    def query(self, vector: List[float], k: int) -> List[KnowledgeResult]:
        """
        Find the k records nearest to ``vector`` by cosine distance.

        Args:
            vector: Query embedding
            k: Maximum number of results

        Returns:
            Up to k results, most similar (smallest distance) first

        Raises:
            KnowledgeIndexError: If the query width does not match the index
            KnowledgeStorageError: If the read fails
        """
        self._check_dimension(vector, "Query vector")
        if k <= 0:
            return []

        with self._connection() as conn:
            try:
                rows = conn.execute(
                    f"SELECT data_source, embedding, content, metadata FROM {TABLE_NAME}"
                )
                candidates = (
                    (row["data_source"], json.loads(row["embedding"]), row)
                    for row in rows
                )
                ranked = top_k_nearest(list(vector), candidates, k)
            except sqlite3.Error as e:
                raise KnowledgeStorageError(f"Similarity query failed: {e}") from e

        return [
            KnowledgeResult(
                distance=distance,
                data_source=self._parse_key(key),
                content=row["content"],
                metadata=row["metadata"],
            )
            for distance, key, row in ranked
        ]

    def get(self, data_source: DataSource) -> Optional[EmbeddingRecord]:
        """Fetch the stored record for a data source, or None."""
        key = str(data_source)
        with self._connection() as conn:
            try:
                row = conn.execute(
                    f"SELECT data_source, embedding, content, metadata FROM {TABLE_NAME} "
                    "WHERE data_source = ?",
                    (key,),
                ).fetchone()
            except sqlite3.Error as e:
                raise KnowledgeStorageError(f"Failed to read {key}: {e}") from e

        if row is None:
            return None
        return EmbeddingRecord(
            data_source=data_source,
            embedding=json.loads(row["embedding"]),
            content=row["content"],
            metadata=row["metadata"],
        )

    def count(self) -> int:
        """Number of stored records."""
        with self._connection() as conn:
            try:
                return conn.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0]
            except sqlite3.Error as e:
                raise KnowledgeStorageError(f"Failed to count records: {e}") from e

    @staticmethod
    def _parse_key(key: str) -> DataSource:
        try:
            return DataSource.parse(key)
        except ValueError as e:
            raise KnowledgeStorageError(f"Corrupt data source key in store: {key!r}") from e
