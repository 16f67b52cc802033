"""
Unit tests for cosine ranking and the SQLite vector store.
"""

import inspect
import math
import sqlite3
import threading
from unittest.mock import patch

import pytest

from knowledge.config.config_loader import ConnectionMode
from knowledge.core.exceptions import KnowledgeIndexError, KnowledgeStorageError
from knowledge.core.types import DataSource, EmbeddingRecord
from knowledge.vector.search import cosine_distance, cosine_similarity, top_k_nearest
from knowledge.vector.store import VectorStore, database_path

from conftest import FAKE_DIMENSION, bag_of_words


def unit(index: int, dimension: int = FAKE_DIMENSION):
    vector = [0.0] * dimension
    vector[index] = 1.0
    return vector


class TestCosine:
    """Tests for cosine scoring."""

    def test_identical_vectors(self):
        """Test identical direction has distance 0."""
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
        assert cosine_distance([1.0, 2.0], [1.0, 2.0]) == pytest.approx(0.0)

    def test_orthogonal_and_opposite(self):
        """Test orthogonal is 1 and opposite is 2."""
        assert cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)
        assert cosine_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(2.0)

    def test_zero_vector(self):
        """Test zero vectors score similarity 0."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_mismatched_dimensions(self):
        """Test dimension mismatch raises."""
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])

    def test_top_k_orders_most_similar_first(self):
        """Test ascending distance with key tie-break."""
        candidates = [
            ("c", [0.0, 1.0], "far"),
            ("b", [1.0, 0.0], "exact-b"),
            ("a", [2.0, 0.0], "exact-a"),
            ("d", [1.0, 1.0], "mid"),
        ]
        ranked = top_k_nearest([1.0, 0.0], candidates, 3)

        assert [key for _, key, _ in ranked] == ["a", "b", "d"]
        assert ranked[2][0] == pytest.approx(1 - 1 / math.sqrt(2))

    def test_top_k_non_positive(self):
        """Test k <= 0 gives nothing."""
        assert top_k_nearest([1.0], [("a", [1.0], None)], 0) == []


class TestVectorStore:
    """Tests for VectorStore in both connection modes."""

    def test_database_location(self, data_dir, vector_store):
        """Test the file lives in the knowledge namespace."""
        assert vector_store.db_path == data_dir / "knowledge" / "knowledge_db.sqlite3"
        assert database_path(data_dir) == vector_store.db_path
        assert vector_store.db_path.exists()

    def test_upsert_and_get(self, vector_store):
        """Test a record can be read back."""
        source = DataSource.local_files("/tmp/a.txt")
        vector_store.upsert(EmbeddingRecord(source, unit(0), content="alpha", metadata="m"))

        record = vector_store.get(source)
        assert record.embedding == unit(0)
        assert record.content == "alpha"
        assert record.metadata == "m"
        assert vector_store.get(DataSource.local_files("/tmp/other")) is None

    def test_upsert_is_idempotent(self, vector_store):
        """Test re-upserting the same data source overwrites in place."""
        source = DataSource.internet("https://example.com")
        vector_store.upsert(EmbeddingRecord(source, unit(0), content="old"))
        vector_store.upsert(EmbeddingRecord(source, unit(1), content="new"))
        vector_store.upsert(EmbeddingRecord(source, unit(1), content="new"))

        assert vector_store.count() == 1
        record = vector_store.get(source)
        assert record.content == "new"
        assert record.embedding == unit(1)

    def test_query_ranks_most_similar_first(self, vector_store):
        """Test query ordering and limit."""
        vector_store.upsert(EmbeddingRecord(DataSource.context("x"), unit(0), content="x"))
        vector_store.upsert(EmbeddingRecord(DataSource.context("y"), unit(1), content="y"))
        mixed = [0.0] * FAKE_DIMENSION
        mixed[0], mixed[1] = 1.0, 1.0
        vector_store.upsert(EmbeddingRecord(DataSource.context("xy"), mixed, content="xy"))

        results = vector_store.query(unit(0), 2)

        assert [str(r.data_source) for r in results] == ["Context.x", "Context.xy"]
        assert results[0].distance == pytest.approx(0.0)
        assert results[0].distance <= results[1].distance
        assert results[0].content == "x"

    def test_self_retrieval(self, vector_store):
        """Test querying with a stored vector returns that record first."""
        texts = {
            "a": "sqlite write ahead logging",
            "b": "openai embedding dimensions",
            "c": "gitignore pattern matching",
        }
        for key, text in texts.items():
            vector_store.upsert(EmbeddingRecord(DataSource.context(key), bag_of_words(text)))

        for key, text in texts.items():
            top = vector_store.query(bag_of_words(text), 1)[0]
            assert top.data_source == DataSource.context(key)
            assert top.distance == pytest.approx(0.0, abs=1e-9)

    def test_query_streams_rows_from_cursor(self, vector_store):
        """Test ranking reads rows straight off the cursor instead of a fetched list."""
        for i in range(5):
            vector_store.upsert(EmbeddingRecord(DataSource.context(f"doc{i}"), unit(i)))
        sources = []

        def rank(query, candidates, k):
            sources.append(inspect.getgeneratorlocals(candidates)[".0"])
            return top_k_nearest(query, candidates, k)

        with patch("knowledge.vector.store.top_k_nearest", side_effect=rank):
            results = vector_store.query(unit(3), 2)

        assert isinstance(sources[0], sqlite3.Cursor)
        assert results[0].data_source == DataSource.context("doc3")

    def test_query_empty_store(self, vector_store):
        """Test an empty store returns no results."""
        assert vector_store.query(unit(0), 5) == []

    def test_upsert_wrong_dimension(self, vector_store):
        """Test records must match the index dimension."""
        with pytest.raises(KnowledgeIndexError) as exc_info:
            vector_store.upsert(EmbeddingRecord(DataSource.context("a"), [1.0, 2.0]))
        assert exc_info.value.expected == FAKE_DIMENSION
        assert exc_info.value.actual == 2
        assert vector_store.count() == 0

    def test_query_wrong_dimension(self, vector_store):
        """Test query vectors must match the index dimension."""
        with pytest.raises(KnowledgeIndexError):
            vector_store.query([1.0] * (FAKE_DIMENSION + 1), 3)

    def test_redeclare_same_dimension(self, data_dir, vector_store, connection_mode):
        """Test reopening with the same dimension keeps existing data."""
        vector_store.upsert(EmbeddingRecord(DataSource.context("a"), unit(3)))

        reopened = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, connection_mode)
        try:
            assert reopened.count() == 1
        finally:
            reopened.close()

    def test_redeclare_other_dimension(self, data_dir, vector_store, connection_mode):
        """Test a different dimension is refused and the index is unchanged."""
        with pytest.raises(KnowledgeIndexError, match="cannot redeclare"):
            VectorStore.for_data_dir(data_dir, FAKE_DIMENSION * 2, connection_mode)

        vector_store.upsert(EmbeddingRecord(DataSource.context("a"), unit(0)))
        assert vector_store.count() == 1

    def test_invalid_dimension(self, data_dir):
        """Test the index dimension must be positive."""
        with pytest.raises(KnowledgeIndexError):
            VectorStore.for_data_dir(data_dir, 0)

    def test_unopenable_database(self, tmp_path):
        """Test a path that cannot hold a database is a storage error."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(KnowledgeStorageError):
            VectorStore(blocker / "db.sqlite3", FAKE_DIMENSION)

    def test_corrupt_key_is_storage_error(self, vector_store):
        """Test rows with an unknown kind prefix surface as storage errors."""
        conn = sqlite3.connect(str(vector_store.db_path))
        try:
            conn.execute(
                "INSERT INTO context_embeddings (data_source, embedding, updated_utc) VALUES (?, ?, ?)",
                ("Bogus.key", "[" + ",".join(["1.0"] * FAKE_DIMENSION) + "]", "2024-01-01"),
            )
            conn.commit()
        finally:
            conn.close()

        with pytest.raises(KnowledgeStorageError, match="Bogus.key"):
            vector_store.query(unit(0), 1)

    def test_concurrent_upserts(self, vector_store):
        """Test many threads writing through one store."""
        errors = []

        def writer(offset: int):
            try:
                for i in range(10):
                    key = f"t{offset}-{i}"
                    vector_store.upsert(
                        EmbeddingRecord(DataSource.context(key), unit((offset + i) % FAKE_DIMENSION))
                    )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert vector_store.count() == 60


class TestConnectionModes:
    """Tests specific to connection lifetimes."""

    def test_on_demand_keeps_no_connection(self, data_dir):
        """Test on-demand mode holds no open connection between calls."""
        store = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, ConnectionMode.ON_DEMAND)
        store.upsert(EmbeddingRecord(DataSource.context("a"), unit(0)))

        assert store._thread_conns == {}

    def test_persistent_reuses_connection(self, data_dir):
        """Test persistent mode reuses one connection per thread."""
        store = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, ConnectionMode.PERSISTENT)
        try:
            assert store._persistent_connection() is store._persistent_connection()
        finally:
            store.close()

    def test_exited_thread_connections_are_closed(self, data_dir):
        """Test repeated short-lived threads do not accumulate connections."""
        store = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION, ConnectionMode.PERSISTENT)
        try:
            for n in range(5):
                threads = [
                    threading.Thread(
                        target=store.upsert,
                        args=(EmbeddingRecord(DataSource.context(f"r{n}-{i}"), unit(i)),),
                    )
                    for i in range(4)
                ]
                for thread in threads:
                    thread.start()
                for thread in threads:
                    thread.join()

            # This thread plus, at most, the last batch of writers
            assert len(store._thread_conns) <= 5
            assert threading.current_thread() in store._thread_conns
            assert store.count() == 20
        finally:
            store.close()

    def test_close_is_idempotent(self, data_dir):
        """Test closing twice is harmless."""
        store = VectorStore.for_data_dir(data_dir, FAKE_DIMENSION)
        store.close()
        store.close()
